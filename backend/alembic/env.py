"""
Alembic migration environment.
Supports both online (connected to DB) and offline (SQL script generation) modes.

The target URL comes from settings (DATABASE_URL_SYNC) unless overridden
with `alembic -x dburl=... upgrade head`.
"""

from logging.config import fileConfig
from sqlalchemy import engine_from_config, pool
from alembic import context

from eventhub.db.base import Base
from eventhub.models import User, Event, Reservation  # noqa: F401 - Import models for autogenerate
from eventhub.core.config import get_settings

config = context.config
settings = get_settings()

db_url = context.get_x_argument(as_dictionary=True).get("dburl", settings.DATABASE_URL_SYNC)
config.set_main_option("sqlalchemy.url", db_url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def run_migrations_offline() -> None:
    """Generate SQL script without connecting to the database."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        render_as_batch=_is_sqlite(url),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations against a live database connection."""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=connection.dialect.name == "sqlite",
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
