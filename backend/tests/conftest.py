"""
Pytest fixtures for test database, client, caller identities and events.

Each test gets its own file-backed SQLite database so concurrent sessions
use separate connections, the way concurrent requests do in production.
"""

import os

os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import datetime, timezone, timedelta
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from eventhub.main import app
from eventhub.db.base import Base
from eventhub.db.session import get_db
from eventhub.models.user import User
from eventhub.models.event import Event
from eventhub.models.reservation import Reservation, ReservationStatus
from eventhub.services.cache_factory import get_cache_sink
from eventhub.services.interfaces.cache_sink import CacheSink


class RecordingCacheSink(CacheSink):
    """Cache sink that remembers which events were invalidated."""

    def __init__(self):
        self.invalidated: list[int] = []
        self.fail = False

    async def invalidate_event(self, event_id: int) -> None:
        if self.fail:
            raise ConnectionError("redis unavailable")
        self.invalidated.append(event_id)


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path):
    """Create tables in a fresh SQLite file, dispose after the test."""
    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'eventhub_test.db'}", echo=False)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def cache_sink() -> RecordingCacheSink:
    return RecordingCacheSink()


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, cache_sink) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with one DB session per request and a recording cache sink."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache_sink] = lambda: cache_sink

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _create_user(session_factory, email: str, role: str) -> User:
    async with session_factory() as session:
        user = User(email=email, first_name=email.split("@")[0], role=role)
        session.add(user)
        await session.commit()
        await session.refresh(user)
        return user


@pytest_asyncio.fixture
async def admin_user(session_factory) -> User:
    return await _create_user(session_factory, "admin@example.com", "admin")


@pytest_asyncio.fixture
async def alice(session_factory) -> User:
    return await _create_user(session_factory, "alice@example.com", "user")


@pytest_asyncio.fixture
async def bob(session_factory) -> User:
    return await _create_user(session_factory, "bob@example.com", "user")


@pytest_asyncio.fixture
async def carol(session_factory) -> User:
    return await _create_user(session_factory, "carol@example.com", "user")


def headers_for(user: User) -> dict:
    """Trusted identity headers as forwarded by the upstream gateway."""
    return {"X-User-Id": str(user.id), "X-User-Role": user.role}


@pytest.fixture
def make_event(session_factory, admin_user):
    """Factory inserting events directly, bypassing the future-date check."""

    async def _make(
        max_capacity: int = 100,
        available_spots: int | None = None,
        days_ahead: float = 30,
        creator: User | None = None,
        name: str = "Test Concert",
        location: str = "Test Venue",
    ) -> Event:
        async with session_factory() as session:
            event = Event(
                name=name,
                description="A test event",
                event_date=datetime.now(timezone.utc) + timedelta(days=days_ahead),
                location=location,
                max_capacity=max_capacity,
                available_spots=max_capacity if available_spots is None else available_spots,
                creator_id=(creator or admin_user).id,
            )
            session.add(event)
            await session.commit()
            await session.refresh(event)
            return event

    return _make


@pytest.fixture
def ledger_state(session_factory):
    """Read (max_capacity, available_spots, confirmed count) for an event from a fresh session."""

    async def _read(event_id: int) -> tuple[int, int, int]:
        async with session_factory() as session:
            event = await session.get(Event, event_id)
            confirmed = await session.execute(
                select(func.count()).select_from(Reservation).where(
                    Reservation.event_id == event_id,
                    Reservation.status == ReservationStatus.CONFIRMED.value,
                )
            )
            return event.max_capacity, event.available_spots, confirmed.scalar()

    return _read
