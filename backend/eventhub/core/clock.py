"""
Injectable "current time" source for date comparisons.
"""

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Normalize to an aware UTC datetime. Naive values are taken as UTC (SQLite drops tzinfo)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def get_clock() -> Clock:
    """FastAPI dependency; override in tests to freeze time."""
    return utc_now
