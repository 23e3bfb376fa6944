"""
Event service handling CRUD operations.
Capacity changes are delegated to the capacity ledger.
"""

from datetime import date as date_type, datetime, time, timedelta, timezone
from typing import Optional

from sqlalchemy import Float, cast, delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.models.event import Event
from eventhub.models.reservation import Reservation
from eventhub.schemas.event import EventCreate, EventUpdate
from eventhub.core.clock import Clock, as_utc, utc_now
from eventhub.core.config import get_settings
from eventhub.core.exceptions import (
    EventInPastError,
    EventNotFoundError,
    ForbiddenError,
    ReservationError,
    StorageFailureError,
)
from eventhub.core.logging import get_logger
from eventhub.core.security import Caller
from eventhub.services import capacity_ledger
from eventhub.services.cache_factory import get_cache_sink
from eventhub.services.cache_service import publish_invalidation
from eventhub.services.interfaces.cache_sink import CacheSink

logger = get_logger(__name__)
settings = get_settings()

NON_NULLABLE_FIELDS = {"name", "event_date"}


def spot_status(event: Event, now: datetime) -> str:
    """Availability label shown next to an event."""
    if as_utc(event.event_date) <= as_utc(now):
        return "past-event"
    if event.available_spots == 0:
        return "fully-booked"
    if event.available_spots <= settings.LIMITED_SPOTS_THRESHOLD:
        return "limited"
    return "available"


def _ensure_can_manage(event: Event, caller: Caller) -> None:
    if not caller.is_admin and caller.user_id != event.creator_id:
        raise ForbiddenError("You can only manage your own events")


async def _rollback_on_failure(db: AsyncSession, action: str, event_id: Optional[int], e: SQLAlchemyError):
    await db.rollback()
    logger.error("event_storage_failure", action=action, event_id=event_id, error=str(e))
    raise StorageFailureError() from e


async def create_event(
    db: AsyncSession,
    event_data: EventCreate,
    creator_id: int,
    *,
    clock: Clock = utc_now,
    cache: Optional[CacheSink] = None,
) -> Event:
    """Create a new event with full spot availability."""
    if as_utc(event_data.event_date) <= as_utc(clock()):
        raise EventInPastError("Event date must be in the future")

    event = Event(
        name=event_data.name,
        description=event_data.description,
        event_date=as_utc(event_data.event_date),
        location=event_data.location,
        online_link=event_data.online_link,
        max_capacity=event_data.max_capacity,
        available_spots=event_data.max_capacity,  # All spots available initially
        creator_id=creator_id,
    )
    try:
        db.add(event)
        await db.flush()
        await db.refresh(event)
        await db.commit()
    except SQLAlchemyError as e:
        await _rollback_on_failure(db, "create", None, e)

    logger.info("event_created", event_id=event.id, name=event.name, capacity=event.max_capacity)
    await publish_invalidation(cache or get_cache_sink(), event.id)
    return event


async def get_event(db: AsyncSession, event_id: int) -> Event:
    """Get a single event by ID."""
    result = await db.execute(select(Event).where(Event.id == event_id))
    event = result.scalar_one_or_none()

    if not event:
        raise EventNotFoundError(f"Event {event_id} not found")
    return event


def _day_range(day: date_type) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


async def list_events(
    db: AsyncSession,
    page: int = 1,
    limit: int = 10,
    date: Optional[date_type] = None,
    name: Optional[str] = None,
    location: Optional[str] = None,
) -> tuple[list[Event], int]:
    """
    List events ordered by date with optional filters.
    Uses the ix_events_event_date index for date filtering and ordering.
    """
    query = select(Event)

    if date:
        start, end = _day_range(date)
        query = query.where(Event.event_date >= start, Event.event_date < end)
    if name:
        query = query.where(Event.name.icontains(name, autoescape=True))
    if location:
        query = query.where(Event.location.icontains(location, autoescape=True))

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar()

    events_query = (
        query
        .order_by(Event.event_date.asc(), Event.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    result = await db.execute(events_query)
    return list(result.scalars().all()), total


async def list_popular_events(db: AsyncSession, *, clock: Clock = utc_now) -> list[Event]:
    """Upcoming events ranked by the fraction of capacity already reserved."""
    reserved_fraction = (
        cast(Event.max_capacity - Event.available_spots, Float) / Event.max_capacity
    )
    result = await db.execute(
        select(Event)
        .where(Event.event_date > as_utc(clock()))
        .order_by(reserved_fraction.desc(), Event.event_date.asc())
        .limit(settings.POPULAR_EVENTS_LIMIT)
    )
    return list(result.scalars().all())


async def dashboard_stats(db: AsyncSession, *, clock: Clock = utc_now) -> dict:
    """Totals for the admin dashboard. Active events are those still to come."""
    total = (await db.execute(select(func.count()).select_from(Event))).scalar()
    active = (
        await db.execute(
            select(func.count()).select_from(Event).where(Event.event_date > as_utc(clock()))
        )
    ).scalar()
    return {"total_events": total, "active_events": active}


async def resize_event_capacity(
    db: AsyncSession,
    event_id: int,
    new_max_capacity: int,
    caller: Caller,
    *,
    cache: Optional[CacheSink] = None,
) -> Event:
    """Change an event's max capacity, keeping existing reservations."""
    try:
        event = await capacity_ledger.lock_event(db, event_id)
        if event is None:
            raise EventNotFoundError()
        _ensure_can_manage(event, caller)
        event = await capacity_ledger.resize(db, event_id, new_max_capacity)
        await db.commit()
    except ReservationError:
        await db.rollback()
        raise
    except SQLAlchemyError as e:
        await _rollback_on_failure(db, "resize", event_id, e)

    await publish_invalidation(cache or get_cache_sink(), event_id)
    return event


async def update_event(
    db: AsyncSession,
    event_id: int,
    changes: EventUpdate,
    caller: Caller,
    *,
    clock: Clock = utc_now,
    cache: Optional[CacheSink] = None,
) -> Event:
    """Partial update. A max_capacity change goes through the ledger resize."""
    data = changes.model_dump(exclude_unset=True)
    try:
        event = await capacity_ledger.lock_event(db, event_id)
        if event is None:
            raise EventNotFoundError()
        _ensure_can_manage(event, caller)

        new_capacity = data.pop("max_capacity", None)
        if new_capacity is not None and new_capacity != event.max_capacity:
            event = await capacity_ledger.resize(db, event_id, new_capacity)

        if data.get("event_date") is not None:
            if as_utc(data["event_date"]) <= as_utc(clock()):
                raise EventInPastError("Event date must be in the future")
            data["event_date"] = as_utc(data["event_date"])

        for field, value in data.items():
            if value is None and field in NON_NULLABLE_FIELDS:
                continue
            setattr(event, field, value)

        await db.flush()
        await db.refresh(event)
        await db.commit()
    except ReservationError:
        await db.rollback()
        raise
    except SQLAlchemyError as e:
        await _rollback_on_failure(db, "update", event_id, e)

    logger.info("event_updated", event_id=event_id, fields=sorted(changes.model_fields_set))
    await publish_invalidation(cache or get_cache_sink(), event_id)
    return event


async def delete_event(
    db: AsyncSession,
    event_id: int,
    caller: Caller,
    *,
    cache: Optional[CacheSink] = None,
) -> None:
    """Delete an event together with all of its reservations."""
    try:
        event = await capacity_ledger.lock_event(db, event_id)
        if event is None:
            raise EventNotFoundError()
        _ensure_can_manage(event, caller)

        removed = await db.execute(delete(Reservation).where(Reservation.event_id == event_id))
        await db.execute(delete(Event).where(Event.id == event_id))
        await db.commit()
    except ReservationError:
        await db.rollback()
        raise
    except SQLAlchemyError as e:
        await _rollback_on_failure(db, "delete", event_id, e)

    logger.info("event_deleted", event_id=event_id, reservations_removed=removed.rowcount)
    await publish_invalidation(cache or get_cache_sink(), event_id)
