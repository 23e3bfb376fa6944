"""
Capacity ledger: the only writer of an event's spot counts.

CONCURRENCY STRATEGY: Row Lock + Conditional Update
===================================================

Problem:
  Two users try to reserve the last spot simultaneously.
  Both read available_spots=1, both decrement to 0, both succeed.
  Result: Overbooking.

Solution:
  1. lock_event() takes SELECT ... FOR UPDATE on the event row. On PostgreSQL
     every ledger operation on that event now waits for the holder's
     transaction to finish. Other events are unaffected.
  2. The write itself is a single conditional statement:
       UPDATE events SET available_spots = available_spots - 1
       WHERE id = :event_id AND available_spots > 0
     rowcount == 0 means there was no spot left. The check and the write are
     one atomic step, so even without the row lock (SQLite ignores FOR UPDATE
     and serializes writers with its database lock instead) the last spot
     can only be taken once.
  3. The DB CHECK constraints (0 <= available_spots <= max_capacity) are the
     final safety net.

Every function here runs inside the caller's transaction and never commits.
The reservation service commits the ledger write together with the paired
reservation insert/update so the two are applied as one unit.
"""

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.models.event import Event
from eventhub.core.exceptions import (
    CapacityBelowReservedFloorError,
    EventNotFoundError,
    NoCapacityError,
)
from eventhub.core.logging import get_logger
from eventhub.core.metrics import record_ledger_operation

logger = get_logger(__name__)


async def lock_event(db: AsyncSession, event_id: int) -> Event | None:
    """Load the event holding an exclusive row lock until the transaction ends."""
    result = await db.execute(
        select(Event)
        .where(Event.id == event_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _current_spots(db: AsyncSession, event_id: int) -> int:
    result = await db.execute(select(Event.available_spots).where(Event.id == event_id))
    return result.scalar_one()


async def try_decrement(db: AsyncSession, event_id: int) -> int:
    """
    Take one spot. Returns the new available count.
    Raises NoCapacityError without mutating anything when no spot is left.
    """
    update_result = await db.execute(
        update(Event)
        .where(Event.id == event_id, Event.available_spots > 0)
        .values(available_spots=Event.available_spots - 1)
        .execution_options(synchronize_session=False)
    )

    if update_result.rowcount == 0:
        record_ledger_operation("decrement", "rejected")
        logger.info("ledger_decrement_rejected", event_id=event_id, reason="no_capacity")
        raise NoCapacityError()

    available = await _current_spots(db, event_id)
    record_ledger_operation("decrement", "ok")
    logger.debug("ledger_decremented", event_id=event_id, available=available)
    return available


async def increment(db: AsyncSession, event_id: int) -> int:
    """
    Release one spot. Returns the new available count.

    Clamped at max_capacity. Increments are paired 1:1 with earlier successful
    decrements, so hitting the clamp means the counters had already drifted.
    """
    update_result = await db.execute(
        update(Event)
        .where(Event.id == event_id, Event.available_spots < Event.max_capacity)
        .values(available_spots=Event.available_spots + 1)
        .execution_options(synchronize_session=False)
    )

    if update_result.rowcount == 0:
        exists = await db.execute(select(Event.id).where(Event.id == event_id))
        if exists.scalar_one_or_none() is None:
            raise EventNotFoundError()
        record_ledger_operation("increment", "clamped")
        logger.warning("ledger_increment_clamped", event_id=event_id)
    else:
        record_ledger_operation("increment", "ok")

    available = await _current_spots(db, event_id)
    logger.debug("ledger_incremented", event_id=event_id, available=available)
    return available


def _reject_resize(event_id: int, requested: int, reserved: int) -> None:
    record_ledger_operation("resize", "rejected")
    logger.info(
        "capacity_resize_rejected",
        event_id=event_id,
        requested=requested,
        reserved=reserved,
    )
    raise CapacityBelowReservedFloorError(reserved=reserved, requested=requested)


async def resize(db: AsyncSession, event_id: int, new_max_capacity: int) -> Event:
    """
    Change max_capacity while keeping the number of reserved spots intact.

    reserved = max_capacity - available_spots. The new capacity may not go
    below it; reservations are never canceled to make room.
    """
    event = await lock_event(db, event_id)
    if event is None:
        raise EventNotFoundError()

    reserved = event.reserved_spots
    if new_max_capacity < reserved or new_max_capacity <= 0:
        _reject_resize(event_id, new_max_capacity, reserved)

    previous = event.max_capacity
    # Guarded by the floor condition too, in case the row lock is unavailable
    update_result = await db.execute(
        update(Event)
        .where(
            Event.id == event_id,
            Event.max_capacity - Event.available_spots <= new_max_capacity,
        )
        .values(
            max_capacity=new_max_capacity,
            available_spots=new_max_capacity - (Event.max_capacity - Event.available_spots),
        )
        .execution_options(synchronize_session=False)
    )
    await db.refresh(event)

    if update_result.rowcount == 0:
        _reject_resize(event_id, new_max_capacity, event.reserved_spots)

    record_ledger_operation("resize", "ok")
    logger.info(
        "capacity_resized",
        event_id=event_id,
        previous=previous,
        max_capacity=event.max_capacity,
        available=event.available_spots,
    )
    return event
