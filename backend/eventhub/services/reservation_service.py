"""
Reservation service: lifecycle of a single reservation.

STATE MACHINE
=============

  (create) ──> confirmed ──(cancel)──> canceled   [terminal]

There is no pending state: a reservation is born confirmed together with a
capacity ledger decrement, and dies canceled together with an increment. Each
pair of writes is committed in one transaction; on any failure both are
rolled back. Re-booking after a cancel creates a new row.

Create checks, in order (first failure wins, nothing is written):
  1. event exists                       -> EventNotFoundError
  2. event date strictly in the future  -> EventInPastError
  3. admin is not the event's creator   -> SelfReservationForbiddenError
  4. no confirmed reservation yet       -> AlreadyReservedError
  5. ledger has a spot                  -> NoCapacityError

Check 4 is a read so that a user who already holds a spot hears
AlreadyReserved rather than NoCapacity on a full event. The partial unique
index on (event_id, user_id) WHERE status = 'confirmed' is what actually
enforces it: if two requests from the same user slip past the read together,
the second insert violates the index, its decrement is rolled back and it is
reported as AlreadyReserved too.

Cancel is deliberately not idempotent: a second cancel fails with
AlreadyCanceledError so client double-submits surface as explicit errors.

Caches are invalidated through publish_invalidation() only after a commit.
"""

from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from eventhub.models.event import Event
from eventhub.models.reservation import Reservation, ReservationStatus
from eventhub.core.clock import Clock, as_utc, utc_now
from eventhub.core.exceptions import (
    AlreadyCanceledError,
    AlreadyReservedError,
    EventInPastError,
    EventNotFoundError,
    ForbiddenError,
    ReservationError,
    ReservationNotFoundError,
    SelfReservationForbiddenError,
    StorageFailureError,
)
from eventhub.core.logging import get_logger
from eventhub.core.metrics import record_cancellation, record_reservation_attempt, reservation_latency
from eventhub.core.security import Role
from eventhub.services import capacity_ledger
from eventhub.services.cache_factory import get_cache_sink
from eventhub.services.cache_service import publish_invalidation
from eventhub.services.interfaces.cache_sink import CacheSink

logger = get_logger(__name__)

CONFIRMED = ReservationStatus.CONFIRMED.value
CANCELED = ReservationStatus.CANCELED.value

# Reservation views embed the event and user summaries
WITH_SUMMARIES = (selectinload(Reservation.event), selectinload(Reservation.user))


async def has_active_reservation(db: AsyncSession, event_id: int, user_id: int) -> bool:
    """True if the user holds a confirmed reservation for the event."""
    result = await db.execute(
        select(Reservation.id).where(
            Reservation.event_id == event_id,
            Reservation.user_id == user_id,
            Reservation.status == CONFIRMED,
        )
    )
    return result.scalar_one_or_none() is not None


async def get_active_reservation(
    db: AsyncSession, event_id: int, user_id: int
) -> Optional[Reservation]:
    result = await db.execute(
        select(Reservation)
        .where(
            Reservation.event_id == event_id,
            Reservation.user_id == user_id,
            Reservation.status == CONFIRMED,
        )
        .options(*WITH_SUMMARIES)
    )
    return result.scalar_one_or_none()


async def _load_with_summaries(db: AsyncSession, reservation_id: int) -> Reservation:
    result = await db.execute(
        select(Reservation)
        .where(Reservation.id == reservation_id)
        .options(*WITH_SUMMARIES)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def create_reservation(
    db: AsyncSession,
    event_id: int,
    user_id: int,
    requester_role: Role,
    *,
    clock: Clock = utc_now,
    cache: Optional[CacheSink] = None,
) -> Reservation:
    """Reserve one spot at an event for a user."""
    try:
        with reservation_latency.time():
            reservation = await _create_in_transaction(db, event_id, user_id, requester_role, clock)
    except ReservationError as e:
        record_reservation_attempt(e.kind.value)
        raise

    record_reservation_attempt("success")
    logger.info(
        "reservation_created",
        reservation_id=reservation.id,
        event_id=event_id,
        user_id=user_id,
    )
    await publish_invalidation(cache or get_cache_sink(), event_id)
    return reservation


async def _create_in_transaction(
    db: AsyncSession,
    event_id: int,
    user_id: int,
    requester_role: Role,
    clock: Clock,
) -> Reservation:
    try:
        event = await capacity_ledger.lock_event(db, event_id)
        if event is None:
            raise EventNotFoundError()

        if as_utc(event.event_date) <= as_utc(clock()):
            raise EventInPastError()

        if requester_role == Role.ADMIN and event.creator_id == user_id:
            raise SelfReservationForbiddenError()

        if await has_active_reservation(db, event_id, user_id):
            raise AlreadyReservedError()

        await capacity_ledger.try_decrement(db, event_id)

        reservation = Reservation(event_id=event_id, user_id=user_id, status=CONFIRMED)
        db.add(reservation)
        await db.flush()
        reservation = await _load_with_summaries(db, reservation.id)
        await db.commit()
        return reservation

    except ReservationError as e:
        await db.rollback()
        logger.info(
            "reservation_rejected",
            kind=e.kind.value,
            event_id=event_id,
            user_id=user_id,
        )
        raise
    except IntegrityError as e:
        await db.rollback()
        try:
            already_reserved = await has_active_reservation(db, event_id, user_id)
        except SQLAlchemyError as recheck_error:
            await db.rollback()
            logger.error(
                "reservation_storage_failure",
                event_id=event_id,
                user_id=user_id,
                error=str(recheck_error),
                source="unique_index_recheck",
            )
            raise StorageFailureError() from recheck_error
        if already_reserved:
            logger.info(
                "reservation_rejected",
                kind=AlreadyReservedError.kind.value,
                event_id=event_id,
                user_id=user_id,
                source="unique_index",
            )
            raise AlreadyReservedError() from e
        logger.error("reservation_storage_failure", event_id=event_id, user_id=user_id, error=str(e))
        raise StorageFailureError() from e
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("reservation_storage_failure", event_id=event_id, user_id=user_id, error=str(e))
        raise StorageFailureError() from e


async def cancel_reservation(
    db: AsyncSession,
    reservation_id: int,
    requester_id: int,
    requester_role: Role,
    *,
    cache: Optional[CacheSink] = None,
) -> Reservation:
    """Cancel a confirmed reservation and release its spot."""
    try:
        reservation = await _cancel_in_transaction(db, reservation_id, requester_id, requester_role)
    except ReservationError as e:
        record_cancellation(e.kind.value)
        raise

    record_cancellation("success")
    logger.info(
        "reservation_canceled",
        reservation_id=reservation.id,
        event_id=reservation.event_id,
        requester_id=requester_id,
    )
    await publish_invalidation(cache or get_cache_sink(), reservation.event_id)
    return reservation


async def _cancel_in_transaction(
    db: AsyncSession,
    reservation_id: int,
    requester_id: int,
    requester_role: Role,
) -> Reservation:
    try:
        result = await db.execute(
            select(Reservation)
            .where(Reservation.id == reservation_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        reservation = result.scalar_one_or_none()

        if reservation is None:
            raise ReservationNotFoundError()

        if requester_role != Role.ADMIN and requester_id != reservation.user_id:
            raise ForbiddenError("You can only cancel your own reservations")

        if reservation.status != CONFIRMED:
            raise AlreadyCanceledError()

        # Conditional transition: only one of two racing cancels can flip the row
        update_result = await db.execute(
            update(Reservation)
            .where(Reservation.id == reservation_id, Reservation.status == CONFIRMED)
            .values(status=CANCELED)
            .execution_options(synchronize_session=False)
        )
        if update_result.rowcount == 0:
            raise AlreadyCanceledError()

        await capacity_ledger.increment(db, reservation.event_id)
        await db.refresh(reservation)
        await db.commit()
        return reservation

    except ReservationError as e:
        await db.rollback()
        logger.info(
            "cancellation_rejected",
            kind=e.kind.value,
            reservation_id=reservation_id,
            requester_id=requester_id,
        )
        raise
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("cancellation_storage_failure", reservation_id=reservation_id, error=str(e))
        raise StorageFailureError() from e


def _paginate(query, page: int, limit: int):
    return (
        query.options(*WITH_SUMMARIES)
        .order_by(Reservation.created_at.desc(), Reservation.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )


async def _fetch_page(db: AsyncSession, query, page: int, limit: int) -> tuple[list[Reservation], int]:
    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar()
    result = await db.execute(_paginate(query, page, limit))
    return list(result.scalars().all()), total


async def list_user_reservations(
    db: AsyncSession,
    user_id: int,
    page: int = 1,
    limit: int = 10,
    status: Optional[ReservationStatus] = None,
) -> tuple[list[Reservation], int]:
    """A user's own reservations, newest first."""
    query = select(Reservation).where(Reservation.user_id == user_id)
    if status:
        query = query.where(Reservation.status == status.value)
    return await _fetch_page(db, query, page, limit)


async def list_event_reservations(
    db: AsyncSession,
    event_id: int,
    page: int = 1,
    limit: int = 10,
    status: Optional[ReservationStatus] = None,
) -> tuple[list[Reservation], int]:
    event = await db.get(Event, event_id)
    if event is None:
        raise EventNotFoundError()

    query = select(Reservation).where(Reservation.event_id == event_id)
    if status:
        query = query.where(Reservation.status == status.value)
    return await _fetch_page(db, query, page, limit)


async def list_all_reservations(
    db: AsyncSession,
    page: int = 1,
    limit: int = 10,
    status: Optional[ReservationStatus] = None,
    event_id: Optional[int] = None,
    user_id: Optional[int] = None,
) -> tuple[list[Reservation], int]:
    query = select(Reservation)
    if status:
        query = query.where(Reservation.status == status.value)
    if event_id:
        query = query.where(Reservation.event_id == event_id)
    if user_id:
        query = query.where(Reservation.user_id == user_id)
    return await _fetch_page(db, query, page, limit)
