"""
User administration: listing, profile edits and account removal.

Credentials live with the upstream auth service; this service only manages
the identity rows that events and reservations point at.

Deleting a user removes everything that references the row, in one
transaction:
  - events the user created, together with all their reservations
  - the user's reservations at other events; confirmed ones first give
    their spot back through the capacity ledger
"""

from typing import Optional, Union

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.models.event import Event
from eventhub.models.reservation import Reservation, ReservationStatus
from eventhub.models.user import User
from eventhub.schemas.user import ProfileUpdate, UserUpdate
from eventhub.core.exceptions import (
    EmailTakenError,
    ReservationError,
    SelfDeletionForbiddenError,
    StorageFailureError,
    UserNotFoundError,
)
from eventhub.core.logging import get_logger
from eventhub.core.security import Caller
from eventhub.services import capacity_ledger
from eventhub.services.cache_factory import get_cache_sink
from eventhub.services.cache_service import publish_invalidation
from eventhub.services.interfaces.cache_sink import CacheSink

logger = get_logger(__name__)


async def list_users(
    db: AsyncSession,
    page: int = 1,
    limit: int = 10,
    search: Optional[str] = None,
) -> tuple[list[User], int]:
    """Users newest first, optionally matching a substring of email or name."""
    query = select(User)
    if search:
        query = query.where(
            or_(
                User.email.icontains(search, autoescape=True),
                User.first_name.icontains(search, autoescape=True),
                User.last_name.icontains(search, autoescape=True),
            )
        )

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar()
    result = await db.execute(
        query.order_by(User.created_at.desc(), User.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), total


async def get_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise UserNotFoundError()
    return user


async def _email_in_use(db: AsyncSession, email: str, user_id: int) -> bool:
    result = await db.execute(select(User.id).where(User.email == email, User.id != user_id))
    return result.scalar_one_or_none() is not None


async def update_user(
    db: AsyncSession,
    user_id: int,
    changes: Union[UserUpdate, ProfileUpdate],
) -> User:
    """
    Apply a partial update. A ProfileUpdate cannot carry a role, so callers
    editing their own profile never change it.
    """
    data = changes.model_dump(exclude_unset=True, exclude_none=True)
    try:
        user = await get_user(db, user_id)

        email = data.get("email")
        if email and email != user.email and await _email_in_use(db, email, user_id):
            raise EmailTakenError()
        if "role" in data:
            data["role"] = data["role"].value

        for field, value in data.items():
            setattr(user, field, value)

        await db.flush()
        await db.refresh(user)
        await db.commit()
    except ReservationError:
        await db.rollback()
        raise
    except IntegrityError as e:
        # Unique email index caught a concurrent rename
        await db.rollback()
        raise EmailTakenError() from e
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("user_storage_failure", action="update", user_id=user_id, error=str(e))
        raise StorageFailureError() from e

    logger.info("user_updated", user_id=user_id, fields=sorted(data))
    return user


async def delete_user(
    db: AsyncSession,
    user_id: int,
    caller: Caller,
    *,
    cache: Optional[CacheSink] = None,
) -> None:
    """Delete a user with their events and reservations, keeping spot counts exact."""
    try:
        await get_user(db, user_id)
        if caller.user_id == user_id:
            raise SelfDeletionForbiddenError()

        owned = await db.execute(select(Event.id).where(Event.creator_id == user_id))
        owned_event_ids = list(owned.scalars().all())

        held = await db.execute(
            select(Reservation.id, Reservation.event_id).where(
                Reservation.user_id == user_id,
                Reservation.status == ReservationStatus.CONFIRMED.value,
                Reservation.event_id.not_in(owned_event_ids),
            )
        )
        released_event_ids = []
        for reservation_id, event_id in held.all():
            await capacity_ledger.lock_event(db, event_id)
            flipped = await db.execute(
                update(Reservation)
                .where(
                    Reservation.id == reservation_id,
                    Reservation.status == ReservationStatus.CONFIRMED.value,
                )
                .values(status=ReservationStatus.CANCELED.value)
                .execution_options(synchronize_session=False)
            )
            # A concurrent cancel already released this spot
            if flipped.rowcount:
                await capacity_ledger.increment(db, event_id)
                released_event_ids.append(event_id)

        if owned_event_ids:
            await db.execute(delete(Reservation).where(Reservation.event_id.in_(owned_event_ids)))
            await db.execute(delete(Event).where(Event.id.in_(owned_event_ids)))
        await db.execute(delete(Reservation).where(Reservation.user_id == user_id))
        await db.execute(delete(User).where(User.id == user_id))
        await db.commit()
    except ReservationError:
        await db.rollback()
        raise
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("user_storage_failure", action="delete", user_id=user_id, error=str(e))
        raise StorageFailureError() from e

    logger.info(
        "user_deleted",
        user_id=user_id,
        events_removed=len(owned_event_ids),
        spots_released=len(released_event_ids),
    )
    sink = cache or get_cache_sink()
    for event_id in dict.fromkeys(owned_event_ids + released_event_ids):
        await publish_invalidation(sink, event_id)
