"""
Reservation endpoints backed by the capacity-checked reservation service.
"""

import math
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.db.session import get_db
from eventhub.models.reservation import Reservation, ReservationStatus
from eventhub.schemas.event import Pagination
from eventhub.schemas.reservation import (
    ReservationCancelResponse,
    ReservationCheckResponse,
    ReservationListResponse,
    ReservationResponse,
)
from eventhub.services import event_service, reservation_service
from eventhub.services.cache_factory import get_cache_sink
from eventhub.services.interfaces.cache_sink import CacheSink
from eventhub.core.clock import Clock, get_clock
from eventhub.core.security import Caller, get_current_caller, require_admin

router = APIRouter(prefix="/reservations", tags=["Reservations"])


def _page(items: list[Reservation], total: int, page: int, limit: int) -> ReservationListResponse:
    return ReservationListResponse(
        reservations=[ReservationResponse.model_validate(r) for r in items],
        pagination=Pagination(
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit),
        ),
    )


@router.post(
    "/events/{event_id}",
    response_model=ReservationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_reservation_endpoint(
    event_id: int,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
    cache: CacheSink = Depends(get_cache_sink),
    clock: Clock = Depends(get_clock),
):
    """
    Reserve one spot at an event.

    Concurrent requests for the last spot are serialized on the event row;
    exactly one succeeds and the others get a NoCapacity error.
    """
    return await reservation_service.create_reservation(
        db, event_id, caller.user_id, caller.role, clock=clock, cache=cache
    )


@router.delete("/{reservation_id}", response_model=ReservationCancelResponse)
async def cancel_reservation_endpoint(
    reservation_id: int,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
    cache: CacheSink = Depends(get_cache_sink),
):
    """Cancel a reservation and release its spot. Owner or admin."""
    reservation = await reservation_service.cancel_reservation(
        db, reservation_id, caller.user_id, caller.role, cache=cache
    )
    return ReservationCancelResponse(
        message="Reservation canceled successfully",
        reservation_id=reservation.id,
        status=reservation.status,
    )


@router.get("/mine", response_model=ReservationListResponse)
async def my_reservations_endpoint(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[ReservationStatus] = Query(None),
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """Reservations of the calling user, newest first."""
    items, total = await reservation_service.list_user_reservations(
        db, caller.user_id, page, limit, status
    )
    return _page(items, total, page, limit)


@router.get("/events/{event_id}/check", response_model=ReservationCheckResponse)
async def check_reservation_endpoint(
    event_id: int,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """Whether the calling user currently holds a spot at the event."""
    await event_service.get_event(db, event_id)
    reservation = await reservation_service.get_active_reservation(db, event_id, caller.user_id)
    return ReservationCheckResponse(
        has_reservation=reservation is not None,
        reservation=ReservationResponse.model_validate(reservation) if reservation else None,
    )


@router.get("/events/{event_id}", response_model=ReservationListResponse)
async def event_reservations_endpoint(
    event_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[ReservationStatus] = Query(None),
    _: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """All reservations for one event. Admin only."""
    items, total = await reservation_service.list_event_reservations(db, event_id, page, limit, status)
    return _page(items, total, page, limit)


@router.get("/", response_model=ReservationListResponse)
async def all_reservations_endpoint(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[ReservationStatus] = Query(None),
    event_id: Optional[int] = Query(None),
    user_id: Optional[int] = Query(None),
    _: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Every reservation, filterable by status, event and user. Admin only."""
    items, total = await reservation_service.list_all_reservations(
        db, page, limit, status, event_id, user_id
    )
    return _page(items, total, page, limit)
