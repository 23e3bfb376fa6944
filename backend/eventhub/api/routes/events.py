"""
Event endpoints with Redis caching on read operations.
"""

import math
from datetime import date as date_type, datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.db.session import get_db
from eventhub.models.event import Event
from eventhub.schemas.event import (
    CapacityUpdate,
    DashboardStats,
    EventCreate,
    EventListResponse,
    EventResponse,
    EventUpdate,
    Pagination,
    PopularEventsResponse,
)
from eventhub.services import event_service
from eventhub.services.cache_factory import get_cache_sink
from eventhub.services.cache_service import (
    POPULAR_EVENTS_KEY,
    event_detail_key,
    event_list_key,
    get_json,
    set_json,
)
from eventhub.services.interfaces.cache_sink import CacheSink
from eventhub.core.clock import Clock, get_clock
from eventhub.core.config import get_settings
from eventhub.core.security import Caller, get_current_caller, require_admin
from eventhub.core.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()
router = APIRouter(prefix="/events", tags=["Events"])


def event_view(event: Event, now: datetime) -> EventResponse:
    return EventResponse.model_validate(event).model_copy(
        update={"spot_status": event_service.spot_status(event, now)}
    )


@router.get("/", response_model=EventListResponse)
async def list_events_endpoint(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    date: Optional[date_type] = Query(None),
    name: Optional[str] = Query(None, max_length=255),
    location: Optional[str] = Query(None, max_length=255),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """
    List events with pagination and filters.
    Cached per filter combination; any reservation or capacity change drops all listings.
    """
    cache_key = event_list_key(page, limit, date.isoformat() if date else None, name, location)
    cached = await get_json(cache_key)
    if cached:
        logger.info("events_list_cache_hit", page=page)
        cached["cached"] = True
        return EventListResponse(**cached)

    events, total = await event_service.list_events(db, page, limit, date, name, location)
    now = clock()

    response = EventListResponse(
        events=[event_view(e, now) for e in events],
        pagination=Pagination(
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit),
        ),
    )
    await set_json(cache_key, response.model_dump(mode="json"), settings.CACHE_TTL_EVENT_LIST)
    return response


@router.get("/popular", response_model=PopularEventsResponse)
async def popular_events_endpoint(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Top upcoming events by share of capacity already reserved."""
    cached = await get_json(POPULAR_EVENTS_KEY)
    if cached:
        cached["cached"] = True
        return PopularEventsResponse(**cached)

    events = await event_service.list_popular_events(db, clock=clock)
    now = clock()
    response = PopularEventsResponse(events=[event_view(e, now) for e in events])
    await set_json(POPULAR_EVENTS_KEY, response.model_dump(mode="json"), settings.CACHE_TTL_POPULAR_EVENTS)
    return response


@router.get("/dashboard/stats", response_model=DashboardStats)
async def dashboard_stats_endpoint(
    _: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Total and upcoming event counts. Admin only, never cached."""
    return await event_service.dashboard_stats(db, clock=clock)


@router.get("/{event_id}", response_model=EventResponse)
async def get_event_endpoint(
    event_id: int,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Get a single event by ID. Cached until the event's spots change."""
    cache_key = event_detail_key(event_id)
    cached = await get_json(cache_key)
    if cached:
        return EventResponse(**cached)

    event = await event_service.get_event(db, event_id)
    response = event_view(event, clock())
    await set_json(cache_key, response.model_dump(mode="json"), settings.CACHE_TTL_EVENT_DETAILS)
    return response


@router.post("/", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event_endpoint(
    event_data: EventCreate,
    caller: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    cache: CacheSink = Depends(get_cache_sink),
    clock: Clock = Depends(get_clock),
):
    """Create a new event. Admin only."""
    event = await event_service.create_event(db, event_data, caller.user_id, clock=clock, cache=cache)
    return event_view(event, clock())


@router.put("/{event_id}", response_model=EventResponse)
async def update_event_endpoint(
    event_id: int,
    changes: EventUpdate,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
    cache: CacheSink = Depends(get_cache_sink),
    clock: Clock = Depends(get_clock),
):
    """Update an event. Admins or the event's creator."""
    event = await event_service.update_event(db, event_id, changes, caller, clock=clock, cache=cache)
    return event_view(event, clock())


@router.patch("/{event_id}/capacity", response_model=EventResponse)
async def resize_capacity_endpoint(
    event_id: int,
    body: CapacityUpdate,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
    cache: CacheSink = Depends(get_cache_sink),
    clock: Clock = Depends(get_clock),
):
    """
    Change max capacity. Fails if it would drop below the number of
    confirmed reservations; available spots are recomputed from the rest.
    """
    event = await event_service.resize_event_capacity(db, event_id, body.max_capacity, caller, cache=cache)
    return event_view(event, clock())


@router.delete("/{event_id}")
async def delete_event_endpoint(
    event_id: int,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
    cache: CacheSink = Depends(get_cache_sink),
):
    """Delete an event and its reservations. Admins or the event's creator."""
    await event_service.delete_event(db, event_id, caller, cache=cache)
    return {"message": "Event deleted successfully", "event_id": event_id}
