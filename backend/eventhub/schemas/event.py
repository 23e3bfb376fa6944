"""
Pydantic schemas for event-related request/response validation.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class EventCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    event_date: datetime
    location: Optional[str] = Field(None, max_length=255)
    online_link: Optional[str] = Field(None, max_length=500)
    max_capacity: int = Field(..., gt=0, le=100000)


class EventUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    event_date: Optional[datetime] = None
    location: Optional[str] = Field(None, max_length=255)
    online_link: Optional[str] = Field(None, max_length=500)
    max_capacity: Optional[int] = Field(None, gt=0, le=100000)


class CapacityUpdate(BaseModel):
    max_capacity: int = Field(..., gt=0, le=100000)


class EventResponse(BaseModel):
    id: int
    name: str
    description: Optional[str]
    event_date: datetime
    location: Optional[str]
    online_link: Optional[str]
    max_capacity: int
    available_spots: int
    creator_id: int
    created_at: datetime
    spot_status: Optional[str] = None

    model_config = {"from_attributes": True}


class Pagination(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int


class EventListResponse(BaseModel):
    events: list[EventResponse]
    pagination: Pagination
    cached: bool = False


class PopularEventsResponse(BaseModel):
    events: list[EventResponse]
    cached: bool = False


class DashboardStats(BaseModel):
    total_events: int
    active_events: int
