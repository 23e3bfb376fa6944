"""
Pydantic schemas for reservation-related responses.

Reservation views embed short summaries of the event and the user so a
listing can be rendered without a request per row.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel

from eventhub.schemas.event import Pagination


class EventSummary(BaseModel):
    id: int
    name: str
    event_date: datetime
    location: Optional[str]
    online_link: Optional[str]

    model_config = {"from_attributes": True}


class UserSummary(BaseModel):
    id: int
    email: str
    first_name: Optional[str]
    last_name: Optional[str]

    model_config = {"from_attributes": True}


class ReservationResponse(BaseModel):
    id: int
    event_id: int
    user_id: int
    status: str
    reservation_date: datetime
    created_at: datetime
    event: Optional[EventSummary] = None
    user: Optional[UserSummary] = None

    model_config = {"from_attributes": True}


class ReservationListResponse(BaseModel):
    reservations: list[ReservationResponse]
    pagination: Pagination


class ReservationCancelResponse(BaseModel):
    message: str
    reservation_id: int
    status: str


class ReservationCheckResponse(BaseModel):
    has_reservation: bool
    reservation: Optional[ReservationResponse] = None
