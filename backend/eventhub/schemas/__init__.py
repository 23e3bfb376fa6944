from eventhub.schemas.event import (
    EventCreate, EventUpdate, CapacityUpdate, EventResponse, EventListResponse,
    PopularEventsResponse, Pagination, DashboardStats,
)
from eventhub.schemas.reservation import (
    ReservationResponse, ReservationListResponse, ReservationCancelResponse,
    ReservationCheckResponse, EventSummary, UserSummary,
)
from eventhub.schemas.user import (
    UserUpdate, ProfileUpdate, UserResponse, UserListResponse, UserUpdateResponse,
)

__all__ = [
    "EventCreate", "EventUpdate", "CapacityUpdate", "EventResponse", "EventListResponse",
    "PopularEventsResponse", "Pagination", "DashboardStats",
    "ReservationResponse", "ReservationListResponse", "ReservationCancelResponse",
    "ReservationCheckResponse", "EventSummary", "UserSummary",
    "UserUpdate", "ProfileUpdate", "UserResponse", "UserListResponse", "UserUpdateResponse",
]
