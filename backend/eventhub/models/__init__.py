from eventhub.models.user import User
from eventhub.models.event import Event
from eventhub.models.reservation import Reservation, ReservationStatus

__all__ = ["User", "Event", "Reservation", "ReservationStatus"]
