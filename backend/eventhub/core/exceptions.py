"""
Domain errors raised by the services.

Every failure the core can produce carries an ``ErrorKind``. Business-rule
violations are expected outcomes for the caller and are translated to HTTP
responses by the handler registered in ``eventhub.main``. Only
``StorageFailureError`` represents an operational fault.
"""

import enum


class ErrorKind(str, enum.Enum):
    EVENT_NOT_FOUND = "EventNotFound"
    EVENT_IN_PAST = "EventInPast"
    SELF_RESERVATION_FORBIDDEN = "SelfReservationForbidden"
    ALREADY_RESERVED = "AlreadyReserved"
    NO_CAPACITY = "NoCapacity"
    RESERVATION_NOT_FOUND = "ReservationNotFound"
    FORBIDDEN = "Forbidden"
    ALREADY_CANCELED = "AlreadyCanceled"
    CAPACITY_BELOW_RESERVED_FLOOR = "CapacityBelowReservedFloor"
    USER_NOT_FOUND = "UserNotFound"
    EMAIL_TAKEN = "EmailTaken"
    SELF_DELETION_FORBIDDEN = "SelfDeletionForbidden"
    STORAGE_FAILURE = "StorageFailure"


class ReservationError(Exception):
    """Base class for all reservation core errors."""

    kind: ErrorKind
    default_message = "Reservation operation failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class EventNotFoundError(ReservationError):
    kind = ErrorKind.EVENT_NOT_FOUND
    default_message = "Event not found"


class EventInPastError(ReservationError):
    kind = ErrorKind.EVENT_IN_PAST
    default_message = "Cannot reserve spots for past events"


class SelfReservationForbiddenError(ReservationError):
    kind = ErrorKind.SELF_RESERVATION_FORBIDDEN
    default_message = "You cannot reserve a spot for your own event"


class AlreadyReservedError(ReservationError):
    kind = ErrorKind.ALREADY_RESERVED
    default_message = "You already have a reservation for this event"


class NoCapacityError(ReservationError):
    kind = ErrorKind.NO_CAPACITY
    default_message = "No available spots for this event"


class ReservationNotFoundError(ReservationError):
    kind = ErrorKind.RESERVATION_NOT_FOUND
    default_message = "Reservation not found"


class ForbiddenError(ReservationError):
    kind = ErrorKind.FORBIDDEN
    default_message = "You are not allowed to perform this action"


class AlreadyCanceledError(ReservationError):
    kind = ErrorKind.ALREADY_CANCELED
    default_message = "Reservation is already canceled"


class CapacityBelowReservedFloorError(ReservationError):
    kind = ErrorKind.CAPACITY_BELOW_RESERVED_FLOOR
    default_message = "Cannot reduce capacity below the number of current reservations"

    def __init__(self, reserved: int, requested: int):
        self.reserved = reserved
        self.requested = requested
        super().__init__(
            f"Cannot reduce capacity to {requested}, below {reserved} (current reservations)"
        )


class UserNotFoundError(ReservationError):
    kind = ErrorKind.USER_NOT_FOUND
    default_message = "User not found"


class EmailTakenError(ReservationError):
    kind = ErrorKind.EMAIL_TAKEN
    default_message = "Email is already taken"


class SelfDeletionForbiddenError(ReservationError):
    kind = ErrorKind.SELF_DELETION_FORBIDDEN
    default_message = "Cannot delete your own account"


class StorageFailureError(ReservationError):
    """Transaction could not complete; all partial writes were rolled back."""

    kind = ErrorKind.STORAGE_FAILURE
    default_message = "Internal server error"
