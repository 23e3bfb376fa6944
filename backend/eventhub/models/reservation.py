"""
Reservation model: one ledger entry holding one spot of an event.

Key design decisions:
- Partial unique index on (event_id, user_id) WHERE status = 'confirmed'.
  Canceled rows never block a new reservation for the same pair, and the
  index is the authoritative guard against double booking.
- Status is never reverted: canceled is terminal, re-booking creates a new row
"""

import enum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, CheckConstraint, func, text
from sqlalchemy.orm import relationship

from eventhub.db.base import Base, TimestampMixin


class ReservationStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    CANCELED = "canceled"


ACTIVE_RESERVATION_INDEX = "uq_active_reservation_per_user_per_event"


class Reservation(Base, TimestampMixin):
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    reservation_date = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    status = Column(String(20), nullable=False, default=ReservationStatus.CONFIRMED.value)

    # Relationships
    user = relationship("User", back_populates="reservations")
    event = relationship("Event", back_populates="reservations")

    __table_args__ = (
        Index(
            ACTIVE_RESERVATION_INDEX,
            "event_id",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'confirmed'"),
            sqlite_where=text("status = 'confirmed'"),
        ),
        CheckConstraint("status IN ('confirmed', 'canceled')", name="check_reservation_status"),
    )

    @property
    def is_active(self) -> bool:
        return self.status == ReservationStatus.CONFIRMED.value

    def __repr__(self) -> str:
        return f"<Reservation(id={self.id}, user={self.user_id}, event={self.event_id}, status={self.status})>"
