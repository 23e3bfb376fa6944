"""
Event model with spot inventory tracking.

Key design decisions:
- `available_spots` is denormalized for performance (avoids COUNT query on reservations).
  It always equals max_capacity - count(confirmed reservations) and is only
  written by the capacity ledger.
- CHECK constraints keep 0 <= available_spots <= max_capacity at the DB level
- Index on `event_date` for range queries (upcoming events, date filter)
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship

from eventhub.db.base import Base, TimestampMixin


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    event_date = Column(DateTime(timezone=True), nullable=False)
    location = Column(String(255), nullable=True)
    online_link = Column(String(500), nullable=True)
    max_capacity = Column(Integer, nullable=False)
    available_spots = Column(Integer, nullable=False)
    creator_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Relationships
    creator = relationship("User", back_populates="events")
    reservations = relationship("Reservation", back_populates="event")

    __table_args__ = (
        CheckConstraint("available_spots >= 0", name="check_available_spots_non_negative"),
        CheckConstraint("max_capacity > 0", name="check_max_capacity_positive"),
        CheckConstraint("available_spots <= max_capacity", name="check_available_lte_capacity"),
        Index("ix_events_event_date", "event_date"),
    )

    @property
    def reserved_spots(self) -> int:
        return self.max_capacity - self.available_spots

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, name={self.name}, available={self.available_spots}/{self.max_capacity})>"
