"""
User model. Only referenced by events and reservations; credentials are
managed by the upstream auth service.
"""

from sqlalchemy import Column, Integer, String, CheckConstraint
from sqlalchemy.orm import relationship

from eventhub.db.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    role = Column(String(20), nullable=False, default="user")  # user, admin

    # Relationships
    events = relationship("Event", back_populates="creator")
    reservations = relationship("Reservation", back_populates="user")

    __table_args__ = (
        CheckConstraint("role IN ('user', 'admin')", name="check_user_role"),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
