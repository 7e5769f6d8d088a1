"""
Event model
"""

from sqlalchemy import Boolean, Column, String, Integer, Text, DateTime
from sqlalchemy.orm import relationship

from fairway.models.base import BaseModel


class Event(BaseModel):
    """
    Club event with a fixed number of seats
    """
    __tablename__ = "events"

    name = Column(String(255), nullable=False, index=True)
    description = Column(Text)
    location = Column(String(255))
    starts_at = Column(DateTime(timezone=True), index=True)
    capacity = Column(Integer, nullable=False)
    price_cents = Column(Integer, default=0, nullable=False)
    currency = Column(String(3), default="usd", nullable=False)
    waitlist_enabled = Column(Boolean, default=True, nullable=False)
    # Bumped by every write that consumes a seat; conditional updates on it
    # serialize seat allocation per event
    promotion_seq = Column(Integer, default=0, nullable=False)

    # Relationships
    bookings = relationship("EventBooking", back_populates="event", cascade="all, delete-orphan")
    waitlist_entries = relationship("WaitlistEntry", back_populates="event", cascade="all, delete-orphan")

    @property
    def is_free(self) -> bool:
        return not self.price_cents

    def __repr__(self):
        return f"<Event(id={self.id}, name={self.name}, capacity={self.capacity})>"
