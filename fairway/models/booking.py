"""
Event booking model
"""

from sqlalchemy import Column, String, ForeignKey, Enum, Integer, DateTime, Uuid
from sqlalchemy.orm import relationship
import enum

from fairway.models.base import BaseModel


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class BookingSource(str, enum.Enum):
    DIRECT = "direct"
    WAITLIST = "waitlist"


# Bookings in these states hold a seat
SEAT_HOLDING_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)


class EventBooking(BaseModel):
    """
    One seat at an event, either booked directly or claimed from the waitlist
    """
    __tablename__ = "event_bookings"

    event_id = Column(Uuid(as_uuid=True), ForeignKey("events.id"), nullable=False, index=True)
    email = Column(String(255), nullable=False, index=True)
    first_name = Column(String(100))
    last_name = Column(String(100))
    phone = Column(String(50))
    status = Column(
        Enum(BookingStatus),
        default=BookingStatus.PENDING,
        nullable=False,
        index=True
    )
    source = Column(
        Enum(BookingSource),
        default=BookingSource.DIRECT,
        nullable=False
    )
    waitlist_entry_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("event_waitlist_entries.id"),
        unique=True
    )
    amount_cents = Column(Integer, default=0, nullable=False)
    payment_reference = Column(String(255))  # Payment intent id
    checkout_session_id = Column(String(255))
    expires_at = Column(DateTime(timezone=True), index=True)
    confirmed_at = Column(DateTime(timezone=True))
    cancelled_at = Column(DateTime(timezone=True))

    # Relationships
    event = relationship("Event", back_populates="bookings")
    waitlist_entry = relationship("WaitlistEntry", back_populates="booking")

    def __repr__(self):
        return f"<EventBooking(id={self.id}, event_id={self.event_id}, status={self.status})>"
