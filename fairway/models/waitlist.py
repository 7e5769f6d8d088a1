"""
Waitlist entry model
"""

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Enum, Index, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
import enum

from fairway.models.base import BaseModel


class WaitlistStatus(str, enum.Enum):
    WAITING = "waiting"
    OFFERED = "offered"
    ACCEPTED = "accepted"
    EXPIRED = "expired"
    DECLINED = "declined"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({
    WaitlistStatus.ACCEPTED,
    WaitlistStatus.DECLINED,
    WaitlistStatus.CANCELLED,
})

# EXPIRED -> WAITING only happens under the re-queue policy
ALLOWED_TRANSITIONS = {
    WaitlistStatus.WAITING: frozenset({WaitlistStatus.OFFERED, WaitlistStatus.CANCELLED}),
    WaitlistStatus.OFFERED: frozenset({
        WaitlistStatus.ACCEPTED,
        WaitlistStatus.EXPIRED,
        WaitlistStatus.DECLINED,
        WaitlistStatus.CANCELLED,
    }),
    WaitlistStatus.EXPIRED: frozenset({WaitlistStatus.WAITING}),
}


class WaitlistEntry(BaseModel):
    """
    A person queued for a seat at a full event
    """
    __tablename__ = "event_waitlist_entries"
    __table_args__ = (
        UniqueConstraint('event_id', 'position', name='uq_waitlist_event_position'),
        Index('ix_waitlist_event_status_position', 'event_id', 'status', 'position'),
    )

    event_id = Column(Uuid(as_uuid=True), ForeignKey("events.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    status = Column(
        Enum(WaitlistStatus),
        default=WaitlistStatus.WAITING,
        nullable=False,
        index=True
    )

    # Contact channel
    email = Column(String(255), nullable=False, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    phone = Column(String(50))
    user_id = Column(Uuid(as_uuid=True), ForeignKey("profiles.id"))

    # Stored payment method for automatic charging
    saved_payment_method_ref = Column(String(255))
    payment_customer_ref = Column(String(255))

    # Offer lifecycle
    offer_expires_at = Column(DateTime(timezone=True), index=True)
    notified_at = Column(DateTime(timezone=True))
    accepted_at = Column(DateTime(timezone=True))
    charge_ref = Column(String(255))
    requeue_count = Column(Integer, default=0, nullable=False)

    # Relationships
    event = relationship("Event", back_populates="waitlist_entries")
    booking = relationship("EventBooking", back_populates="waitlist_entry", uselist=False)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self):
        return f"<WaitlistEntry(id={self.id}, event_id={self.event_id}, position={self.position}, status={self.status})>"
