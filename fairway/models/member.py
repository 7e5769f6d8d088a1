"""
Meetup member payment model
"""

from sqlalchemy import Column, String, ForeignKey, Enum, Integer, DateTime, Uuid
import enum

from fairway.models.base import BaseModel


class MemberPaymentStatus(str, enum.Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    REFUNDED = "refunded"


class MeetupMember(BaseModel):
    """
    A member's paid spot in a meetup
    """
    __tablename__ = "meetup_members"

    meetup_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("profiles.id"), index=True)
    amount_cents = Column(Integer)
    payment_status = Column(
        Enum(MemberPaymentStatus),
        default=MemberPaymentStatus.UNPAID,
        nullable=False,
        index=True
    )
    stripe_payment_intent_id = Column(String(255))
    checkout_session_id = Column(String(255))
    paid_at = Column(DateTime(timezone=True))
    refunded_at = Column(DateTime(timezone=True))

    def __repr__(self):
        return f"<MeetupMember(id={self.id}, meetup_id={self.meetup_id}, payment_status={self.payment_status})>"
