"""
Waitlist schemas
"""

from pydantic import ConfigDict, EmailStr, Field
from typing import Optional
from uuid import UUID
from datetime import datetime

from fairway.models.waitlist import WaitlistStatus
from fairway.schemas.base import BaseSchema, RecordSchema


class PromoteWaitlistRequest(BaseSchema):
    event_id: UUID


class JoinWaitlistRequest(BaseSchema):
    """Join an event's waitlist"""
    event_id: UUID
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=50)
    user_id: Optional[UUID] = None
    # Card saved during join, charged automatically when a spot opens
    payment_method_ref: Optional[str] = None
    payment_customer_ref: Optional[str] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "event_id": "xxxxxxxx-xxxx-xxxx-xxxx-xxxxxxxxxxxx",
            "first_name": "Ada",
            "last_name": "Palmer",
            "email": "ada@example.com",
        }
    })


class JoinWaitlistResponse(BaseSchema):
    waitlist_entry_id: UUID
    position: int


class WaitlistEntryResponse(RecordSchema):
    """A waitlist entry as the entrant and club staff see it"""
    event_id: UUID
    position: int
    status: WaitlistStatus
    email: str
    first_name: str
    last_name: str
    offer_expires_at: Optional[datetime] = None
    notified_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    requeue_count: int = 0


class ClaimResponse(BaseSchema):
    status: WaitlistStatus
    client_secret: Optional[str] = None
    payment_intent_id: Optional[str] = None


class SweepResponse(BaseSchema):
    expired_bookings: int
    expired_offers: int
    events_promoted: int
