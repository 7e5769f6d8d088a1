"""
Event and booking schemas
"""

from pydantic import ConfigDict, EmailStr, Field
from typing import Optional
from uuid import UUID
from datetime import datetime

from fairway.models.booking import BookingStatus, BookingSource
from fairway.schemas.base import BaseSchema, RecordSchema


class EventBase(BaseSchema):
    """Base event schema"""
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    location: Optional[str] = Field(None, max_length=255)
    starts_at: Optional[datetime] = None
    capacity: int = Field(..., gt=0)
    price_cents: int = Field(0, ge=0)
    currency: str = Field("usd", min_length=3, max_length=3)
    waitlist_enabled: bool = True


class EventCreate(EventBase):
    """Event creation schema"""

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "name": "Member-Guest Scramble",
            "location": "North Course",
            "starts_at": "2026-06-14T08:00:00Z",
            "capacity": 72,
            "price_cents": 8500,
        }
    })


class EventResponse(EventBase, RecordSchema):
    """Event with derived seat usage"""
    booked_seats: int = 0
    live_offers: int = 0
    available_seats: int = 0
    waiting_count: int = 0


class BookingCreate(BaseSchema):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=50)


class BookingResponse(RecordSchema):
    event_id: UUID
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    status: BookingStatus
    source: BookingSource
    waitlist_entry_id: Optional[UUID] = None
    amount_cents: int
    expires_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    checkout_url: Optional[str] = None
