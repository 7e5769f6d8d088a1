"""
Pydantic schemas for request and response validation
"""

from fairway.schemas.waitlist import (
    PromoteWaitlistRequest,
    JoinWaitlistRequest,
    JoinWaitlistResponse,
    WaitlistEntryResponse,
    ClaimResponse,
    SweepResponse
)
from fairway.schemas.event import (
    EventCreate,
    EventResponse,
    BookingCreate,
    BookingResponse
)
from fairway.schemas.payment import (
    CreatePaymentRequest,
    PaymentIntentResponse,
    CheckoutSessionResponse,
    RefundPaymentRequest,
    RefundPaymentResponse
)
from fairway.schemas.notification import SendNotificationRequest

__all__ = [
    "PromoteWaitlistRequest",
    "JoinWaitlistRequest",
    "JoinWaitlistResponse",
    "WaitlistEntryResponse",
    "ClaimResponse",
    "SweepResponse",
    "EventCreate",
    "EventResponse",
    "BookingCreate",
    "BookingResponse",
    "CreatePaymentRequest",
    "PaymentIntentResponse",
    "CheckoutSessionResponse",
    "RefundPaymentRequest",
    "RefundPaymentResponse",
    "SendNotificationRequest"
]
