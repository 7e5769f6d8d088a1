"""
Payment schemas for request/response models
"""

from typing import Optional
from pydantic import BaseModel, Field
import uuid


class CreatePaymentRequest(BaseModel):
    """
    Either a reservation (in-app payment sheet) or a meetup member (hosted
    checkout). Exactly one of ``reservation_id`` and ``member_id`` is used.
    """
    reservation_id: Optional[uuid.UUID] = None
    member_id: Optional[uuid.UUID] = None
    amount_cents: int = Field(..., gt=0)
    description: Optional[str] = Field(None, max_length=500)
    meetup_id: Optional[uuid.UUID] = None
    meetup_name: Optional[str] = Field(None, max_length=255)


class PaymentIntentResponse(BaseModel):
    client_secret: str
    payment_intent_id: str


class CheckoutSessionResponse(BaseModel):
    url: str


class RefundPaymentRequest(BaseModel):
    member_id: uuid.UUID


class RefundPaymentResponse(BaseModel):
    success: bool = True
