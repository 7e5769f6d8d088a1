"""
Payment API Endpoints
Payment intents, meetup checkout and refunds, and Stripe webhooks
"""

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID
import logging

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy import update

from fairway.api.deps import get_booking_service, get_coordinator, get_payment_gateway
from fairway.config import settings
from fairway.core.database import db_manager
from fairway.core.exceptions import NotFoundError, PaymentProviderError, ValidationError
from fairway.models.member import MeetupMember, MemberPaymentStatus
from fairway.schemas.payment import (
    CreatePaymentRequest,
    PaymentIntentResponse,
    CheckoutSessionResponse,
    RefundPaymentRequest,
    RefundPaymentResponse
)
from fairway.services.booking_service import BookingService
from fairway.services.payment_gateway import PaymentGateway, price_line_item
from fairway.services.promotion_coordinator import PromotionCoordinator

logger = logging.getLogger(__name__)
router = APIRouter()


def _field(obj: Any, key: str) -> Any:
    """Read a key from a Stripe object or a plain dict"""
    if obj is None or key not in obj:
        return None
    return obj[key]


def _metadata_id(value: Any) -> Optional[UUID]:
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        logger.warning(f"Ignoring webhook with malformed id {value!r}")
        return None


@router.post("/create-payment")
async def create_payment(
    request: CreatePaymentRequest,
    gateway: PaymentGateway = Depends(get_payment_gateway)
) -> Any:
    """
    Reservations get a payment intent for the in-app payment sheet; meetup
    members get a hosted checkout page that returns to the app.
    """
    if request.reservation_id:
        intent = await gateway.create_payment_intent(
            amount_cents=request.amount_cents,
            metadata={"reservation_id": str(request.reservation_id)},
            description=request.description or "Fairway Experience Booking",
        )
        return PaymentIntentResponse(**intent)

    if request.member_id:
        if request.meetup_id is None:
            raise ValidationError("meetup_id is required", field="meetup_id")

        async with db_manager.atomic_transaction() as session:
            member = await session.get(MeetupMember, request.member_id)
        if member is None:
            raise NotFoundError("Member")

        return_url = settings.MEETUP_RETURN_URL.format(meetup_id=request.meetup_id)
        checkout = await gateway.create_checkout_session(
            client_reference_id=str(request.member_id),
            line_items=[price_line_item(request.meetup_name or "Meetup", request.amount_cents)],
            success_url=return_url,
            cancel_url=return_url,
            metadata={"member_id": str(request.member_id), "meetup_id": str(request.meetup_id)},
        )

        async with db_manager.atomic_transaction() as session:
            await session.execute(
                update(MeetupMember)
                .where(MeetupMember.id == request.member_id)
                .values(checkout_session_id=checkout["id"], amount_cents=request.amount_cents)
            )
        return CheckoutSessionResponse(url=checkout["url"])

    raise ValidationError("reservation_id or member_id is required")


@router.post("/refund-payment", response_model=RefundPaymentResponse)
async def refund_payment(
    request: RefundPaymentRequest,
    gateway: PaymentGateway = Depends(get_payment_gateway)
) -> Any:
    """
    Refund a meetup member's payment. The member row is kept and marked
    refunded.
    """
    async with db_manager.atomic_transaction() as session:
        member = await session.get(MeetupMember, request.member_id)

    if member is None:
        raise NotFoundError("Member")
    if not member.stripe_payment_intent_id:
        raise ValidationError("No payment intent found for this member")
    if member.payment_status == MemberPaymentStatus.REFUNDED:
        return RefundPaymentResponse()

    result = await gateway.refund(member.stripe_payment_intent_id)
    if not result.success:
        raise PaymentProviderError("Stripe refund failed", details={"reason": result.reason})

    async with db_manager.atomic_transaction() as session:
        await session.execute(
            update(MeetupMember)
            .where(MeetupMember.id == request.member_id)
            .values(payment_status=MemberPaymentStatus.REFUNDED, refunded_at=datetime.now(timezone.utc))
        )

    logger.info(f"Refunded meetup member {request.member_id} ({result.refund_ref})")
    return RefundPaymentResponse()


@router.post("/payments/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    coordinator: PromotionCoordinator = Depends(get_coordinator),
    booking_service: BookingService = Depends(get_booking_service)
) -> Any:
    """
    Handle Stripe webhooks: waitlist claim payments, event checkouts and
    meetup checkouts
    """
    if not stripe_signature:
        raise ValidationError("Missing Stripe signature")

    payload = await request.body()
    event = gateway.construct_webhook_event(payload, stripe_signature)
    event_type = _field(event, "type")
    obj = _field(_field(event, "data"), "object")
    metadata = _field(obj, "metadata") or {}

    logger.info(f"Received Stripe webhook {event_type}")

    if event_type == "payment_intent.succeeded":
        entry_id = _metadata_id(_field(metadata, "waitlist_entry_id"))
        if entry_id:
            accepted = await coordinator.reconcile_payment(entry_id, _field(obj, "id"))
            return {"received": True, "waitlist_entry_id": str(entry_id), "accepted": accepted}

    elif event_type == "checkout.session.completed":
        payment_intent = _field(obj, "payment_intent")
        booking_id = _metadata_id(_field(metadata, "booking_id"))
        if booking_id:
            confirmed = await booking_service.confirm_checkout(booking_id, payment_intent)
            return {"received": True, "booking_id": str(booking_id), "confirmed": confirmed}

        member_id = _metadata_id(_field(obj, "client_reference_id"))
        if member_id:
            async with db_manager.atomic_transaction() as session:
                await session.execute(
                    update(MeetupMember)
                    .where(
                        MeetupMember.id == member_id,
                        MeetupMember.payment_status == MemberPaymentStatus.UNPAID
                    )
                    .values(
                        payment_status=MemberPaymentStatus.PAID,
                        paid_at=datetime.now(timezone.utc),
                        stripe_payment_intent_id=payment_intent,
                    )
                )
            logger.info(f"Meetup member {member_id} paid ({payment_intent})")
            return {"received": True, "member_id": str(member_id)}

    return {"received": True}
