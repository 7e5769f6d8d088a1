"""
Waitlist endpoints: joining, promotion, and the offer lifecycle
"""

from typing import Any, List, Optional
from uuid import UUID
import logging

from fastapi import APIRouter, Depends

from fairway.api.deps import get_coordinator, get_store, get_sweeper
from fairway.core.exceptions import ConflictError, NotFoundError, ValidationError
from fairway.models.waitlist import WaitlistStatus
from fairway.schemas.waitlist import (
    PromoteWaitlistRequest,
    JoinWaitlistRequest,
    JoinWaitlistResponse,
    WaitlistEntryResponse,
    ClaimResponse,
    SweepResponse
)
from fairway.services.expiry_sweeper import ExpirySweeper
from fairway.services.promotion_coordinator import PromotionCoordinator, PromotionOutcome
from fairway.services.waitlist_store import ContactChannel, WaitlistStore

logger = logging.getLogger(__name__)
router = APIRouter()

_NO_PROMOTION_MESSAGES = {
    PromotionOutcome.NO_WAITING_ENTRIES: "No waiting entries to promote",
    PromotionOutcome.NO_OPEN_SEATS: "No open seats to fill",
}


@router.post("/promote-waitlist")
async def promote_waitlist(
    request: PromoteWaitlistRequest,
    coordinator: PromotionCoordinator = Depends(get_coordinator)
) -> Any:
    """
    Offer a released seat to the next person on the event's waitlist
    """
    result = await coordinator.on_seat_freed(request.event_id)

    if result.outcome in _NO_PROMOTION_MESSAGES:
        return {"message": _NO_PROMOTION_MESSAGES[result.outcome]}

    if result.outcome == PromotionOutcome.CONTENTION:
        return {
            "promoted": False,
            "message": "Promotion deferred after repeated conflicts; flagged for review",
        }

    return {
        "promoted": True,
        "waitlist_entry_id": str(result.entry.id),
        "email": result.entry.email,
        "offer_expires_at": result.offer_expires_at.isoformat(),
        "auto_charged": result.auto_charged,
    }


@router.post("/join-waitlist", response_model=JoinWaitlistResponse)
async def join_waitlist(
    request: JoinWaitlistRequest,
    store: WaitlistStore = Depends(get_store),
    coordinator: PromotionCoordinator = Depends(get_coordinator)
) -> Any:
    """
    Add an entrant to the end of an event's waitlist
    """
    snapshot = await store.seat_snapshot(request.event_id)
    if snapshot is None:
        raise NotFoundError("Event")
    if not snapshot.waitlist_enabled:
        raise ValidationError("Waitlist not enabled for this event", field="event_id")
    if await store.find_active_by_email(request.event_id, request.email):
        raise ConflictError("You're already on the waitlist for this event")

    contact = ContactChannel(
        email=request.email,
        first_name=request.first_name,
        last_name=request.last_name,
        phone=request.phone,
        user_id=request.user_id,
    )
    entry = await store.enqueue(
        request.event_id,
        contact,
        payment_method_ref=request.payment_method_ref,
        payment_customer_ref=request.payment_customer_ref,
    )
    logger.info(f"Waitlist entry {entry.id} joined event {request.event_id} at position {entry.position}")

    try:
        delivered = await coordinator.notifier.send_joined(
            contact, request.event_id, entry.position, event_name=snapshot.name
        )
    except Exception as e:
        logger.warning(f"Failed to send waitlist confirmation for entry {entry.id}: {e}")
        delivered = False
    if not delivered:
        logger.warning(f"Waitlist confirmation for entry {entry.id} was not delivered")

    # A seat may be sitting open after a missed promotion
    if snapshot.open_seats > 0:
        await coordinator.on_seat_freed(request.event_id)

    return JoinWaitlistResponse(waitlist_entry_id=entry.id, position=entry.position)


@router.get("/events/{event_id}/waitlist", response_model=List[WaitlistEntryResponse])
async def list_event_waitlist(
    event_id: UUID,
    status: Optional[WaitlistStatus] = None,
    store: WaitlistStore = Depends(get_store)
) -> Any:
    if await store.seat_snapshot(event_id) is None:
        raise NotFoundError("Event", event_id)
    return await store.list_for_event(event_id, status=status)


@router.post("/waitlist/sweep", response_model=SweepResponse)
async def sweep_waitlist(sweeper: ExpirySweeper = Depends(get_sweeper)) -> Any:
    """
    Run one expiry sweep now (lapsed checkouts and overdue offers)
    """
    result = await sweeper.run_once()
    return result.to_dict()


@router.get("/waitlist/{entry_id}", response_model=WaitlistEntryResponse)
async def get_waitlist_entry(entry_id: UUID, store: WaitlistStore = Depends(get_store)) -> Any:
    entry = await store.get(entry_id)
    if entry is None:
        raise NotFoundError("Waitlist entry", entry_id)
    return entry


@router.post("/waitlist/{entry_id}/claim", response_model=ClaimResponse)
async def claim_offer(
    entry_id: UUID,
    coordinator: PromotionCoordinator = Depends(get_coordinator)
) -> Any:
    """
    Claim an offered spot. Paid events return a payment intent for the
    payment sheet; the seat is booked once the payment succeeds.
    """
    return await coordinator.start_claim(entry_id)


@router.post("/waitlist/{entry_id}/accept", response_model=WaitlistEntryResponse)
async def accept_offer(
    entry_id: UUID,
    coordinator: PromotionCoordinator = Depends(get_coordinator)
) -> Any:
    return await coordinator.on_user_accepts(entry_id)


@router.post("/waitlist/{entry_id}/decline", response_model=WaitlistEntryResponse)
async def decline_offer(
    entry_id: UUID,
    coordinator: PromotionCoordinator = Depends(get_coordinator)
) -> Any:
    return await coordinator.on_user_declines(entry_id)


@router.post("/waitlist/{entry_id}/cancel", response_model=WaitlistEntryResponse)
async def cancel_entry(
    entry_id: UUID,
    coordinator: PromotionCoordinator = Depends(get_coordinator)
) -> Any:
    return await coordinator.on_user_cancels(entry_id)
