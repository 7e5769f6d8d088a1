"""
Event and direct booking endpoints
"""

from typing import Any
from uuid import UUID
import logging

from fastapi import APIRouter, Depends

from fairway.api.deps import get_booking_service, get_store
from fairway.core.database import db_manager
from fairway.core.exceptions import NotFoundError
from fairway.models.event import Event
from fairway.schemas.event import EventCreate, EventResponse, BookingCreate, BookingResponse
from fairway.services.booking_service import BookingService
from fairway.services.waitlist_store import ContactChannel, WaitlistStore

logger = logging.getLogger(__name__)
router = APIRouter()


async def _event_response(event: Event, store: WaitlistStore) -> EventResponse:
    snapshot = await store.seat_snapshot(event.id)
    return EventResponse.model_validate({
        **event.to_dict(),
        "booked_seats": snapshot.held_bookings,
        "live_offers": snapshot.live_offers,
        "available_seats": snapshot.open_seats,
        "waiting_count": await store.waiting_count(event.id),
    })


@router.post("/events", response_model=EventResponse)
async def create_event(
    request: EventCreate,
    store: WaitlistStore = Depends(get_store)
) -> Any:
    async with db_manager.atomic_transaction() as session:
        event = Event(**request.model_dump(), promotion_seq=0)
        session.add(event)
        await session.flush()
        await session.refresh(event)

    logger.info(f"Event {event.id} created with {event.capacity} seats")
    return await _event_response(event, store)


@router.get("/events/{event_id}", response_model=EventResponse)
async def get_event(event_id: UUID, store: WaitlistStore = Depends(get_store)) -> Any:
    """
    Event details with availability derived from bookings and live offers
    """
    async with db_manager.atomic_transaction() as session:
        event = await session.get(Event, event_id)
    if event is None:
        raise NotFoundError("Event", event_id)
    return await _event_response(event, store)


@router.post("/events/{event_id}/bookings", response_model=BookingResponse)
async def create_booking(
    event_id: UUID,
    request: BookingCreate,
    booking_service: BookingService = Depends(get_booking_service)
) -> Any:
    """
    Book a seat. Paid events return a checkout url and hold the seat until
    checkout completes or the hold lapses.
    """
    contact = ContactChannel(
        email=request.email,
        first_name=request.first_name,
        last_name=request.last_name,
        phone=request.phone,
    )
    result = await booking_service.create_booking(event_id, contact)
    return BookingResponse.model_validate({
        **result.booking.to_dict(),
        "checkout_url": result.checkout_url,
    })


@router.post("/bookings/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: UUID,
    booking_service: BookingService = Depends(get_booking_service)
) -> Any:
    return await booking_service.cancel_booking(booking_id)
