"""
Direct event bookings

Seat checks go through the same per-event gate as waitlist offers, so a
direct booking and a promotion can never both take the last seat. Freed
seats are handed to the promotion coordinator.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fairway.config import settings
from fairway.core.exceptions import ConcurrencyError, ConflictError, NotFoundError, PaymentProviderError
from fairway.models.booking import EventBooking, BookingStatus, BookingSource, SEAT_HOLDING_STATUSES
from fairway.services.offer_clock import ensure_utc
from fairway.services.payment_gateway import PaymentGateway, price_line_item
from fairway.services.promotion_coordinator import PromotionCoordinator
from fairway.services.waitlist_store import ContactChannel, SeatSnapshot, WaitlistStore

logger = logging.getLogger(__name__)

BOOKING_ATTEMPTS = 3


@dataclass
class BookingResult:
    booking: EventBooking
    checkout_url: Optional[str] = None


class BookingService:
    """Books, confirms and releases event seats"""

    def __init__(
        self,
        store: WaitlistStore,
        coordinator: PromotionCoordinator,
        gateway: PaymentGateway,
        hold: Optional[timedelta] = None
    ):
        self.store = store
        self.coordinator = coordinator
        self.gateway = gateway
        self.hold = hold or timedelta(minutes=settings.BOOKING_EXPIRATION_MINUTES)

    def _now(self) -> datetime:
        return self.coordinator.clock.now()

    async def get(self, booking_id: UUID) -> EventBooking:
        async with self.store.transaction() as session:
            booking = await session.get(EventBooking, booking_id, populate_existing=True)
        if booking is None:
            raise NotFoundError("Booking", booking_id)
        return booking

    async def create_booking(self, event_id: UUID, contact: ContactChannel) -> BookingResult:
        """
        Take a seat if one is open. Free events confirm on the spot; paid
        events hold the seat as pending until checkout completes or lapses.
        """
        booking, snapshot = await self._reserve(event_id, contact)
        if booking.status == BookingStatus.CONFIRMED:
            logger.info(f"Confirmed free booking {booking.id} for event {event_id}")
            return BookingResult(booking=booking)

        try:
            checkout = await self.gateway.create_checkout_session(
                client_reference_id=str(booking.id),
                line_items=[price_line_item(snapshot.name, snapshot.price_cents, currency=snapshot.currency)],
                success_url=f"{settings.WIDGET_BASE_URL}/events/{event_id}/bookings/{booking.id}?status=success",
                cancel_url=f"{settings.WIDGET_BASE_URL}/events/{event_id}/bookings/{booking.id}?status=cancelled",
                metadata={"booking_id": str(booking.id), "event_id": str(event_id)},
                customer_email=contact.email,
                expires_at=int(ensure_utc(booking.expires_at).timestamp()),
            )
        except PaymentProviderError:
            logger.error(f"Checkout for booking {booking.id} could not be created; releasing the seat")
            await self._release(booking.id, event_id)
            raise

        async with self.store.transaction() as session:
            await session.execute(
                update(EventBooking)
                .where(EventBooking.id == booking.id)
                .values(checkout_session_id=checkout["id"])
            )
        booking.checkout_session_id = checkout["id"]

        logger.info(f"Held seat for booking {booking.id} at event {event_id} until {ensure_utc(booking.expires_at).isoformat()}")
        return BookingResult(booking=booking, checkout_url=checkout["url"])

    async def _reserve(self, event_id: UUID, contact: ContactChannel):
        """
        Walk-up bookings only get seats nobody on the waitlist is owed.
        Open seats that belong to waiters are handed to the coordinator.
        """
        for attempt in range(1, BOOKING_ATTEMPTS + 1):
            now = self._now()
            try:
                async with self.store.transaction() as session:
                    snapshot = await self.store.seat_snapshot(event_id, session=session)
                    if snapshot is None:
                        raise NotFoundError("Event", event_id)
                    if snapshot.bookable_seats <= 0:
                        booking = None
                    else:
                        booking = await self._insert_booking(session, snapshot, contact, now)

                if booking is None:
                    await self._refuse_full(snapshot)
                return booking, snapshot
            except ConcurrencyError:
                logger.debug(f"Lost booking race for event {event_id} (attempt {attempt}/{BOOKING_ATTEMPTS})")

        raise ConflictError("Seats for this event are changing quickly; please try again")

    async def _refuse_full(self, snapshot: SeatSnapshot):
        if snapshot.open_seats > 0:
            logger.info(
                f"Booking for event {snapshot.event_id} refused: {snapshot.open_seats} open seats "
                f"are owed to {snapshot.waiting} waitlist entries"
            )
            await self.coordinator.on_seat_freed(snapshot.event_id)
        raise ConflictError(
            "Event is full",
            details={"waitlist_available": snapshot.waitlist_enabled}
        )

    async def _insert_booking(
        self,
        session: AsyncSession,
        snapshot: SeatSnapshot,
        contact: ContactChannel,
        now: datetime
    ) -> EventBooking:
        event_id = snapshot.event_id
        if not await self.store.claim_event(event_id, snapshot.promotion_seq, session=session):
            raise ConcurrencyError(f"Seats at event {event_id} changed during booking")

        free = snapshot.price_cents <= 0
        booking = EventBooking(
            event_id=event_id,
            email=contact.email,
            first_name=contact.first_name,
            last_name=contact.last_name,
            phone=contact.phone,
            status=BookingStatus.CONFIRMED if free else BookingStatus.PENDING,
            source=BookingSource.DIRECT,
            amount_cents=snapshot.price_cents,
            expires_at=None if free else now + self.hold,
            confirmed_at=now if free else None,
        )
        session.add(booking)
        await session.flush()
        await session.refresh(booking)
        return booking

    async def _release(self, booking_id: UUID, event_id: UUID) -> bool:
        async with self.store.transaction() as session:
            result = await session.execute(
                update(EventBooking)
                .where(
                    EventBooking.id == booking_id,
                    EventBooking.status.in_(SEAT_HOLDING_STATUSES)
                )
                .values(status=BookingStatus.CANCELLED, cancelled_at=self._now(), expires_at=None)
                .execution_options(synchronize_session=False)
            )
        if result.rowcount != 1:
            return False

        await self.coordinator.on_seat_freed(event_id)
        return True

    async def cancel_booking(self, booking_id: UUID) -> EventBooking:
        """Release a held seat and offer it to the waitlist"""
        booking = await self.get(booking_id)
        if not await self._release(booking_id, booking.event_id):
            booking = await self.get(booking_id)
            raise ConflictError(
                f"Booking is already {booking.status.value}",
                details={"status": booking.status.value}
            )

        logger.info(f"Booking {booking_id} cancelled; seat at event {booking.event_id} released")
        return await self.get(booking_id)

    async def confirm_checkout(self, booking_id: UUID, payment_reference: Optional[str]) -> bool:
        """
        Checkout completed. Returns False when the hold had already lapsed,
        in which case the payment is refunded.
        """
        async with self.store.transaction() as session:
            result = await session.execute(
                update(EventBooking)
                .where(
                    EventBooking.id == booking_id,
                    EventBooking.status == BookingStatus.PENDING
                )
                .values(
                    status=BookingStatus.CONFIRMED,
                    confirmed_at=self._now(),
                    payment_reference=payment_reference,
                    expires_at=None,
                )
                .execution_options(synchronize_session=False)
            )
        if result.rowcount == 1:
            logger.info(f"Booking {booking_id} confirmed by checkout")
            return True

        booking = await self.get(booking_id)
        if booking.status == BookingStatus.CONFIRMED:
            return True

        logger.warning(f"Checkout for booking {booking_id} completed after the hold lapsed; refunding")
        if payment_reference:
            refund = await self.gateway.refund(payment_reference)
            if not refund.success:
                logger.error(
                    f"Refund of {payment_reference} for lapsed booking {booking_id} failed: {refund.reason}",
                    extra={"extra": {"signal": "refund_failed", "booking_id": str(booking_id)}}
                )
        return False

    async def expire_pending_bookings(self, now: Optional[datetime] = None) -> List[UUID]:
        """
        Cancel pending bookings whose checkout window lapsed. Returns one
        event id per released seat.
        """
        now = now or self._now()
        released = []

        async with self.store.transaction() as session:
            result = await session.execute(
                select(EventBooking.id, EventBooking.event_id).where(
                    EventBooking.status == BookingStatus.PENDING,
                    EventBooking.expires_at <= now
                )
            )
            for booking_id, event_id in result.all():
                expired = await session.execute(
                    update(EventBooking)
                    .where(
                        EventBooking.id == booking_id,
                        EventBooking.status == BookingStatus.PENDING
                    )
                    .values(status=BookingStatus.CANCELLED, cancelled_at=now, expires_at=None)
                    .execution_options(synchronize_session=False)
                )
                if expired.rowcount == 1:
                    released.append(event_id)

        if released:
            logger.info(f"Expired {len(released)} pending bookings")
        return released
