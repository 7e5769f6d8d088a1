"""
Promotion Coordinator

Turns freed seats into waitlist offers and drives every offer to its end
state. It is the only writer of ``offered`` and the only thing that fills a
freed seat.

    waiting --promote--> offered --accept--> accepted
                         offered --expire--> expired (-> waiting on re-queue)
                         offered --decline-> declined
    waiting|offered --cancel--> cancelled

Each transition is a conditional update, so concurrent handlers for the same
event (two cancellations, a sweep racing a user's click) cannot both win.
State is committed before any side effect: charges and notifications run
after the transaction and their failures never undo it.
"""

import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Dict, Optional, Tuple
from uuid import UUID

from sqlalchemy.exc import IntegrityError

from fairway.config import settings
from fairway.core.exceptions import (
    ConcurrencyError,
    ConflictError,
    NotFoundError,
    OfferExpiredError,
    ValidationError,
)
from fairway.core.metrics import metrics_collector
from fairway.models.booking import EventBooking, BookingStatus, BookingSource
from fairway.models.waitlist import WaitlistEntry, WaitlistStatus
from fairway.services.notifier import Notifier
from fairway.services.offer_clock import OfferClock
from fairway.services.payment_gateway import PaymentGateway
from fairway.services.waitlist_store import ContactChannel, SeatSnapshot, WaitlistStore

logger = logging.getLogger(__name__)


class PromotionOutcome(str, enum.Enum):
    PROMOTED = "promoted"
    NO_WAITING_ENTRIES = "no_waiting_entries"
    NO_OPEN_SEATS = "no_open_seats"
    CONTENTION = "contention"


@dataclass
class PromotionResult:
    outcome: PromotionOutcome
    entry: Optional[WaitlistEntry] = None
    offer_expires_at: Optional[datetime] = None
    auto_charged: bool = False

    @property
    def promoted(self) -> bool:
        return self.outcome == PromotionOutcome.PROMOTED


class PromotionCoordinator:
    """Single-flight-per-event waitlist state machine"""

    def __init__(
        self,
        store: WaitlistStore,
        clock: OfferClock,
        notifier: Notifier,
        gateway: PaymentGateway,
        max_attempts: int = None,
        auto_charge: bool = None,
        requeue_expired: bool = None,
        max_requeues: int = None
    ):
        self.store = store
        self.clock = clock
        self.notifier = notifier
        self.gateway = gateway
        self.max_attempts = max_attempts or settings.WAITLIST_PROMOTION_MAX_ATTEMPTS
        self.auto_charge = settings.WAITLIST_AUTO_CHARGE_ENABLED if auto_charge is None else auto_charge
        self.requeue_expired = settings.WAITLIST_REQUEUE_EXPIRED if requeue_expired is None else requeue_expired
        self.max_requeues = settings.WAITLIST_MAX_REQUEUES if max_requeues is None else max_requeues

    # Seat freed -> offer

    async def on_seat_freed(self, event_id: UUID) -> PromotionResult:
        """
        Offer the freed seat to the lowest waiting position. Lost races are
        retried; after the last attempt the seat is reported as a missed
        promotion for an operator to look at.
        """
        async with metrics_collector.track_promotion():
            for attempt in range(1, self.max_attempts + 1):
                try:
                    result, snapshot = await self._promote_next(event_id)
                except ConcurrencyError:
                    logger.debug(f"Lost promotion race for event {event_id} (attempt {attempt}/{self.max_attempts})")
                    await metrics_collector.record_promotion_conflict()
                    continue

                if not result.promoted:
                    logger.debug(f"Nothing to promote for event {event_id}: {result.outcome.value}")
                    return result

                await metrics_collector.record_transition(WaitlistStatus.OFFERED.value)
                logger.info(
                    f"Offered seat at event {event_id} to waitlist entry {result.entry.id} "
                    f"(position {result.entry.position}) until {result.offer_expires_at.isoformat()}"
                )
                return await self._fulfil_offer(result, snapshot)

        logger.error(
            f"Missed waitlist promotion for event {event_id} after {self.max_attempts} attempts",
            extra={"extra": {
                "signal": "missed_promotion",
                "event_id": str(event_id),
                "attempts": self.max_attempts,
            }}
        )
        await metrics_collector.record_missed_promotion()
        return PromotionResult(PromotionOutcome.CONTENTION)

    async def _promote_next(self, event_id: UUID) -> Tuple[PromotionResult, SeatSnapshot]:
        async with self.store.transaction() as session:
            snapshot = await self.store.seat_snapshot(event_id, session=session)
            if snapshot is None:
                raise NotFoundError("Event", event_id)
            if snapshot.open_seats <= 0:
                return PromotionResult(PromotionOutcome.NO_OPEN_SEATS), snapshot

            entry = await self.store.next_waiting(event_id, session=session)
            if entry is None:
                return PromotionResult(PromotionOutcome.NO_WAITING_ENTRIES), snapshot

            if not await self.store.claim_event(event_id, snapshot.promotion_seq, session=session):
                raise ConcurrencyError(f"Seats at event {event_id} changed during promotion")

            expires_at = await self.clock.start_offer(entry, session=session)
            if expires_at is None:
                raise ConcurrencyError(f"Waitlist entry {entry.id} was taken by another caller")

            entry = await self.store.get(entry.id, session=session)

        return PromotionResult(PromotionOutcome.PROMOTED, entry=entry, offer_expires_at=expires_at), snapshot

    def _should_auto_charge(self, entry: WaitlistEntry, snapshot: SeatSnapshot) -> bool:
        return bool(self.auto_charge and entry.saved_payment_method_ref and snapshot.price_cents > 0)

    async def _fulfil_offer(self, result: PromotionResult, snapshot: SeatSnapshot) -> PromotionResult:
        entry = result.entry
        contact = ContactChannel.from_entry(entry)

        if self._should_auto_charge(entry, snapshot):
            charge = await self.gateway.charge(
                entry.saved_payment_method_ref,
                snapshot.price_cents,
                currency=snapshot.currency,
                customer_ref=entry.payment_customer_ref,
                metadata={"waitlist_entry_id": str(entry.id), "event_id": str(entry.event_id)},
                idempotency_key=f"waitlist-auto-charge-{entry.id}-{entry.requeue_count}",
            )
            await metrics_collector.record_auto_charge(charge.success)

            if charge.success:
                accepted = await self._accept(entry, charge_ref=charge.charge_ref, amount_cents=snapshot.price_cents)
                if not accepted:
                    # The payment webhook may have accepted the entry first
                    current = await self.store.get(entry.id)
                    accepted = (
                        current is not None
                        and current.status == WaitlistStatus.ACCEPTED
                        and current.charge_ref == charge.charge_ref
                    )

                if accepted:
                    await metrics_collector.record_transition(WaitlistStatus.ACCEPTED.value)
                    logger.info(f"Auto-charged and accepted waitlist entry {entry.id} ({charge.charge_ref})")
                    await self._notify(
                        self.notifier.send_confirmation(contact, entry.event_id, str(entry.id), event_name=snapshot.name),
                        entry
                    )
                    return PromotionResult(
                        PromotionOutcome.PROMOTED,
                        entry=await self.store.get(entry.id),
                        offer_expires_at=result.offer_expires_at,
                        auto_charged=True,
                    )

                logger.warning(f"Waitlist entry {entry.id} left the offer while being charged; refunding {charge.charge_ref}")
                await self._refund(charge.charge_ref, entry.id)
                return result

            logger.warning(
                f"Auto-charge for waitlist entry {entry.id} failed ({charge.reason}); "
                f"keeping the offer open and notifying"
            )

        await self._notify(
            self.notifier.send_offer(
                contact, entry.event_id, str(entry.id), result.offer_expires_at, event_name=snapshot.name
            ),
            entry
        )
        return result

    async def _notify(self, delivery: Awaitable[bool], entry: WaitlistEntry) -> bool:
        """Notification is best-effort; the committed state stands either way"""
        try:
            delivered = await delivery
        except Exception as e:
            logger.warning(f"Notifier raised for waitlist entry {entry.id}: {e}")
            delivered = False

        if not delivered:
            logger.warning(f"Could not notify waitlist entry {entry.id}; offer stays live")
            await metrics_collector.record_notification_failure()
        return bool(delivered)

    async def _accept(self, entry: WaitlistEntry, charge_ref: Optional[str], amount_cents: int) -> bool:
        """Flip to accepted and book the seat in the same transaction"""
        now = self.clock.now()
        async with self.store.transaction() as session:
            accepted = await self.store.transition(
                entry.id,
                WaitlistStatus.OFFERED,
                WaitlistStatus.ACCEPTED,
                session=session,
                accepted_at=now,
                charge_ref=charge_ref,
            )
            if not accepted:
                return False

            session.add(EventBooking(
                event_id=entry.event_id,
                email=entry.email,
                first_name=entry.first_name,
                last_name=entry.last_name,
                phone=entry.phone,
                status=BookingStatus.CONFIRMED,
                source=BookingSource.WAITLIST,
                waitlist_entry_id=entry.id,
                amount_cents=amount_cents,
                payment_reference=charge_ref,
                confirmed_at=now,
            ))
        return True

    async def _refund(self, charge_ref: str, entry_id: UUID) -> bool:
        result = await self.gateway.refund(charge_ref)
        if not result.success:
            logger.error(
                f"Refund of {charge_ref} for waitlist entry {entry_id} failed: {result.reason}",
                extra={"extra": {"signal": "refund_failed", "charge_ref": charge_ref, "waitlist_entry_id": str(entry_id)}}
            )
        return result.success

    async def _require(self, entry_id: UUID) -> WaitlistEntry:
        entry = await self.store.get(entry_id)
        if entry is None:
            raise NotFoundError("Waitlist entry", entry_id)
        return entry

    @staticmethod
    def _not_offered(entry: WaitlistEntry) -> ConflictError:
        return ConflictError(
            f"Waitlist entry is {entry.status.value}, not offered",
            details={"status": entry.status.value}
        )

    # Offer outcomes

    async def on_offer_expired(self, entry: WaitlistEntry) -> bool:
        """
        Expire an overdue offer and cascade to the next entrant. Returns False
        when someone else already moved the entry out of offered.
        """
        requeue = self.requeue_expired and (entry.requeue_count or 0) < self.max_requeues
        expired = False

        for attempt in range(1, self.max_attempts + 1):
            try:
                async with self.store.transaction() as session:
                    expired = await self.store.transition(
                        entry.id, WaitlistStatus.OFFERED, WaitlistStatus.EXPIRED, session=session
                    )
                    if expired and requeue:
                        await self.store.requeue(entry.id, session=session)
                break
            except IntegrityError:
                # Tail position collided with a concurrent join
                logger.debug(f"Re-queue of waitlist entry {entry.id} collided (attempt {attempt})")
        else:
            logger.error(f"Could not expire waitlist entry {entry.id} after {self.max_attempts} attempts")
            return False

        if not expired:
            logger.debug(f"Waitlist entry {entry.id} already left offered; expiry skipped")
            return False

        await metrics_collector.record_transition(WaitlistStatus.EXPIRED.value)
        logger.info(f"Offer to waitlist entry {entry.id} expired{' and was re-queued' if requeue else ''}")
        await self.on_seat_freed(entry.event_id)
        return True

    async def sweep_expired_offers(self, now: Optional[datetime] = None) -> int:
        """Expire every overdue offer; safe to run concurrently with itself"""
        expired = 0
        for entry in await self.clock.find_expired_offers(now):
            if await self.on_offer_expired(entry):
                expired += 1
        return expired

    async def on_user_accepts(self, entry_id: UUID, charge_ref: Optional[str] = None) -> WaitlistEntry:
        entry = await self._require(entry_id)
        if entry.status != WaitlistStatus.OFFERED:
            raise self._not_offered(entry)

        if self.clock.is_expired(entry, self.clock.now()):
            await self.on_offer_expired(entry)
            raise OfferExpiredError(entry_id)

        snapshot = await self.store.seat_snapshot(entry.event_id)
        if charge_ref is None and snapshot.price_cents > 0:
            raise ValidationError("Payment is required to claim this spot")

        amount_cents = snapshot.price_cents if charge_ref else 0
        if not await self._accept(entry, charge_ref=charge_ref, amount_cents=amount_cents):
            raise self._not_offered(await self._require(entry_id))

        await metrics_collector.record_transition(WaitlistStatus.ACCEPTED.value)
        logger.info(f"Waitlist entry {entry_id} accepted its offer")
        return await self.store.get(entry_id)

    async def on_user_declines(self, entry_id: UUID) -> WaitlistEntry:
        entry = await self._require(entry_id)
        if not await self.store.transition(entry_id, WaitlistStatus.OFFERED, WaitlistStatus.DECLINED):
            raise self._not_offered(await self._require(entry_id))

        await metrics_collector.record_transition(WaitlistStatus.DECLINED.value)
        logger.info(f"Waitlist entry {entry_id} declined its offer")
        await self.on_seat_freed(entry.event_id)
        return await self.store.get(entry_id)

    async def on_user_cancels(self, entry_id: UUID) -> WaitlistEntry:
        entry = await self._require(entry_id)
        previous = await self.store.cancel(entry_id)
        if previous is None:
            current = await self._require(entry_id)
            raise ConflictError(
                f"Waitlist entry is already {current.status.value}",
                details={"status": current.status.value}
            )

        await metrics_collector.record_transition(WaitlistStatus.CANCELLED.value)
        logger.info(f"Waitlist entry {entry_id} cancelled from {previous.value}")
        if previous == WaitlistStatus.OFFERED:
            await self.on_seat_freed(entry.event_id)
        return await self.store.get(entry_id)

    # Paid claims

    async def start_claim(self, entry_id: UUID) -> Dict[str, Optional[str]]:
        """
        Begin claiming an offer. Free events are accepted on the spot; paid
        events get a payment intent whose success webhook completes the claim.
        """
        entry = await self._require(entry_id)
        if entry.status != WaitlistStatus.OFFERED:
            raise self._not_offered(entry)
        if self.clock.is_expired(entry, self.clock.now()):
            await self.on_offer_expired(entry)
            raise OfferExpiredError(entry_id)

        snapshot = await self.store.seat_snapshot(entry.event_id)
        if snapshot.price_cents <= 0:
            accepted = await self.on_user_accepts(entry_id)
            return {"status": accepted.status.value, "client_secret": None, "payment_intent_id": None}

        intent = await self.gateway.create_payment_intent(
            amount_cents=snapshot.price_cents,
            metadata={"waitlist_entry_id": str(entry.id), "event_id": str(entry.event_id)},
            description=f"{snapshot.name} - waitlist spot",
            currency=snapshot.currency,
        )
        return {"status": entry.status.value, **intent}

    async def reconcile_payment(self, entry_id: UUID, charge_ref: str) -> bool:
        """
        A claim payment succeeded. Accept the entry, or refund when the
        offer closed before the money arrived.
        """
        entry = await self.store.get(entry_id)
        if entry is not None and entry.status == WaitlistStatus.ACCEPTED and entry.charge_ref == charge_ref:
            return True

        try:
            await self.on_user_accepts(entry_id, charge_ref=charge_ref)
            return True
        except (ConflictError, NotFoundError) as e:
            logger.warning(
                f"Payment {charge_ref} for waitlist entry {entry_id} arrived after the offer closed "
                f"({e.message}); refunding"
            )
            await self._refund(charge_ref, entry_id)
            return False
