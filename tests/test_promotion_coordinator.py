"""
Promotion coordinator: ordering, single-flight, cascade and payment paths
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from sqlalchemy import select

from fairway.core.database import db_manager
from fairway.core.exceptions import ConflictError, NotFoundError, OfferExpiredError, ValidationError
from fairway.core.metrics import metrics_collector
from fairway.models.booking import EventBooking, BookingStatus, BookingSource
from fairway.models.waitlist import WaitlistStatus
from fairway.services.offer_clock import ensure_utc
from fairway.services.payment_gateway import ChargeResult
from fairway.services.promotion_coordinator import PromotionCoordinator, PromotionOutcome

from conftest import START, contact, create_event, fill_with_bookings, join, seed_accepted, statuses

W = WaitlistStatus


async def bookings_for(event):
    async with db_manager.atomic_transaction() as session:
        result = await session.execute(select(EventBooking).where(EventBooking.event_id == event.id))
        return list(result.scalars().all())


@pytest.mark.asyncio
class TestScenarios:

    async def test_cancellation_offers_next_in_line(self, store, booking_service, frozen_clock):
        """Capacity 10, 10 accepted, 3 waiting at 11-13; one cancels"""
        event = await create_event(capacity=10)
        bookings = await seed_accepted(event, 10)
        await join(store, event, 3, start=11)

        await booking_service.cancel_booking(bookings[0].id)

        entries = {e.position: e for e in await store.list_for_event(event.id)}
        assert entries[11].status == W.OFFERED
        assert ensure_utc(entries[11].offer_expires_at) == START + timedelta(hours=24)
        assert entries[12].status == W.WAITING
        assert entries[13].status == W.WAITING

    async def test_expired_offer_cascades_on_sweep(self, store, booking_service, coordinator, frozen_clock):
        event = await create_event(capacity=10)
        bookings = await seed_accepted(event, 10)
        await join(store, event, 3, start=11)
        await booking_service.cancel_booking(bookings[0].id)

        frozen_clock.advance(hours=25)
        expired = await coordinator.sweep_expired_offers()

        assert expired == 1
        current = await statuses(store, event)
        assert current[11] == W.EXPIRED
        assert current[12] == W.OFFERED
        assert current[13] == W.WAITING

    async def test_simultaneous_cancellations_offer_two_seats(self, store, booking_service):
        event = await create_event(capacity=10)
        bookings = await seed_accepted(event, 10)
        await join(store, event, 3, start=11)

        await asyncio.gather(
            booking_service.cancel_booking(bookings[0].id),
            booking_service.cancel_booking(bookings[1].id),
        )

        current = await statuses(store, event)
        assert current[11] == W.OFFERED
        assert current[12] == W.OFFERED
        assert current[13] == W.WAITING


@pytest.mark.asyncio
class TestOnSeatFreed:

    async def test_promotes_in_position_order(self, store, coordinator):
        event = await create_event(capacity=2)
        entries = await join(store, event, 4)

        first = await coordinator.on_seat_freed(event.id)
        second = await coordinator.on_seat_freed(event.id)
        third = await coordinator.on_seat_freed(event.id)

        assert first.entry.id == entries[0].id
        assert second.entry.id == entries[1].id
        assert third.outcome == PromotionOutcome.NO_OPEN_SEATS

        await coordinator.on_user_declines(entries[0].id)
        current = await statuses(store, event)
        assert current == {1: W.DECLINED, 2: W.OFFERED, 3: W.OFFERED, 4: W.WAITING}

    @pytest.mark.concurrency
    async def test_concurrent_calls_make_one_offer_per_seat(self, store, coordinator):
        event = await create_event(capacity=1)
        await join(store, event, 5)

        results = await asyncio.gather(*[coordinator.on_seat_freed(event.id) for _ in range(5)])

        assert sum(1 for r in results if r.promoted) == 1
        assert all(r.outcome in (PromotionOutcome.PROMOTED, PromotionOutcome.NO_OPEN_SEATS) for r in results)
        current = await statuses(store, event)
        assert list(current.values()).count(W.OFFERED) == 1
        assert current[1] == W.OFFERED

    async def test_no_waiting_entries(self, coordinator):
        event = await create_event(capacity=1)

        result = await coordinator.on_seat_freed(event.id)

        assert result.outcome == PromotionOutcome.NO_WAITING_ENTRIES
        assert result.promoted is False

    async def test_full_event_is_left_alone(self, store, coordinator):
        event = await create_event(capacity=2)
        await fill_with_bookings(event, 2)
        await join(store, event, 1)

        result = await coordinator.on_seat_freed(event.id)

        assert result.outcome == PromotionOutcome.NO_OPEN_SEATS
        assert (await statuses(store, event))[1] == W.WAITING

    async def test_unknown_event(self, coordinator):
        with pytest.raises(NotFoundError):
            await coordinator.on_seat_freed(uuid4())

    async def test_offer_is_announced_with_claim_reference(self, store, coordinator, notifier):
        event = await create_event(capacity=1)
        (entry,) = await join(store, event, 1)

        result = await coordinator.on_seat_freed(event.id)

        assert notifier.offers == [{
            "email": "golfer1@example.com",
            "event_id": event.id,
            "claim_ref": str(entry.id),
            "expires_at": result.offer_expires_at,
        }]

    async def test_notifier_failure_keeps_offer(self, store, coordinator, notifier):
        event = await create_event(capacity=1)
        await join(store, event, 1)
        notifier.fail = True

        result = await coordinator.on_seat_freed(event.id)

        assert result.promoted
        assert (await statuses(store, event))[1] == W.OFFERED
        assert (await metrics_collector.get_metrics())["notification_failures"] == 1

    async def test_notifier_exception_keeps_offer(self, store, coordinator, notifier):
        event = await create_event(capacity=1)
        await join(store, event, 1)
        notifier.raise_error = True

        result = await coordinator.on_seat_freed(event.id)

        assert result.promoted
        assert (await statuses(store, event))[1] == W.OFFERED

    async def test_exhausted_retries_signal_missed_promotion(self, store, coordinator):
        event = await create_event(capacity=1)
        await join(store, event, 1)
        store.claim_event = AsyncMock(return_value=False)

        result = await coordinator.on_seat_freed(event.id)

        assert result.outcome == PromotionOutcome.CONTENTION
        assert store.claim_event.await_count == 3
        assert (await statuses(store, event))[1] == W.WAITING
        metrics = await metrics_collector.get_metrics()
        assert metrics["missed_promotions"] == 1
        assert metrics["promotion_conflicts"] == 3


@pytest.mark.asyncio
class TestExpiry:

    async def test_sweep_is_idempotent(self, store, coordinator, frozen_clock):
        event = await create_event(capacity=1)
        await join(store, event, 1)
        await coordinator.on_seat_freed(event.id)
        frozen_clock.advance(hours=25)

        assert await coordinator.sweep_expired_offers() == 1
        assert await coordinator.sweep_expired_offers() == 0
        assert (await metrics_collector.get_metrics())["offers"]["expired"] == 1

    async def test_stale_expiry_is_a_no_op(self, store, coordinator, frozen_clock):
        event = await create_event(capacity=1)
        first, second = await join(store, event, 2)
        await coordinator.on_seat_freed(event.id)
        stale = await store.get(first.id)
        frozen_clock.advance(hours=25)

        await coordinator.sweep_expired_offers()

        assert await coordinator.on_offer_expired(stale) is False
        assert await statuses(store, event) == {1: W.EXPIRED, 2: W.OFFERED}

    @pytest.mark.concurrency
    async def test_overlapping_sweeps_converge(self, store, coordinator, frozen_clock):
        event = await create_event(capacity=1)
        await join(store, event, 3)
        await coordinator.on_seat_freed(event.id)
        frozen_clock.advance(hours=25)

        counts = await asyncio.gather(
            coordinator.sweep_expired_offers(),
            coordinator.sweep_expired_offers(),
        )

        assert sum(counts) == 1
        assert await statuses(store, event) == {1: W.EXPIRED, 2: W.OFFERED, 3: W.WAITING}

    async def test_sweep_before_deadline_does_nothing(self, store, coordinator, frozen_clock):
        event = await create_event(capacity=1)
        await join(store, event, 2)
        await coordinator.on_seat_freed(event.id)
        frozen_clock.advance(hours=23)

        assert await coordinator.sweep_expired_offers() == 0
        assert await statuses(store, event) == {1: W.OFFERED, 2: W.WAITING}

    async def test_requeue_policy_sends_expired_entry_to_tail(
        self, store, offer_clock, notifier, gateway, frozen_clock
    ):
        coordinator = PromotionCoordinator(
            store, offer_clock, notifier, gateway,
            max_attempts=3, auto_charge=False, requeue_expired=True, max_requeues=1
        )
        event = await create_event(capacity=1)
        first, second = await join(store, event, 2)
        await coordinator.on_seat_freed(event.id)

        frozen_clock.advance(hours=25)
        await coordinator.sweep_expired_offers()

        requeued = await store.get(first.id)
        assert requeued.status == W.WAITING
        assert requeued.position == 3
        assert requeued.requeue_count == 1
        assert (await store.get(second.id)).status == W.OFFERED

        # Second lapse re-offers the re-queued entry, third lapse drops it
        frozen_clock.advance(hours=25)
        await coordinator.sweep_expired_offers()
        assert (await store.get(first.id)).status == W.OFFERED

        frozen_clock.advance(hours=25)
        await coordinator.sweep_expired_offers()
        assert (await store.get(first.id)).status == W.EXPIRED


@pytest.mark.asyncio
class TestUserActions:

    async def test_accept_books_the_seat(self, store, coordinator):
        event = await create_event(capacity=1)
        (entry,) = await join(store, event, 1)
        await coordinator.on_seat_freed(event.id)
        before = await store.seat_snapshot(event.id)

        accepted = await coordinator.on_user_accepts(entry.id)

        assert accepted.status == W.ACCEPTED
        assert ensure_utc(accepted.accepted_at) == START
        assert accepted.offer_expires_at is None
        (booking,) = await bookings_for(event)
        assert booking.status == BookingStatus.CONFIRMED
        assert booking.source == BookingSource.WAITLIST
        assert booking.waitlist_entry_id == entry.id
        after = await store.seat_snapshot(event.id)
        assert after.occupied == before.occupied == 1

    async def test_accept_after_deadline_expires_and_cascades(self, store, coordinator, frozen_clock):
        event = await create_event(capacity=1)
        first, second = await join(store, event, 2)
        await coordinator.on_seat_freed(event.id)
        frozen_clock.advance(hours=24, seconds=1)

        with pytest.raises(OfferExpiredError):
            await coordinator.on_user_accepts(first.id)

        assert await statuses(store, event) == {1: W.EXPIRED, 2: W.OFFERED}
        assert await bookings_for(event) == []

    async def test_accept_paid_offer_requires_payment(self, store, coordinator):
        event = await create_event(capacity=1, price_cents=5000)
        (entry,) = await join(store, event, 1)
        await coordinator.on_seat_freed(event.id)

        with pytest.raises(ValidationError):
            await coordinator.on_user_accepts(entry.id)

    async def test_decline_cascades(self, store, coordinator):
        event = await create_event(capacity=1)
        first, second = await join(store, event, 2)
        await coordinator.on_seat_freed(event.id)

        declined = await coordinator.on_user_declines(first.id)

        assert declined.status == W.DECLINED
        assert (await store.get(second.id)).status == W.OFFERED

    async def test_cancel_waiting_entry_does_not_promote(self, store, coordinator):
        event = await create_event(capacity=1)
        await fill_with_bookings(event, 1)
        first, second = await join(store, event, 2)

        await coordinator.on_user_cancels(first.id)

        assert await statuses(store, event) == {1: W.CANCELLED, 2: W.WAITING}

    async def test_cancel_offered_entry_cascades(self, store, coordinator):
        event = await create_event(capacity=1)
        first, second = await join(store, event, 2)
        await coordinator.on_seat_freed(event.id)

        await coordinator.on_user_cancels(first.id)

        assert await statuses(store, event) == {1: W.CANCELLED, 2: W.OFFERED}

    @pytest.mark.parametrize("finish", ["accept", "decline", "cancel"])
    async def test_terminal_entries_never_change(self, store, coordinator, frozen_clock, finish):
        event = await create_event(capacity=1)
        (entry,) = await join(store, event, 1)
        await coordinator.on_seat_freed(event.id)
        if finish == "accept":
            await coordinator.on_user_accepts(entry.id)
        elif finish == "decline":
            await coordinator.on_user_declines(entry.id)
        else:
            await coordinator.on_user_cancels(entry.id)
        final = (await store.get(entry.id)).status

        for action in (coordinator.on_user_accepts, coordinator.on_user_declines, coordinator.on_user_cancels):
            with pytest.raises(ConflictError):
                await action(entry.id)
        frozen_clock.advance(hours=48)
        assert await coordinator.on_offer_expired(await store.get(entry.id)) is False
        await coordinator.sweep_expired_offers()
        await coordinator.on_seat_freed(event.id)

        assert (await store.get(entry.id)).status == final

    async def test_unknown_entry(self, coordinator):
        with pytest.raises(NotFoundError):
            await coordinator.on_user_accepts(uuid4())


@pytest.mark.asyncio
class TestPayments:

    @pytest.fixture
    def auto_coordinator(self, store, offer_clock, notifier, gateway):
        return PromotionCoordinator(
            store, offer_clock, notifier, gateway,
            max_attempts=3, auto_charge=True, requeue_expired=False, max_requeues=1
        )

    async def test_auto_charge_accepts_entry(self, store, auto_coordinator, gateway, notifier):
        event = await create_event(capacity=1, price_cents=5000)
        (entry,) = await join(store, event, 1, payment_method_ref="pm_card_visa")

        result = await auto_coordinator.on_seat_freed(event.id)

        assert result.auto_charged is True
        assert result.entry.status == W.ACCEPTED
        assert result.entry.charge_ref == "pi_auto_1"
        assert gateway.charges[0]["amount_cents"] == 5000
        assert gateway.charges[0]["payment_method_ref"] == "pm_card_visa"
        (booking,) = await bookings_for(event)
        assert booking.amount_cents == 5000
        assert booking.payment_reference == "pi_auto_1"
        assert len(notifier.confirmations) == 1
        assert notifier.offers == []

    async def test_auto_charge_bills_in_event_currency(self, store, auto_coordinator, gateway):
        event = await create_event(capacity=1, price_cents=5000, currency="cad")
        await join(store, event, 1, payment_method_ref="pm_card_visa")

        await auto_coordinator.on_seat_freed(event.id)

        assert gateway.charges[0]["currency"] == "cad"

    async def test_failed_charge_falls_back_to_offer(self, store, auto_coordinator, gateway, notifier):
        event = await create_event(capacity=1, price_cents=5000)
        await join(store, event, 1, payment_method_ref="pm_card_declined")
        gateway.charge_result = ChargeResult(success=False, reason="card_declined")

        result = await auto_coordinator.on_seat_freed(event.id)

        assert result.promoted and result.auto_charged is False
        assert (await statuses(store, event))[1] == W.OFFERED
        assert len(notifier.offers) == 1
        assert await bookings_for(event) == []
        assert (await metrics_collector.get_metrics())["auto_charges"]["failed"] == 1

    async def test_timeout_is_treated_as_failure(self, store, auto_coordinator, gateway, notifier):
        event = await create_event(capacity=1, price_cents=5000)
        await join(store, event, 1, payment_method_ref="pm_card_visa")
        gateway.charge_result = ChargeResult(success=False, reason="timeout")

        await auto_coordinator.on_seat_freed(event.id)

        assert (await statuses(store, event))[1] == W.OFFERED
        assert len(notifier.offers) == 1

    async def test_entries_without_card_are_notified(self, store, auto_coordinator, gateway, notifier):
        event = await create_event(capacity=1, price_cents=5000)
        await join(store, event, 1)

        await auto_coordinator.on_seat_freed(event.id)

        assert gateway.charges == []
        assert len(notifier.offers) == 1

    async def test_card_on_file_does_not_jump_the_queue(self, store, auto_coordinator):
        event = await create_event(capacity=1, price_cents=5000)
        first = await store.enqueue(event.id, contact(1))
        await join(store, event, 1, start=2, payment_method_ref="pm_card_visa")

        result = await auto_coordinator.on_seat_freed(event.id)

        assert result.entry.id == first.id

    async def test_claim_payment_accepts_offer(self, store, coordinator, gateway):
        event = await create_event(capacity=1, price_cents=5000)
        (entry,) = await join(store, event, 1)
        await coordinator.on_seat_freed(event.id)

        claim = await coordinator.start_claim(entry.id)
        assert claim["payment_intent_id"] == "pi_test_1"
        assert gateway.intents[0]["metadata"]["waitlist_entry_id"] == str(entry.id)

        assert await coordinator.reconcile_payment(entry.id, "pi_test_1") is True
        # Webhook redelivery
        assert await coordinator.reconcile_payment(entry.id, "pi_test_1") is True

        accepted = await store.get(entry.id)
        assert accepted.status == W.ACCEPTED
        assert accepted.charge_ref == "pi_test_1"
        assert gateway.refunds == []

    async def test_claim_intent_uses_event_currency(self, store, coordinator, gateway):
        event = await create_event(capacity=1, price_cents=5000, currency="gbp")
        (entry,) = await join(store, event, 1)
        await coordinator.on_seat_freed(event.id)

        await coordinator.start_claim(entry.id)

        assert gateway.intents[0]["currency"] == "gbp"
        assert gateway.intents[0]["amount_cents"] == 5000

    async def test_late_payment_is_refunded(self, store, coordinator, gateway, frozen_clock):
        event = await create_event(capacity=1, price_cents=5000)
        first, second = await join(store, event, 2)
        await coordinator.on_seat_freed(event.id)
        frozen_clock.advance(hours=30)

        assert await coordinator.reconcile_payment(first.id, "pi_late") is False

        assert gateway.refunds == ["pi_late"]
        assert await statuses(store, event) == {1: W.EXPIRED, 2: W.OFFERED}

    async def test_free_claim_accepts_immediately(self, store, coordinator, gateway):
        event = await create_event(capacity=1)
        (entry,) = await join(store, event, 1)
        await coordinator.on_seat_freed(event.id)

        claim = await coordinator.start_claim(entry.id)

        assert claim["status"] == "accepted"
        assert gateway.intents == []
