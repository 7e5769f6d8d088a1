"""
Test configuration and fixtures
Runs against a throwaway SQLite file through aiosqlite
"""

import json
import os
import tempfile
from datetime import datetime, timedelta, timezone
from typing import List, Optional
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

# Set test environment before anything reads settings
_DB_PATH = os.path.join(tempfile.gettempdir(), f"fairway-test-{uuid4().hex}.db")
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_PATH}"
os.environ["WAITLIST_SWEEP_ENABLED"] = "false"
os.environ["LOG_FORMAT"] = "text"
os.environ["SENDGRID_API_KEY"] = "SG.test"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_fairway"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"

# Import all models before create_all
from fairway.core.database import Base, engine, db_manager
from fairway.core.exceptions import ValidationError
from fairway.core.metrics import metrics_collector
from fairway.models import (
    Event,
    EventBooking,
    BookingStatus,
    BookingSource,
    WaitlistEntry,
    WaitlistStatus,
)
from fairway.services.notifier import Notifier
from fairway.services.offer_clock import OfferClock
from fairway.services.payment_gateway import PaymentGateway, ChargeResult, RefundResult
from fairway.services.promotion_coordinator import PromotionCoordinator
from fairway.services.booking_service import BookingService
from fairway.services.expiry_sweeper import ExpirySweeper
from fairway.services.waitlist_store import ContactChannel, WaitlistStore

START = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Wall clock that only moves when told to"""

    def __init__(self, now: datetime = START):
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


class RecordingNotifier(Notifier):
    """Keeps every message; can be told to fail or raise"""

    def __init__(self):
        self.offers: List[dict] = []
        self.confirmations: List[dict] = []
        self.joined: List[dict] = []
        self.fail = False
        self.raise_error = False

    def _deliver(self, box: list, **message) -> bool:
        if self.raise_error:
            raise RuntimeError("mail relay unreachable")
        box.append(message)
        return not self.fail

    async def send_offer(self, contact, event_id, claim_ref, expires_at, event_name=""):
        return self._deliver(self.offers, email=contact.email, event_id=event_id, claim_ref=claim_ref, expires_at=expires_at)

    async def send_confirmation(self, contact, event_id, claim_ref, event_name=""):
        return self._deliver(self.confirmations, email=contact.email, event_id=event_id, claim_ref=claim_ref)

    async def send_joined(self, contact, event_id, position, event_name=""):
        return self._deliver(self.joined, email=contact.email, event_id=event_id, position=position)


class FakeGateway(PaymentGateway):
    """In-memory processor; webhooks are plain JSON signed with 'valid'"""

    def __init__(self):
        self.charge_result = ChargeResult(success=True, charge_ref="pi_auto_1")
        self.refund_result = RefundResult(success=True, refund_ref="re_1")
        self.charges: List[dict] = []
        self.refunds: List[str] = []
        self.intents: List[dict] = []
        self.sessions: List[dict] = []
        self.fail_checkout = False

    async def charge(self, payment_method_ref, amount_cents, currency=None, customer_ref=None, metadata=None,
                     idempotency_key=None):
        self.charges.append({
            "payment_method_ref": payment_method_ref,
            "amount_cents": amount_cents,
            "currency": currency,
            "metadata": metadata,
            "idempotency_key": idempotency_key,
        })
        return self.charge_result

    async def refund(self, charge_ref):
        self.refunds.append(charge_ref)
        return self.refund_result

    async def create_payment_intent(self, amount_cents, metadata, description=None, currency=None):
        self.intents.append({
            "amount_cents": amount_cents,
            "metadata": metadata,
            "description": description,
            "currency": currency,
        })
        return {"client_secret": f"pi_test_{len(self.intents)}_secret", "payment_intent_id": f"pi_test_{len(self.intents)}"}

    async def create_checkout_session(self, client_reference_id, line_items, success_url, cancel_url,
                                      metadata=None, customer_email=None, expires_at=None):
        from fairway.core.exceptions import PaymentProviderError
        if self.fail_checkout:
            raise PaymentProviderError("Failed to create checkout session", details={"reason": "api_error"})
        self.sessions.append({
            "client_reference_id": client_reference_id,
            "line_items": line_items,
            "success_url": success_url,
            "metadata": metadata,
            "expires_at": expires_at,
        })
        session_id = f"cs_test_{len(self.sessions)}"
        return {"id": session_id, "url": f"https://checkout.stripe.test/{session_id}"}

    def construct_webhook_event(self, payload, signature):
        if signature != "valid":
            raise ValidationError("Invalid webhook signature")
        return json.loads(payload)


@pytest_asyncio.fixture(scope="function")
async def db():
    """Fresh schema per test"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield db_manager
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await metrics_collector.reset_metrics()


@pytest.fixture
def frozen_clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def store(db) -> WaitlistStore:
    return WaitlistStore(db)


@pytest.fixture
def offer_clock(store, frozen_clock) -> OfferClock:
    return OfferClock(store, now=frozen_clock)


@pytest.fixture
def coordinator(store, offer_clock, notifier, gateway) -> PromotionCoordinator:
    return PromotionCoordinator(
        store,
        offer_clock,
        notifier,
        gateway,
        max_attempts=3,
        auto_charge=False,
        requeue_expired=False,
        max_requeues=1,
    )


@pytest.fixture
def booking_service(store, coordinator, gateway) -> BookingService:
    return BookingService(store, coordinator, gateway)


@pytest.fixture
def sweeper(coordinator, booking_service) -> ExpirySweeper:
    return ExpirySweeper(coordinator, booking_service, interval=0.01)


@pytest_asyncio.fixture
async def client(db, store, offer_clock, notifier, gateway):
    """HTTP client with the processor, notifier and clock swapped out"""
    from fairway.main import app
    from fairway.api.deps import get_store, get_offer_clock, get_notifier, get_payment_gateway

    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_offer_clock] = lambda: offer_clock
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_payment_gateway] = lambda: gateway

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# Data helpers

def contact(n: int) -> ContactChannel:
    return ContactChannel(email=f"golfer{n}@example.com", first_name=f"Golfer{n}", last_name="Test")


async def create_event(
    capacity: int,
    price_cents: int = 0,
    waitlist_enabled: bool = True,
    name: str = "Member-Guest Scramble",
    currency: str = "usd"
) -> Event:
    async with db_manager.atomic_transaction() as session:
        event = Event(
            name=name,
            capacity=capacity,
            price_cents=price_cents,
            currency=currency,
            waitlist_enabled=waitlist_enabled,
            promotion_seq=0,
        )
        session.add(event)
        await session.flush()
        await session.refresh(event)
    return event


async def fill_with_bookings(event: Event, count: int) -> List[EventBooking]:
    """Confirmed direct bookings"""
    bookings = []
    async with db_manager.atomic_transaction() as session:
        for n in range(count):
            booking = EventBooking(
                event_id=event.id,
                email=f"member{n}@example.com",
                first_name=f"Member{n}",
                last_name="Test",
                status=BookingStatus.CONFIRMED,
                source=BookingSource.DIRECT,
                amount_cents=event.price_cents,
                confirmed_at=START,
            )
            session.add(booking)
            bookings.append(booking)
        await session.flush()
    return bookings


async def seed_accepted(event: Event, count: int) -> List[EventBooking]:
    """Entries that already claimed a seat from the waitlist, positions 1..count"""
    bookings = []
    async with db_manager.atomic_transaction() as session:
        for n in range(1, count + 1):
            entry = WaitlistEntry(
                event_id=event.id,
                position=n,
                status=WaitlistStatus.ACCEPTED,
                email=f"accepted{n}@example.com",
                first_name=f"Accepted{n}",
                last_name="Test",
                accepted_at=START,
                requeue_count=0,
            )
            session.add(entry)
            await session.flush()
            booking = EventBooking(
                event_id=event.id,
                email=entry.email,
                first_name=entry.first_name,
                last_name=entry.last_name,
                status=BookingStatus.CONFIRMED,
                source=BookingSource.WAITLIST,
                waitlist_entry_id=entry.id,
                amount_cents=event.price_cents,
                confirmed_at=START,
            )
            session.add(booking)
            bookings.append(booking)
        await session.flush()
    return bookings


async def join(store: WaitlistStore, event: Event, count: int, start: int = 1,
               payment_method_ref: Optional[str] = None) -> List[WaitlistEntry]:
    entries = []
    for n in range(start, start + count):
        entries.append(await store.enqueue(event.id, contact(n), payment_method_ref=payment_method_ref))
    return entries


async def statuses(store: WaitlistStore, event: Event) -> dict:
    """position -> status value"""
    return {entry.position: entry.status for entry in await store.list_for_event(event.id)}
