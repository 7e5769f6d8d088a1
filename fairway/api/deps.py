"""
Service wiring for request handlers

Each builder is a FastAPI dependency, so tests swap collaborators through
``app.dependency_overrides``.
"""

from functools import lru_cache

from fastapi import Depends

from fairway.core.database import db_manager
from fairway.services.booking_service import BookingService
from fairway.services.email_service import EmailService
from fairway.services.expiry_sweeper import ExpirySweeper
from fairway.services.notifier import Notifier, WaitlistNotifier
from fairway.services.offer_clock import OfferClock
from fairway.services.payment_gateway import PaymentGateway, StripePaymentGateway
from fairway.services.promotion_coordinator import PromotionCoordinator
from fairway.services.push_service import PushService
from fairway.services.waitlist_store import WaitlistStore


def get_store() -> WaitlistStore:
    return WaitlistStore(db_manager)


def get_offer_clock(store: WaitlistStore = Depends(get_store)) -> OfferClock:
    return OfferClock(store)


@lru_cache()
def get_payment_gateway() -> PaymentGateway:
    return StripePaymentGateway()


@lru_cache()
def get_email_service() -> EmailService:
    return EmailService()


def get_push_service() -> PushService:
    return PushService()


def get_notifier(
    email_service: EmailService = Depends(get_email_service),
    push_service: PushService = Depends(get_push_service)
) -> Notifier:
    return WaitlistNotifier(email_service, push_service)


def get_coordinator(
    store: WaitlistStore = Depends(get_store),
    clock: OfferClock = Depends(get_offer_clock),
    notifier: Notifier = Depends(get_notifier),
    gateway: PaymentGateway = Depends(get_payment_gateway)
) -> PromotionCoordinator:
    return PromotionCoordinator(store, clock, notifier, gateway)


def get_booking_service(
    store: WaitlistStore = Depends(get_store),
    coordinator: PromotionCoordinator = Depends(get_coordinator),
    gateway: PaymentGateway = Depends(get_payment_gateway)
) -> BookingService:
    return BookingService(store, coordinator, gateway)


def get_sweeper(
    coordinator: PromotionCoordinator = Depends(get_coordinator),
    booking_service: BookingService = Depends(get_booking_service)
) -> ExpirySweeper:
    return ExpirySweeper(coordinator, booking_service)


def build_sweeper() -> ExpirySweeper:
    """Sweeper for the background loop, outside any request"""
    store = get_store()
    gateway = get_payment_gateway()
    coordinator = get_coordinator(
        store=store,
        clock=get_offer_clock(store),
        notifier=get_notifier(get_email_service(), get_push_service()),
        gateway=gateway,
    )
    return get_sweeper(coordinator, get_booking_service(store, coordinator, gateway))
