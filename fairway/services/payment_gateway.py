"""
Payment Gateway Adapter with Stripe Integration
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import stripe

from fairway.config import settings
from fairway.core.exceptions import PaymentProviderError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChargeResult:
    success: bool
    charge_ref: Optional[str] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class RefundResult:
    success: bool
    refund_ref: Optional[str] = None
    reason: Optional[str] = None


class PaymentGateway(ABC):
    """What the waitlist and payment handlers need from a processor"""

    @abstractmethod
    async def charge(
        self,
        payment_method_ref: str,
        amount_cents: int,
        currency: Optional[str] = None,
        customer_ref: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
        idempotency_key: Optional[str] = None
    ) -> ChargeResult:
        """Charge a stored payment method. Must not raise."""

    @abstractmethod
    async def refund(self, charge_ref: str) -> RefundResult:
        """Refund a previous charge in full. Must not raise."""

    @abstractmethod
    async def create_payment_intent(
        self,
        amount_cents: int,
        metadata: Dict[str, str],
        description: Optional[str] = None,
        currency: Optional[str] = None
    ) -> Dict[str, str]:
        """Returns client_secret and payment_intent_id"""

    @abstractmethod
    async def create_checkout_session(
        self,
        client_reference_id: str,
        line_items: list,
        success_url: str,
        cancel_url: str,
        metadata: Optional[Dict[str, str]] = None,
        customer_email: Optional[str] = None,
        expires_at: Optional[int] = None
    ) -> Dict[str, str]:
        """Returns the session id and hosted checkout url"""

    @abstractmethod
    def construct_webhook_event(self, payload: bytes, signature: str) -> Any:
        """Verify a webhook signature and parse the event"""


def price_line_item(name: str, amount_cents: int, quantity: int = 1, currency: str = None) -> dict:
    return {
        "price_data": {
            "currency": currency or settings.STRIPE_CURRENCY,
            "unit_amount": amount_cents,
            "product_data": {"name": name},
        },
        "quantity": quantity,
    }


class StripePaymentGateway(PaymentGateway):
    """Stripe-backed gateway; SDK calls run in a worker thread with a deadline"""

    def __init__(
        self,
        api_key: str = None,
        webhook_secret: str = None,
        currency: str = None,
        timeout: float = None
    ):
        stripe.api_key = api_key if api_key is not None else settings.STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret if webhook_secret is not None else settings.STRIPE_WEBHOOK_SECRET
        self.currency = currency or settings.STRIPE_CURRENCY
        self.timeout = timeout or settings.PAYMENT_TIMEOUT_SECONDS

    async def _call(self, fn, **kwargs):
        return await asyncio.wait_for(asyncio.to_thread(fn, **kwargs), timeout=self.timeout)

    async def charge(
        self,
        payment_method_ref: str,
        amount_cents: int,
        currency: Optional[str] = None,
        customer_ref: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
        idempotency_key: Optional[str] = None
    ) -> ChargeResult:
        params = {
            "amount": amount_cents,
            "currency": currency or self.currency,
            "payment_method": payment_method_ref,
            "off_session": True,
            "confirm": True,
            "metadata": metadata or {},
        }
        if customer_ref:
            params["customer"] = customer_ref
        if idempotency_key:
            params["idempotency_key"] = idempotency_key

        try:
            intent = await self._call(stripe.PaymentIntent.create, **params)
        except asyncio.TimeoutError:
            logger.warning(f"Stripe charge timed out after {self.timeout}s")
            return ChargeResult(success=False, reason="timeout")
        except stripe.CardError as e:
            logger.warning(f"Card declined: {e.user_message or str(e)}")
            return ChargeResult(success=False, reason=e.code or "card_declined")
        except stripe.StripeError as e:
            logger.error(f"Stripe error: {str(e)}")
            return ChargeResult(success=False, reason="processor_error")

        if intent.status != "succeeded":
            return ChargeResult(success=False, charge_ref=intent.id, reason=intent.status)
        return ChargeResult(success=True, charge_ref=intent.id)

    async def refund(self, charge_ref: str) -> RefundResult:
        try:
            refund = await self._call(stripe.Refund.create, payment_intent=charge_ref)
        except asyncio.TimeoutError:
            logger.error(f"Stripe refund for {charge_ref} timed out after {self.timeout}s")
            return RefundResult(success=False, reason="timeout")
        except stripe.StripeError as e:
            logger.error(f"Refund error: {str(e)}")
            return RefundResult(success=False, reason=str(e))

        return RefundResult(success=True, refund_ref=refund.id)

    async def create_payment_intent(
        self,
        amount_cents: int,
        metadata: Dict[str, str],
        description: Optional[str] = None,
        currency: Optional[str] = None
    ) -> Dict[str, str]:
        try:
            intent = await self._call(
                stripe.PaymentIntent.create,
                amount=amount_cents,
                currency=currency or self.currency,
                automatic_payment_methods={"enabled": True},
                metadata=metadata,
                description=description,
            )
        except asyncio.TimeoutError:
            raise PaymentProviderError("Failed to create payment intent", details={"reason": "timeout"})
        except stripe.StripeError as e:
            logger.error(f"Stripe error: {str(e)}")
            raise PaymentProviderError("Failed to create payment intent", details={"reason": str(e)})

        return {
            "client_secret": intent.client_secret,
            "payment_intent_id": intent.id,
        }

    async def create_checkout_session(
        self,
        client_reference_id: str,
        line_items: list,
        success_url: str,
        cancel_url: str,
        metadata: Optional[Dict[str, str]] = None,
        customer_email: Optional[str] = None,
        expires_at: Optional[int] = None
    ) -> Dict[str, str]:
        params = {
            "mode": "payment",
            "client_reference_id": client_reference_id,
            "line_items": line_items,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata or {},
        }
        if customer_email:
            params["customer_email"] = customer_email
        if expires_at:
            params["expires_at"] = expires_at

        try:
            session = await self._call(stripe.checkout.Session.create, **params)
        except asyncio.TimeoutError:
            raise PaymentProviderError("Failed to create checkout session", details={"reason": "timeout"})
        except stripe.StripeError as e:
            logger.error(f"Stripe error: {str(e)}")
            raise PaymentProviderError("Failed to create checkout session", details={"reason": str(e)})

        return {"id": session.id, "url": session.url}

    def construct_webhook_event(self, payload: bytes, signature: str) -> Any:
        try:
            return stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except ValueError:
            raise ValidationError("Invalid webhook payload")
        except stripe.SignatureVerificationError:
            logger.error("Invalid webhook signature")
            raise ValidationError("Invalid webhook signature")
