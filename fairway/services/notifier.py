"""
Waitlist notifications (email, plus push for entrants with a profile)
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional
from uuid import UUID

from fairway.services.email_service import EmailService
from fairway.services.push_service import PushService
from fairway.services.waitlist_store import ContactChannel

logger = logging.getLogger(__name__)


class Notifier(ABC):
    """Delivery of waitlist messages. Implementations report, not raise."""

    @abstractmethod
    async def send_offer(
        self,
        contact: ContactChannel,
        event_id: UUID,
        claim_ref: str,
        expires_at: Optional[datetime],
        event_name: str = ""
    ) -> bool:
        """A seat is held for the entrant until ``expires_at``"""

    @abstractmethod
    async def send_confirmation(
        self,
        contact: ContactChannel,
        event_id: UUID,
        claim_ref: str,
        event_name: str = ""
    ) -> bool:
        """The entrant's saved card was charged and the seat is theirs"""

    @abstractmethod
    async def send_joined(
        self,
        contact: ContactChannel,
        event_id: UUID,
        position: int,
        event_name: str = ""
    ) -> bool:
        """The entrant is on the waitlist at ``position``"""


class WaitlistNotifier(Notifier):
    """Email first; push is best-effort on top for members with the app"""

    def __init__(self, email_service: EmailService, push_service: Optional[PushService] = None):
        self.email_service = email_service
        self.push_service = push_service

    async def _push(self, contact: ContactChannel, title: str, body: str, data: dict) -> None:
        if self.push_service is None or contact.user_id is None:
            return
        try:
            await self.push_service.send(contact.user_id, title, body, "notification", data)
        except Exception as e:
            logger.warning(f"Push to {contact.user_id} failed: {e}")

    async def send_offer(self, contact, event_id, claim_ref, expires_at, event_name=""):
        delivered = await self.email_service.send_spot_available(
            to_email=contact.email,
            first_name=contact.first_name,
            event_name=event_name,
            claim_ref=claim_ref,
            expires_at=expires_at,
        )
        await self._push(
            contact,
            "A spot opened up",
            f"A spot for {event_name} is held for you. Claim it before it goes to the next person.",
            {"type": "waitlist_offer", "event_id": str(event_id), "waitlist_entry_id": claim_ref},
        )
        return delivered

    async def send_confirmation(self, contact, event_id, claim_ref, event_name=""):
        delivered = await self.email_service.send_spot_confirmed(
            to_email=contact.email,
            first_name=contact.first_name,
            event_name=event_name,
            claim_ref=claim_ref,
        )
        await self._push(
            contact,
            "You're in",
            f"A spot for {event_name} opened up and is now booked for you.",
            {"type": "waitlist_confirmed", "event_id": str(event_id), "waitlist_entry_id": claim_ref},
        )
        return delivered

    async def send_joined(self, contact, event_id, position, event_name=""):
        return await self.email_service.send_waitlist_confirmation(
            to_email=contact.email,
            first_name=contact.first_name,
            event_name=event_name,
            position=position,
        )
