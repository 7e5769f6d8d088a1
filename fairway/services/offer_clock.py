"""
Offer Clock

Offers expire by deadline, not by timer: ``offer_expires_at`` is stored on
the entry and a periodic sweep compares it with wall-clock time, so a
restart never loses a pending expiry.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from fairway.config import settings
from fairway.models.waitlist import WaitlistEntry, WaitlistStatus
from fairway.services.waitlist_store import WaitlistStore


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Some backends hand timestamps back naive; they are stored as UTC"""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class OfferClock:
    """Time-boxing for offered waitlist entries"""

    def __init__(
        self,
        store: WaitlistStore,
        ttl: Optional[timedelta] = None,
        now: Callable[[], datetime] = utcnow
    ):
        self.store = store
        self.ttl = ttl or timedelta(hours=settings.WAITLIST_OFFER_TTL_HOURS)
        self._now = now

    def now(self) -> datetime:
        return ensure_utc(self._now())

    def deadline(self, ttl: Optional[timedelta] = None) -> datetime:
        return self.now() + (ttl or self.ttl)

    async def start_offer(
        self,
        entry: WaitlistEntry,
        ttl: Optional[timedelta] = None,
        session: Optional[AsyncSession] = None
    ) -> Optional[datetime]:
        """
        Move a waiting entry to offered with a deadline. Returns the deadline,
        or None when another caller got to the entry first.
        """
        now = self.now()
        expires_at = now + (ttl or self.ttl)
        started = await self.store.transition(
            entry.id,
            WaitlistStatus.WAITING,
            WaitlistStatus.OFFERED,
            session=session,
            offer_expires_at=expires_at,
            notified_at=now,
        )
        return expires_at if started else None

    @staticmethod
    def is_expired(entry: WaitlistEntry, now: datetime) -> bool:
        expires_at = ensure_utc(entry.offer_expires_at)
        if expires_at is None:
            return False
        return expires_at <= ensure_utc(now)

    async def find_expired_offers(self, now: Optional[datetime] = None) -> List[WaitlistEntry]:
        return await self.store.find_expired_offers(ensure_utc(now) if now else self.now())
