"""
Waitlist Store

Durable access to waitlist entries and per-event seat accounting. Status
changes go through conditional updates (compare-and-swap on ``status``) so
concurrent handlers racing on the same entry resolve to exactly one winner;
losers get ``False`` back, never an exception.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
from uuid import UUID
import logging
from contextlib import asynccontextmanager

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fairway.core.database import DatabaseManager, db_manager
from fairway.core.exceptions import ConcurrencyError, InvalidTransitionError
from fairway.models.booking import EventBooking, SEAT_HOLDING_STATUSES
from fairway.models.event import Event
from fairway.models.waitlist import WaitlistEntry, WaitlistStatus, ALLOWED_TRANSITIONS

logger = logging.getLogger(__name__)

ENQUEUE_ATTEMPTS = 5
ACTIVE_STATUSES = (WaitlistStatus.WAITING, WaitlistStatus.OFFERED)


@dataclass(frozen=True)
class ContactChannel:
    """Where to reach an entrant"""
    email: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    user_id: Optional[UUID] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @classmethod
    def from_entry(cls, entry: WaitlistEntry) -> "ContactChannel":
        return cls(
            email=entry.email,
            first_name=entry.first_name,
            last_name=entry.last_name,
            phone=entry.phone,
            user_id=entry.user_id,
        )


@dataclass(frozen=True)
class SeatSnapshot:
    """Seat usage of one event at a point in time"""
    event_id: UUID
    name: str
    capacity: int
    held_bookings: int
    live_offers: int
    promotion_seq: int
    price_cents: int
    currency: str
    waitlist_enabled: bool
    waiting: int = 0

    @property
    def occupied(self) -> int:
        return self.held_bookings + self.live_offers

    @property
    def open_seats(self) -> int:
        return max(self.capacity - self.occupied, 0)

    @property
    def bookable_seats(self) -> int:
        """Open seats not already owed to someone on the waitlist"""
        return max(self.open_seats - self.waiting, 0)


class WaitlistStore:
    """
    Waitlist persistence. Every method runs in its own transaction unless
    the caller passes ``session`` to join an open one.
    """

    def __init__(self, db: DatabaseManager = db_manager):
        self.db = db

    @asynccontextmanager
    async def transaction(self):
        async with self.db.atomic_transaction() as session:
            yield session

    @asynccontextmanager
    async def _scope(self, session: Optional[AsyncSession]):
        if session is not None:
            yield session
        else:
            async with self.transaction() as tx_session:
                yield tx_session

    async def get(self, entry_id: UUID, session: Optional[AsyncSession] = None) -> Optional[WaitlistEntry]:
        async with self._scope(session) as s:
            return await s.get(WaitlistEntry, entry_id, populate_existing=True)

    async def list_for_event(self, event_id: UUID, status: Optional[WaitlistStatus] = None) -> List[WaitlistEntry]:
        query = select(WaitlistEntry).where(WaitlistEntry.event_id == event_id)
        if status is not None:
            query = query.where(WaitlistEntry.status == status)
        query = query.order_by(WaitlistEntry.position.asc())

        async with self.transaction() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def find_active_by_email(self, event_id: UUID, email: str) -> Optional[WaitlistEntry]:
        async with self.transaction() as session:
            result = await session.execute(
                select(WaitlistEntry)
                .where(
                    WaitlistEntry.event_id == event_id,
                    func.lower(WaitlistEntry.email) == email.lower(),
                    WaitlistEntry.status.in_(ACTIVE_STATUSES)
                )
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def next_waiting(self, event_id: UUID, session: Optional[AsyncSession] = None) -> Optional[WaitlistEntry]:
        """Lowest-position waiting entry for the event"""
        async with self._scope(session) as s:
            result = await s.execute(
                select(WaitlistEntry)
                .where(
                    WaitlistEntry.event_id == event_id,
                    WaitlistEntry.status == WaitlistStatus.WAITING
                )
                .order_by(WaitlistEntry.position.asc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def transition(
        self,
        entry_id: UUID,
        from_status: WaitlistStatus,
        to_status: WaitlistStatus,
        session: Optional[AsyncSession] = None,
        **fields
    ) -> bool:
        """
        Conditional status update. Returns False when the entry is no longer
        in ``from_status``; that means another actor already handled it.
        """
        if to_status not in ALLOWED_TRANSITIONS.get(from_status, ()):
            raise InvalidTransitionError(from_status.value, to_status.value)

        if from_status == WaitlistStatus.OFFERED:
            fields.setdefault("offer_expires_at", None)

        stmt = (
            update(WaitlistEntry)
            .where(
                WaitlistEntry.id == entry_id,
                WaitlistEntry.status == from_status
            )
            .values(status=to_status, **fields)
            .execution_options(synchronize_session=False)
        )

        async with self._scope(session) as s:
            result = await s.execute(stmt)

        changed = result.rowcount == 1
        if not changed:
            logger.debug(
                f"Waitlist entry {entry_id} was not {from_status.value}; "
                f"skipped transition to {to_status.value}"
            )
        return changed

    async def _next_position(self, session: AsyncSession, event_id: UUID) -> int:
        result = await session.execute(
            select(func.coalesce(func.max(WaitlistEntry.position), 0))
            .where(WaitlistEntry.event_id == event_id)
        )
        return int(result.scalar()) + 1

    async def enqueue(
        self,
        event_id: UUID,
        contact: ContactChannel,
        payment_method_ref: Optional[str] = None,
        payment_customer_ref: Optional[str] = None
    ) -> WaitlistEntry:
        """Append a new waiting entry after every existing position"""
        for attempt in range(1, ENQUEUE_ATTEMPTS + 1):
            try:
                async with self.transaction() as session:
                    entry = WaitlistEntry(
                        event_id=event_id,
                        position=await self._next_position(session, event_id),
                        status=WaitlistStatus.WAITING,
                        email=contact.email,
                        first_name=contact.first_name,
                        last_name=contact.last_name,
                        phone=contact.phone,
                        user_id=contact.user_id,
                        saved_payment_method_ref=payment_method_ref,
                        payment_customer_ref=payment_customer_ref,
                        requeue_count=0,
                    )
                    session.add(entry)
                    await session.flush()
                    await session.refresh(entry)
                return entry
            except IntegrityError:
                # Another entrant took the same position; read max again
                logger.debug(f"Waitlist position collision for event {event_id} (attempt {attempt})")

        raise ConcurrencyError("Could not allocate a waitlist position")

    async def requeue(self, entry_id: UUID, session: Optional[AsyncSession] = None) -> bool:
        """Move an expired entry back to waiting behind everyone else"""
        async with self._scope(session) as s:
            entry = await s.get(WaitlistEntry, entry_id, populate_existing=True)
            if entry is None:
                return False
            position = await self._next_position(s, entry.event_id)
            return await self.transition(
                entry_id,
                WaitlistStatus.EXPIRED,
                WaitlistStatus.WAITING,
                session=s,
                position=position,
                notified_at=None,
                requeue_count=WaitlistEntry.requeue_count + 1,
            )

    async def cancel(self, entry_id: UUID, session: Optional[AsyncSession] = None) -> Optional[WaitlistStatus]:
        """
        Cancel from waiting or offered. Returns the status the entry was
        cancelled from, or None when it was in neither.
        """
        async with self._scope(session) as s:
            for from_status in (WaitlistStatus.OFFERED, WaitlistStatus.WAITING):
                if await self.transition(entry_id, from_status, WaitlistStatus.CANCELLED, session=s):
                    return from_status
        return None

    async def find_expired_offers(self, now: datetime) -> List[WaitlistEntry]:
        async with self.transaction() as session:
            result = await session.execute(
                select(WaitlistEntry)
                .where(
                    WaitlistEntry.status == WaitlistStatus.OFFERED,
                    WaitlistEntry.offer_expires_at <= now
                )
                .order_by(WaitlistEntry.offer_expires_at.asc())
            )
            return list(result.scalars().all())

    async def seat_snapshot(self, event_id: UUID, session: Optional[AsyncSession] = None) -> Optional[SeatSnapshot]:
        """
        Read the event gate value first, then the counts. Anything that
        consumes a seat bumps the gate, so counts newer than the gate value
        only make a later ``claim_event`` fail.
        """
        async with self._scope(session) as s:
            result = await s.execute(
                select(
                    Event.name,
                    Event.capacity,
                    Event.promotion_seq,
                    Event.price_cents,
                    Event.currency,
                    Event.waitlist_enabled
                ).where(Event.id == event_id)
            )
            row = result.one_or_none()
            if row is None:
                return None

            held = await s.execute(
                select(func.count(EventBooking.id)).where(
                    EventBooking.event_id == event_id,
                    EventBooking.status.in_(SEAT_HOLDING_STATUSES)
                )
            )
            offers = await s.execute(
                select(func.count(WaitlistEntry.id)).where(
                    WaitlistEntry.event_id == event_id,
                    WaitlistEntry.status == WaitlistStatus.OFFERED
                )
            )
            waiting = await s.execute(
                select(func.count(WaitlistEntry.id)).where(
                    WaitlistEntry.event_id == event_id,
                    WaitlistEntry.status == WaitlistStatus.WAITING
                )
            )

            return SeatSnapshot(
                event_id=event_id,
                name=row.name,
                capacity=row.capacity,
                held_bookings=held.scalar() or 0,
                live_offers=offers.scalar() or 0,
                promotion_seq=row.promotion_seq,
                price_cents=row.price_cents or 0,
                currency=row.currency,
                waitlist_enabled=row.waitlist_enabled,
                waiting=waiting.scalar() or 0,
            )

    async def claim_event(self, event_id: UUID, seen_seq: int, session: AsyncSession) -> bool:
        """
        Per-event single-flight gate: succeeds only if nobody consumed a
        seat since ``seen_seq`` was read.
        """
        result = await session.execute(
            update(Event)
            .where(Event.id == event_id, Event.promotion_seq == seen_seq)
            .values(promotion_seq=seen_seq + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def waiting_count(self, event_id: UUID) -> int:
        async with self.transaction() as session:
            result = await session.execute(
                select(func.count(WaitlistEntry.id)).where(
                    WaitlistEntry.event_id == event_id,
                    WaitlistEntry.status == WaitlistStatus.WAITING
                )
            )
            return result.scalar() or 0
