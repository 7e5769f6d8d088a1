"""
Periodic expiry sweep for lapsed checkouts and overdue waitlist offers
"""

import asyncio
import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Optional

from fairway.config import settings
from fairway.services.booking_service import BookingService
from fairway.services.promotion_coordinator import PromotionCoordinator

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    expired_bookings: int = 0
    expired_offers: int = 0
    events_promoted: int = 0

    def to_dict(self):
        return asdict(self)


class ExpirySweeper:
    """
    Everything here is a conditional update, so overlapping sweeps (two
    replicas, a manual sweep during a scheduled one) converge.
    """

    def __init__(
        self,
        coordinator: PromotionCoordinator,
        booking_service: BookingService,
        interval: Optional[float] = None
    ):
        self.coordinator = coordinator
        self.booking_service = booking_service
        self.interval = interval or settings.WAITLIST_SWEEP_INTERVAL_SECONDS
        self._task: Optional[asyncio.Task] = None

    async def run_once(self, now: Optional[datetime] = None) -> SweepResult:
        now = now or self.coordinator.clock.now()
        result = SweepResult()

        freed = await self.booking_service.expire_pending_bookings(now)
        result.expired_bookings = len(freed)
        for event_id in freed:
            promotion = await self.coordinator.on_seat_freed(event_id)
            if promotion.promoted:
                result.events_promoted += 1

        result.expired_offers = await self.coordinator.sweep_expired_offers(now)

        if result.expired_bookings or result.expired_offers:
            logger.info(
                f"Sweep expired {result.expired_bookings} bookings and {result.expired_offers} offers",
                extra={"extra": result.to_dict()}
            )
        return result

    async def _run(self):
        while True:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Error in expiry sweep: {e}", exc_info=True)
            await asyncio.sleep(self.interval)

    def start(self):
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())
            logger.info(f"Expiry sweeper started (every {self.interval}s)")

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Expiry sweeper stopped")
