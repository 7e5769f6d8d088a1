"""
Waitlist promotion metrics
"""

import time
import logging
from typing import Dict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
import asyncio

from prometheus_client import Counter, Histogram

logger = logging.getLogger(__name__)

WAITLIST_TRANSITIONS = Counter(
    "waitlist_transitions_total",
    "Waitlist entry status transitions",
    ["to_status"]
)
WAITLIST_MISSED_PROMOTIONS = Counter(
    "waitlist_missed_promotions_total",
    "Freed seats left unfilled after exhausting promotion attempts"
)
WAITLIST_NOTIFICATION_FAILURES = Counter(
    "waitlist_notification_failures_total",
    "Offer notifications that could not be delivered"
)
WAITLIST_AUTO_CHARGES = Counter(
    "waitlist_auto_charges_total",
    "Automatic charges attempted on promotion",
    ["outcome"]
)
WAITLIST_PROMOTION_DURATION = Histogram(
    "waitlist_promotion_duration_seconds",
    "Time spent handling a freed seat"
)


@dataclass
class WaitlistMetrics:
    """Waitlist promotion metrics"""
    promotions: int = 0
    promotion_conflicts: int = 0
    missed_promotions: int = 0
    offers_accepted: int = 0
    offers_declined: int = 0
    offers_expired: int = 0
    offers_cancelled: int = 0
    auto_charges_succeeded: int = 0
    auto_charges_failed: int = 0
    notification_failures: int = 0

    # Promotion times for percentile calculation
    promotion_times: list = field(default_factory=list)

    def add_promotion_time(self, duration: float):
        self.promotion_times.append(duration)
        if len(self.promotion_times) > 1000:  # Keep only last 1000 for memory
            self.promotion_times = self.promotion_times[-1000:]

    def get_percentiles(self) -> Dict[str, float]:
        if not self.promotion_times:
            return {"p50": 0.0, "p95": 0.0, "p99": 0.0}

        sorted_times = sorted(self.promotion_times)
        length = len(sorted_times)

        return {
            "p50": sorted_times[int(length * 0.5)],
            "p95": sorted_times[int(length * 0.95)],
            "p99": sorted_times[int(length * 0.99)],
        }

    def to_dict(self) -> Dict:
        percentiles = self.get_percentiles()

        return {
            "promotions": self.promotions,
            "promotion_conflicts": self.promotion_conflicts,
            "missed_promotions": self.missed_promotions,
            "offers": {
                "accepted": self.offers_accepted,
                "declined": self.offers_declined,
                "expired": self.offers_expired,
                "cancelled": self.offers_cancelled,
            },
            "auto_charges": {
                "succeeded": self.auto_charges_succeeded,
                "failed": self.auto_charges_failed,
            },
            "notification_failures": self.notification_failures,
            "performance": {
                "percentiles_ms": {
                    "p50": percentiles["p50"] * 1000,
                    "p95": percentiles["p95"] * 1000,
                    "p99": percentiles["p99"] * 1000,
                }
            }
        }


class MetricsCollector:
    """In-process collector mirrored into Prometheus counters"""

    _OFFER_FIELDS = {
        "accepted": "offers_accepted",
        "declined": "offers_declined",
        "expired": "offers_expired",
        "cancelled": "offers_cancelled",
    }

    def __init__(self):
        self.metrics = WaitlistMetrics()
        self.logger = logging.getLogger(__name__)
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def track_promotion(self):
        """Time a freed-seat handling run"""
        start_time = time.time()
        try:
            yield
        finally:
            duration = time.time() - start_time
            WAITLIST_PROMOTION_DURATION.observe(duration)
            async with self._lock:
                self.metrics.add_promotion_time(duration)

            if duration > 5.0:
                self.logger.warning(f"Slow waitlist promotion: {duration:.2f}s")

    async def record_transition(self, to_status: str):
        WAITLIST_TRANSITIONS.labels(to_status=to_status).inc()
        async with self._lock:
            if to_status == "offered":
                self.metrics.promotions += 1
            elif to_status in self._OFFER_FIELDS:
                attr = self._OFFER_FIELDS[to_status]
                setattr(self.metrics, attr, getattr(self.metrics, attr) + 1)

    async def record_promotion_conflict(self):
        async with self._lock:
            self.metrics.promotion_conflicts += 1

    async def record_missed_promotion(self):
        WAITLIST_MISSED_PROMOTIONS.inc()
        async with self._lock:
            self.metrics.missed_promotions += 1

    async def record_notification_failure(self):
        WAITLIST_NOTIFICATION_FAILURES.inc()
        async with self._lock:
            self.metrics.notification_failures += 1

    async def record_auto_charge(self, succeeded: bool):
        WAITLIST_AUTO_CHARGES.labels(outcome="succeeded" if succeeded else "failed").inc()
        async with self._lock:
            if succeeded:
                self.metrics.auto_charges_succeeded += 1
            else:
                self.metrics.auto_charges_failed += 1

    async def get_metrics(self) -> Dict:
        async with self._lock:
            return self.metrics.to_dict()

    async def reset_metrics(self):
        """Reset all metrics (useful for testing)"""
        async with self._lock:
            self.metrics = WaitlistMetrics()
            self.logger.info("Metrics reset")


# Global metrics collector
metrics_collector = MetricsCollector()
