"""
Waitlist monitoring endpoints
"""

from typing import Any
import logging

from fastapi import APIRouter

from fairway.core.metrics import metrics_collector

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/waitlist")
async def waitlist_metrics() -> Any:
    """
    In-process waitlist counters: promotions, conflicts, missed promotions,
    offer outcomes, auto-charges and notifier failures
    """
    return await metrics_collector.get_metrics()


@router.post("/waitlist/reset")
async def reset_waitlist_metrics() -> Any:
    await metrics_collector.reset_metrics()
    logger.info("Waitlist metrics reset via API")
    return {"status": "reset"}
