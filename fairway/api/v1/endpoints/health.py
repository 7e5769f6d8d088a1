"""
Health check endpoints
"""

from typing import Any
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text

from fairway.core.database import get_session
from fairway.config import settings

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/live")
async def liveness() -> Any:
    """
    Kubernetes liveness check
    """
    return {"status": "alive", "service": "fairway-waitlist"}


@router.get("/ready")
async def readiness(db: AsyncSession = Depends(get_session)) -> Any:
    """
    Kubernetes readiness check - pings the database
    """
    checks = {
        "database": False,
        "api": True
    }

    try:
        result = await db.execute(text("SELECT 1"))
        checks["database"] = result.scalar() == 1
    except Exception as e:
        logger.warning(f"Readiness database ping failed: {e}")

    return {
        "status": "ready" if all(checks.values()) else "not ready",
        "checks": checks,
        "version": settings.APP_VERSION
    }
