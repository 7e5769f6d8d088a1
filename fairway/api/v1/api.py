"""
Main API Router
Aggregates all API endpoints for v1
"""

from fastapi import APIRouter
from fairway.api.v1.endpoints import (
    waitlist,
    events,
    payment,
    notifications,
    health,
    monitoring
)

api_router = APIRouter()

# Handler paths mirror the standalone functions the mobile app already calls
api_router.include_router(waitlist.router, tags=["waitlist"])
api_router.include_router(events.router, tags=["events"])
api_router.include_router(payment.router, tags=["payments"])
api_router.include_router(notifications.router, tags=["notifications"])
api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(monitoring.router, prefix="/monitoring", tags=["monitoring"])
