"""
API endpoints module
"""

from . import waitlist, events, payment, notifications, health, monitoring

__all__ = [
    "waitlist",
    "events",
    "payment",
    "notifications",
    "health",
    "monitoring"
]
