"""
Database models
"""

from fairway.models.profile import Profile
from fairway.models.event import Event
from fairway.models.booking import EventBooking, BookingStatus, BookingSource
from fairway.models.waitlist import WaitlistEntry, WaitlistStatus
from fairway.models.notification import Notification
from fairway.models.member import MeetupMember, MemberPaymentStatus

__all__ = [
    "Profile",
    "Event",
    "EventBooking",
    "BookingStatus",
    "BookingSource",
    "WaitlistEntry",
    "WaitlistStatus",
    "Notification",
    "MeetupMember",
    "MemberPaymentStatus"
]
