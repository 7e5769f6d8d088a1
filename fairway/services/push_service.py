"""
Push Service with Expo Integration
"""

import logging
from typing import Any, Dict, Optional
from uuid import UUID

import httpx
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import async_sessionmaker

from fairway.config import settings
from fairway.core.database import async_session
from fairway.core.exceptions import ExternalServiceError
from fairway.models.notification import Notification
from fairway.models.profile import Profile

logger = logging.getLogger(__name__)


class PushService:
    """Sends Expo push messages honoring each member's preferences"""

    def __init__(
        self,
        session_factory: async_sessionmaker = async_session,
        push_url: str = None,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.session_factory = session_factory
        self.push_url = push_url or settings.EXPO_PUSH_URL
        self.timeout = timeout or settings.PUSH_TIMEOUT_SECONDS
        self.transport = transport

    async def send(
        self,
        recipient_id: UUID,
        title: str,
        body: str,
        push_type: str,
        data: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Deliver one push. Returns {"skipped": True, "reason": ...} when the
        recipient has no token or turned this push type off.
        """
        async with self.session_factory() as session:
            profile = await session.get(Profile, recipient_id)

            if profile is None or not profile.expo_push_token:
                return {"skipped": True, "reason": "No push token"}

            if not profile.push_enabled_for(push_type):
                return {"skipped": True, "reason": "User disabled this push type"}

            unread = await session.execute(
                select(func.count(Notification.id)).where(
                    Notification.user_id == recipient_id,
                    Notification.is_read.is_(False)
                )
            )
            badge = unread.scalar() or 0
            token = profile.expo_push_token

        payload = {
            "to": token,
            "title": title,
            "body": body,
            "data": data or {},
            "sound": "default",
            "badge": badge,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    self.push_url,
                    json=payload,
                    headers={"Accept": "application/json", "Accept-Encoding": "gzip, deflate"}
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Expo push to {recipient_id} failed: {e}")
            raise ExternalServiceError("expo", "Push delivery failed", details={"reason": str(e)})

        return {"success": True, "result": response.json()}
