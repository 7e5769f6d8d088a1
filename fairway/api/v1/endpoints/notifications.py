"""
Push notification endpoint
"""

from typing import Any

from fastapi import APIRouter, Depends

from fairway.api.deps import get_push_service
from fairway.schemas.notification import SendNotificationRequest
from fairway.services.push_service import PushService

router = APIRouter()


@router.post("/send-notification")
async def send_notification(
    request: SendNotificationRequest,
    push_service: PushService = Depends(get_push_service)
) -> Any:
    """
    Send a push to one member, honoring their per-type preferences.
    Returns the Expo result, or {"skipped": true, "reason": ...}.
    """
    return await push_service.send(
        recipient_id=request.recipient_id,
        title=request.title,
        body=request.body,
        push_type=request.push_type,
        data=request.data,
    )
