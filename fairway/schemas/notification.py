"""
Push notification schemas
"""

from typing import Any, Dict, Optional
from uuid import UUID
from pydantic import BaseModel, Field


class SendNotificationRequest(BaseModel):
    recipient_id: UUID
    title: str = Field(..., min_length=1, max_length=255)
    body: str = Field(..., min_length=1)
    push_type: str
    data: Optional[Dict[str, Any]] = None
