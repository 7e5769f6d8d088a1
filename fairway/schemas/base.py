"""
Schema building blocks
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    # Read straight off ORM rows; enums serialize as their values
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class RecordSchema(BaseSchema):
    """A stored row: its id and when it was written"""
    id: UUID
    created_at: datetime
    updated_at: Optional[datetime] = None
