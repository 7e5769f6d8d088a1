"""
Shared columns for Fairway tables
"""

import uuid

from sqlalchemy import Column, DateTime, Uuid, func

from fairway.core.database import Base


def _stamp(**kwargs) -> Column:
    return Column(DateTime(timezone=True), server_default=func.now(), nullable=False, **kwargs)


class BaseModel(Base):
    """UUID primary key plus database-side created/updated stamps"""
    __abstract__ = True

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, nullable=False)
    created_at = _stamp()
    updated_at = _stamp(onupdate=func.now())

    def to_dict(self) -> dict:
        """Column values keyed by column name, for building response schemas"""
        return {column.name: getattr(self, column.name) for column in self.__table__.columns}
