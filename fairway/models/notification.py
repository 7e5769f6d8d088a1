"""
Notification model
"""

from sqlalchemy import Boolean, Column, String, ForeignKey, Text, Uuid
from sqlalchemy.orm import relationship

from fairway.models.base import BaseModel


class Notification(BaseModel):
    """
    In-app notification; unread ones feed the push badge count
    """
    __tablename__ = "notifications"

    user_id = Column(Uuid(as_uuid=True), ForeignKey("profiles.id"), nullable=False, index=True)
    type = Column(String(50), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False, index=True)

    # Relationships
    user = relationship("Profile", back_populates="notifications")

    def __repr__(self):
        return f"<Notification(id={self.id}, user_id={self.user_id}, type={self.type}, is_read={self.is_read})>"
