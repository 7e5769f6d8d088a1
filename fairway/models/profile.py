"""
Member profile model
"""

from sqlalchemy import Boolean, Column, String
from sqlalchemy.orm import relationship

from fairway.models.base import BaseModel


class Profile(BaseModel):
    """
    Club member profile with push delivery preferences
    """
    __tablename__ = "profiles"

    display_name = Column(String(255))
    email = Column(String(255), index=True)
    expo_push_token = Column(String(255))
    push_dm_enabled = Column(Boolean, default=True, nullable=False)
    push_notifications_enabled = Column(Boolean, default=True, nullable=False)
    push_nearby_enabled = Column(Boolean, default=True, nullable=False)

    # Relationships
    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan")

    def push_enabled_for(self, push_type: str) -> bool:
        """Unknown push types are treated as disabled"""
        preferences = {
            "dm": self.push_dm_enabled,
            "notification": self.push_notifications_enabled,
            "nearby_meetup": self.push_nearby_enabled,
        }
        return bool(preferences.get(push_type, False))

    def __repr__(self):
        return f"<Profile(id={self.id}, display_name={self.display_name})>"
