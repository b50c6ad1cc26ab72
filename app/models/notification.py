"""Notification models (device tokens and preferences)"""
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
import enum
import uuid
from app.database import Base
from app.utils.time_utils import utc_now


class NotificationCategory(str, enum.Enum):
    """The five per-user notification switches"""

    NEW_WALLPAPERS = "newWallpapers"
    TRENDING_WALLPAPERS = "trendingWallpapers"
    SUBSCRIPTION_UPDATES = "subscriptionUpdates"
    SYSTEM_UPDATES = "systemUpdates"
    MARKETING_UPDATES = "marketingUpdates"


class DeviceToken(Base):
    """
    Push-capable device endpoint

    A token value exists at most once in the table. Registering a token that
    belongs to another user moves it to the new user; unregistering only
    clears ``is_active``.
    """

    __tablename__ = "device_tokens"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    token = Column(String(500), nullable=False, unique=True)

    # Device information
    device_type = Column(String(20), nullable=False)  # android, ios, web
    device_id = Column(String(255), nullable=False, index=True)

    # Status
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    # Timestamps
    last_used = Column(DateTime, default=utc_now, nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    # Relationships
    user = relationship("User", back_populates="device_tokens")

    def __repr__(self):
        return f"<DeviceToken(id={self.id}, user_id={self.user_id}, device={self.device_id})>"


class NotificationPreferences(Base):
    """Per-user notification switches and quiet-hours window"""

    __tablename__ = "notification_preferences"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)

    new_wallpapers = Column(Boolean, default=True, nullable=False)
    trending_wallpapers = Column(Boolean, default=True, nullable=False)
    subscription_updates = Column(Boolean, default=True, nullable=False)
    system_updates = Column(Boolean, default=True, nullable=False)
    marketing_updates = Column(Boolean, default=False, nullable=False)

    # Quiet hours: zone-naive "HH:mm" clock strings, zone applied when evaluated
    quiet_hours_enabled = Column(Boolean, default=False, nullable=False)
    quiet_hours_start = Column(String(5), default="22:00", nullable=False)
    quiet_hours_end = Column(String(5), default="08:00", nullable=False)
    quiet_hours_timezone = Column(String(64), default="UTC", nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    # Relationships
    user = relationship("User", back_populates="notification_preferences")

    # API field name -> column
    CATEGORY_COLUMNS = {
        NotificationCategory.NEW_WALLPAPERS.value: "new_wallpapers",
        NotificationCategory.TRENDING_WALLPAPERS.value: "trending_wallpapers",
        NotificationCategory.SUBSCRIPTION_UPDATES.value: "subscription_updates",
        NotificationCategory.SYSTEM_UPDATES.value: "system_updates",
        NotificationCategory.MARKETING_UPDATES.value: "marketing_updates",
    }

    def is_enabled(self, category: str) -> bool:
        """Whether the switch for a category is on"""
        return bool(getattr(self, self.CATEGORY_COLUMNS[category]))

    @property
    def quiet_hours(self) -> dict:
        return {
            "enabled": self.quiet_hours_enabled,
            "startTime": self.quiet_hours_start,
            "endTime": self.quiet_hours_end,
            "timezone": self.quiet_hours_timezone,
        }

    def __repr__(self):
        return f"<NotificationPreferences(user_id={self.user_id})>"
