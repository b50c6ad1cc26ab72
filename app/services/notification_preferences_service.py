"""Notification preference store"""
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import Dict, Optional
import logging

from app.models.notification import NotificationPreferences

logger = logging.getLogger(__name__)


class NotificationPreferencesService:
    """Read and update per-user notification settings"""

    def __init__(self, db: Session):
        self.db = db

    def find(self, user_id: str) -> Optional[NotificationPreferences]:
        """Stored preferences, without creating defaults"""
        return self.db.query(NotificationPreferences).filter(
            NotificationPreferences.user_id == user_id
        ).first()

    def get_preferences(self, user_id: str) -> NotificationPreferences:
        """Get preferences, creating the defaults on first read"""
        preferences = self.find(user_id)
        if preferences:
            return preferences

        preferences = NotificationPreferences(user_id=user_id)
        self.db.add(preferences)
        try:
            self.db.commit()
        except IntegrityError:
            # Another request created them first
            self.db.rollback()
            return self.find(user_id)
        self.db.refresh(preferences)

        logger.info(f"Created default notification preferences for user {user_id}")
        return preferences

    def update_preferences(self, user_id: str, updates: Dict[str, bool]) -> NotificationPreferences:
        """
        Merge category switches into the user's preferences

        Args:
            user_id: User ID
            updates: Category name (e.g. ``newWallpapers``) to new value.
                Missing categories keep their current value.
        """
        preferences = self.get_preferences(user_id)

        for category, value in updates.items():
            if value is None:
                continue
            column = NotificationPreferences.CATEGORY_COLUMNS.get(category)
            if column is None:
                raise ValueError(f"Unknown notification category: {category}")
            setattr(preferences, column, value)

        self.db.commit()
        self.db.refresh(preferences)

        logger.info(f"Updated notification preferences for user {user_id}: {sorted(updates)}")
        return preferences

    def update_quiet_hours(
        self,
        user_id: str,
        enabled: bool,
        start_time: str,
        end_time: str,
        timezone: str
    ) -> NotificationPreferences:
        """Replace the user's quiet-hours window"""
        preferences = self.get_preferences(user_id)

        preferences.quiet_hours_enabled = enabled
        preferences.quiet_hours_start = start_time
        preferences.quiet_hours_end = end_time
        preferences.quiet_hours_timezone = timezone

        self.db.commit()
        self.db.refresh(preferences)

        logger.info(
            f"Updated quiet hours for user {user_id}: "
            f"enabled={enabled} {start_time}-{end_time} {timezone}"
        )
        return preferences
