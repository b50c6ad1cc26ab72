"""Notification dispatch: preference and quiet-hours gates in front of FCM"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Optional
import logging

from app.models.notification import NotificationCategory
from app.services.device_token_service import DeviceTokenService
from app.services.fcm_service import FCMService, PushOptions, TokenResult
from app.services.notification_preferences_service import NotificationPreferencesService
from app.utils.time_utils import format_time_for_timezone, is_within_quiet_hours

logger = logging.getLogger(__name__)

SENT = "sent"
SKIPPED = "skipped"

SKIP_NO_PREFERENCES = "no_preferences"
SKIP_PREFERENCE_DISABLED = "preference_disabled"
SKIP_QUIET_HOURS = "quiet_hours"
SKIP_NO_ACTIVE_TOKENS = "no_active_tokens"


@dataclass
class DispatchResult:
    status: str
    reason: Optional[str] = None
    results: List[TokenResult] = field(default_factory=list)

    @property
    def sent_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @classmethod
    def skipped(cls, reason: str) -> "DispatchResult":
        return cls(status=SKIPPED, reason=reason)


class NotificationService:
    """
    Decide whether a user should get a notification and fan it out

    Reads preferences and device tokens without modifying them. Failed
    tokens are reported back, not retried or deactivated.
    """

    def __init__(self, db: Session, push: FCMService):
        self.db = db
        self.push = push
        self.preferences = NotificationPreferencesService(db)
        self.tokens = DeviceTokenService(db)

    async def notify_user(
        self,
        user_id: str,
        category: NotificationCategory,
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None,
        options: Optional[PushOptions] = None,
        now: Optional[datetime] = None
    ) -> DispatchResult:
        """
        Send a notification of one category to all of a user's active devices

        Gates, in order: stored preferences must exist, the category switch
        must be on, the user must be outside quiet hours, and at least one
        active token must be registered. A closed gate is a normal
        ``skipped`` result, not an error.

        Raises:
            DeliveryFailedError: The push provider call failed or timed out
        """
        category = NotificationCategory(category)

        # Defaults are for display only; a user who never saved preferences gets nothing
        preferences = self.preferences.find(user_id)
        if preferences is None:
            logger.info(f"No notification preferences found for user {user_id}")
            return DispatchResult.skipped(SKIP_NO_PREFERENCES)

        if not preferences.is_enabled(category.value):
            logger.info(f"User {user_id} has disabled {category.value} notifications")
            return DispatchResult.skipped(SKIP_PREFERENCE_DISABLED)

        if is_within_quiet_hours(
            preferences.quiet_hours_enabled,
            preferences.quiet_hours_start,
            preferences.quiet_hours_end,
            preferences.quiet_hours_timezone,
            now=now
        ):
            local_time = format_time_for_timezone(now or datetime.now(timezone.utc), preferences.quiet_hours_timezone)
            logger.info(f"User {user_id} is in quiet hours (local time {local_time})")
            return DispatchResult.skipped(SKIP_QUIET_HOURS)

        device_tokens = self.tokens.get_active_tokens(user_id)
        if not device_tokens:
            logger.info(f"User {user_id} has no active device tokens")
            return DispatchResult.skipped(SKIP_NO_ACTIVE_TOKENS)

        tokens = [dt.token for dt in device_tokens]
        response = await self.push.send_multicast(tokens, title, body, data=data, options=options)

        logger.info(
            f"Dispatched {category.value} notification to user {user_id}: "
            f"{response.success_count}/{len(tokens)} delivered"
        )
        return DispatchResult(status=SENT, results=response.results)
