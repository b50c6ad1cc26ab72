"""Database models"""
from app.models.user import User
from app.models.subscription import Subscription, SubscriptionStatus, SubscriptionTier
from app.models.notification import DeviceToken, NotificationCategory, NotificationPreferences

__all__ = [
    "User",
    "Subscription",
    "SubscriptionStatus",
    "SubscriptionTier",
    "DeviceToken",
    "NotificationCategory",
    "NotificationPreferences",
]
