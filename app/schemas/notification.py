"""Notification schemas"""
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict, Any, Literal
from datetime import datetime

from app.schemas.base import CamelModel
from app.models.notification import NotificationCategory
from app.utils.time_utils import is_valid_timezone

TIME_PATTERN = r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$"


class RegisterDeviceTokenRequest(CamelModel):
    """Register a device token for push notifications"""
    token: str = Field(..., min_length=1, max_length=500)
    device_type: Literal["android", "ios", "web"]
    device_id: str = Field(..., min_length=1, max_length=255)


class UnregisterDeviceTokenRequest(CamelModel):
    token: str = Field(..., min_length=1, max_length=500)


class DeviceTokenResponse(CamelModel):
    """Device token details (token value is not exposed)"""
    id: str
    device_type: str
    device_id: str
    is_active: bool
    last_used: datetime


class DeviceTokenListResponse(CamelModel):
    success: bool = True
    data: List[DeviceTokenResponse]


class QuietHours(CamelModel):
    enabled: bool
    start_time: str = Field(..., pattern=TIME_PATTERN)
    end_time: str = Field(..., pattern=TIME_PATTERN)
    timezone: str = Field(..., min_length=1)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        if not is_valid_timezone(value):
            raise ValueError(f"Unknown timezone: {value}")
        return value


class NotificationPreferencesData(CamelModel):
    new_wallpapers: bool
    trending_wallpapers: bool
    subscription_updates: bool
    system_updates: bool
    marketing_updates: bool
    quiet_hours: QuietHours


class NotificationPreferencesResponse(CamelModel):
    success: bool = True
    data: NotificationPreferencesData


class UpdatePreferencesRequest(CamelModel):
    """Partial update of the category switches"""
    new_wallpapers: Optional[bool] = None
    trending_wallpapers: Optional[bool] = None
    subscription_updates: Optional[bool] = None
    system_updates: Optional[bool] = None
    marketing_updates: Optional[bool] = None


class QuietHoursResponse(CamelModel):
    success: bool = True
    data: QuietHours


class PushOptions(CamelModel):
    priority: Literal["high", "normal"] = "high"
    ttl: Optional[int] = Field(None, ge=0, description="Time to live in seconds")
    collapse_key: Optional[str] = None
    sound: Optional[str] = None
    badge: Optional[int] = Field(None, ge=0)


class SendNotificationRequest(CamelModel):
    """Send a notification to one user (admin only)"""
    user_id: str
    category: NotificationCategory
    title: str = Field(..., min_length=1, max_length=100)
    body: str = Field(..., min_length=1, max_length=500)
    data: Optional[Dict[str, Any]] = None
    options: Optional[PushOptions] = None


class SendTopicNotificationRequest(CamelModel):
    """Broadcast to a topic (admin only)"""
    topic: str = Field(..., min_length=1, max_length=255)
    title: str = Field(..., min_length=1, max_length=100)
    body: str = Field(..., min_length=1, max_length=500)
    data: Optional[Dict[str, Any]] = None
    options: Optional[PushOptions] = None


class TokenDeliveryResult(CamelModel):
    token: str
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class DispatchResponse(CamelModel):
    success: bool = True
    status: Literal["sent", "skipped"]
    reason: Optional[str] = None
    sent_count: int = 0
    failed_count: int = 0
    results: List[TokenDeliveryResult] = []


class TopicNotificationResponse(CamelModel):
    success: bool = True
    message_id: Optional[str] = None
