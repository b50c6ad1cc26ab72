"""Notification preferences API endpoints"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.dependencies import get_current_user
from app.database import get_db
from app.models.user import User
from app.services.notification_preferences_service import NotificationPreferencesService
from app.schemas.notification import (
    NotificationPreferencesData,
    NotificationPreferencesResponse,
    UpdatePreferencesRequest,
    QuietHours,
    QuietHoursResponse,
)

router = APIRouter(prefix="/notification-preferences", tags=["notification preferences"])


@router.get("", response_model=NotificationPreferencesResponse)
def get_notification_preferences(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get the caller's preferences, creating the defaults on first read"""
    service = NotificationPreferencesService(db)
    preferences = service.get_preferences(current_user.id)
    return NotificationPreferencesResponse(data=NotificationPreferencesData.model_validate(preferences))


@router.patch("", response_model=NotificationPreferencesResponse)
def update_notification_preferences(
    updates: UpdatePreferencesRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Change any subset of the five category switches"""
    service = NotificationPreferencesService(db)
    preferences = service.update_preferences(
        current_user.id,
        updates.model_dump(by_alias=True, exclude_none=True)
    )
    return NotificationPreferencesResponse(data=NotificationPreferencesData.model_validate(preferences))


@router.put("/quiet-hours", response_model=QuietHoursResponse)
def update_quiet_hours(
    quiet_hours: QuietHours,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Set the quiet-hours window

    - **startTime** / **endTime**: ``HH:mm`` in the user's local clock
    - **timezone**: IANA zone name, e.g. ``Europe/Berlin``
    """
    service = NotificationPreferencesService(db)
    preferences = service.update_quiet_hours(
        current_user.id,
        enabled=quiet_hours.enabled,
        start_time=quiet_hours.start_time,
        end_time=quiet_hours.end_time,
        timezone=quiet_hours.timezone
    )
    return QuietHoursResponse(data=QuietHours.model_validate(preferences.quiet_hours))
