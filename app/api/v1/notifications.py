"""Notifications API endpoints (device tokens and sending)"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.dependencies import get_admin_user, get_current_user, get_fcm_service
from app.database import get_db
from app.models.user import User
from app.services.device_token_service import DeviceTokenService
from app.services.fcm_service import FCMService, PushOptions
from app.services.notification_service import NotificationService
from app.schemas.base import MessageResponse
from app.schemas.notification import (
    RegisterDeviceTokenRequest,
    UnregisterDeviceTokenRequest,
    DeviceTokenResponse,
    DeviceTokenListResponse,
    SendNotificationRequest,
    SendTopicNotificationRequest,
    DispatchResponse,
    TokenDeliveryResult,
    TopicNotificationResponse,
)

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _push_options(options) -> PushOptions:
    if options is None:
        return PushOptions()
    return PushOptions(**options.model_dump())


@router.post("/register", response_model=MessageResponse)
def register_device_token(
    token_data: RegisterDeviceTokenRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Register a device token for push notifications

    - **token**: Push token from the device
    - **deviceType**: android, ios or web
    - **deviceId**: Unique device identifier

    A token already registered by another account moves to the caller.
    """
    service = DeviceTokenService(db)
    service.register_token(
        user_id=current_user.id,
        token=token_data.token,
        device_type=token_data.device_type,
        device_id=token_data.device_id
    )
    return MessageResponse(message="Device token registered successfully")


@router.post("/unregister", response_model=MessageResponse)
@router.delete("/tokens", response_model=MessageResponse)
def unregister_device_token(
    token_data: UnregisterDeviceTokenRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Stop sending to a device token (the record is kept, marked inactive)"""
    service = DeviceTokenService(db)
    service.unregister_token(user_id=current_user.id, token=token_data.token)
    return MessageResponse(message="Device token unregistered successfully")


@router.get("/tokens", response_model=DeviceTokenListResponse)
def get_user_device_tokens(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Active device registrations for the caller, without token values"""
    service = DeviceTokenService(db)
    tokens = service.get_active_tokens(current_user.id)
    return DeviceTokenListResponse(
        data=[DeviceTokenResponse.model_validate(t) for t in tokens]
    )


@router.post("/send", response_model=DispatchResponse)
async def send_notification(
    notification_data: SendNotificationRequest,
    admin_user: User = Depends(get_admin_user),
    db: Session = Depends(get_db),
    push: FCMService = Depends(get_fcm_service)
):
    """
    Send a notification to one user (Admin only)

    Honours the user's category switches, quiet hours and registered
    devices. A suppressed send returns ``status: skipped`` with the reason.
    """
    service = NotificationService(db, push)
    result = await service.notify_user(
        user_id=notification_data.user_id,
        category=notification_data.category,
        title=notification_data.title,
        body=notification_data.body,
        data=notification_data.data,
        options=_push_options(notification_data.options)
    )
    return DispatchResponse(
        status=result.status,
        reason=result.reason,
        sent_count=result.sent_count,
        failed_count=result.failed_count,
        results=[
            TokenDeliveryResult(token=r.token, success=r.success, message_id=r.message_id, error=r.error)
            for r in result.results
        ]
    )


@router.post("/topic", response_model=TopicNotificationResponse)
async def send_topic_notification(
    notification_data: SendTopicNotificationRequest,
    admin_user: User = Depends(get_admin_user),
    push: FCMService = Depends(get_fcm_service)
):
    """Broadcast to an FCM topic (Admin only); no per-user gates apply"""
    message_id = await push.send_to_topic(
        topic=notification_data.topic,
        title=notification_data.title,
        body=notification_data.body,
        data=notification_data.data,
        options=_push_options(notification_data.options)
    )
    return TopicNotificationResponse(message_id=message_id)
