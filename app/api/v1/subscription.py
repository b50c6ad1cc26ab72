"""Subscription API endpoints"""
from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.config import settings
from app.core.dependencies import get_current_user, get_google_play_service
from app.core.exceptions import WebhookDecodeError
from app.core.rate_limit import limiter
from app.database import get_db
from app.models.user import User
from app.services.google_play_service import GooglePlayService
from app.services.subscription_service import SubscriptionService
from app.schemas.base import MessageResponse
from app.schemas.subscription import (
    VerifySubscriptionRequest,
    VerifySubscriptionResponse,
    SubscriptionResponse,
    SubscriptionStatusData,
    SubscriptionStatusResponse,
    SubscriptionHistoryResponse,
    WebhookEnvelope,
)

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


@router.post("/webhook", response_model=MessageResponse)
async def handle_subscription_webhook(
    request: Request,
    db: Session = Depends(get_db),
    billing: GooglePlayService = Depends(get_google_play_service)
):
    """
    Google Play real-time developer notification webhook

    Always answers 200 once the payload decodes, whatever happens while
    applying the event, so Pub/Sub does not redeliver. Only an undecodable
    payload returns 500, including a body that is not a `{message: {data}}`
    envelope.
    """
    try:
        envelope = WebhookEnvelope.model_validate(await request.json())
    except (ValueError, ValidationError) as e:
        # A malformed envelope is undecodable like bad base64
        raise WebhookDecodeError(f"Error processing webhook: {str(e)}")

    service = SubscriptionService(db, billing)
    await service.handle_webhook(envelope.message.data)
    return MessageResponse(message="OK")


@router.post("/verify", response_model=VerifySubscriptionResponse)
@limiter.limit(settings.RATE_LIMIT_VERIFY)
async def verify_and_save_subscription(
    request: Request,
    payload: VerifySubscriptionRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    billing: GooglePlayService = Depends(get_google_play_service)
):
    """
    Verify a Google Play subscription and save it

    - **packageName**: App package name
    - **subscriptionId**: Google Play subscription ID
    - **purchaseToken**: Google Play purchase token

    Returns the stored subscription and whether Google acknowledged it.
    """
    service = SubscriptionService(db, billing)
    subscription, acknowledged = await service.verify_and_save(
        user_id=current_user.id,
        package_name=payload.package_name,
        subscription_id=payload.subscription_id,
        purchase_token=payload.purchase_token
    )
    return VerifySubscriptionResponse(
        acknowledged=acknowledged,
        data=SubscriptionResponse.model_validate(subscription)
    )


@router.get("/status", response_model=SubscriptionStatusResponse)
def get_subscription_status(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    billing: GooglePlayService = Depends(get_google_play_service)
):
    """Whether the caller currently holds an active subscription, and its tier"""
    service = SubscriptionService(db, billing)
    status_data = service.get_subscription_status(current_user.id)
    return SubscriptionStatusResponse(data=SubscriptionStatusData(**status_data))


@router.delete("", response_model=MessageResponse)
def cancel_subscription(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    billing: GooglePlayService = Depends(get_google_play_service)
):
    """
    Cancel the caller's active subscription

    Renewal itself is cancelled by the user in Google Play; this only
    records it. Returns 404 when nothing is active.
    """
    service = SubscriptionService(db, billing)
    service.cancel_subscription(current_user.id)
    return MessageResponse(message="Subscription cancelled successfully")


@router.get("/history", response_model=SubscriptionHistoryResponse)
def get_subscription_history(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    billing: GooglePlayService = Depends(get_google_play_service)
):
    """All of the caller's subscriptions, newest first"""
    service = SubscriptionService(db, billing)
    subscriptions = service.get_subscription_history(current_user.id)
    return SubscriptionHistoryResponse(
        data=[SubscriptionResponse.model_validate(s) for s in subscriptions]
    )
