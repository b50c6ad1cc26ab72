"""Shared FastAPI dependencies"""
from typing import Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core.exceptions import ForbiddenError, SubscriptionRequiredError, UnauthorizedError
from app.core.security import decode_access_token
from app.database import get_db
from app.models.subscription import Subscription, SubscriptionTier
from app.models.user import User
from app.services.fcm_service import FCMService
from app.services.google_play_service import GooglePlayService
from app.services.subscription_service import SubscriptionService

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db)
) -> User:
    """Resolve the caller from the bearer token"""
    if credentials is None:
        raise UnauthorizedError()

    try:
        payload = decode_access_token(credentials.credentials)
    except jwt.InvalidTokenError:
        raise UnauthorizedError("Could not validate credentials")

    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedError("Could not validate credentials")

    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active:
        raise UnauthorizedError("User not found")
    return user


def get_admin_user(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        raise ForbiddenError("Admin access required")
    return current_user


def get_google_play_service(request: Request) -> GooglePlayService:
    """Billing client created at startup"""
    return request.app.state.google_play


def get_fcm_service(request: Request) -> FCMService:
    """Push client created at startup"""
    return request.app.state.fcm


def require_subscription(required_tier: str = "basic"):
    """
    Dependency factory gating a route on the caller's subscription

    Usage:
        @router.get("/premium", dependencies=[Depends(require_subscription("premium"))])
    """

    def dependency(
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
        billing: GooglePlayService = Depends(get_google_play_service)
    ) -> Subscription:
        subscription = SubscriptionService(db, billing).get_active_subscription(current_user.id)
        if not subscription:
            raise SubscriptionRequiredError()
        if required_tier == SubscriptionTier.PREMIUM.value and subscription.tier != SubscriptionTier.PREMIUM.value:
            raise SubscriptionRequiredError("Premium subscription required")
        return subscription

    return dependency
