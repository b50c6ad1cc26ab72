"""Schemas for Subscription endpoints"""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime

from app.schemas.base import CamelModel


class VerifySubscriptionRequest(CamelModel):
    """Request to verify a Google Play subscription purchase"""
    package_name: str = Field(..., min_length=1, description="App package name")
    subscription_id: str = Field(..., min_length=1, description="Google Play subscription ID")
    purchase_token: str = Field(..., min_length=1, description="Google Play purchase token")


class SubscriptionResponse(CamelModel):
    """Stored subscription (purchase token is never returned)"""
    id: str
    subscription_id: str
    product_id: str
    order_id: Optional[str] = None
    tier: str
    status: str
    start_date: datetime
    expiry_date: datetime
    auto_renewing: bool
    payment_state: Optional[int] = None
    price_amount: Optional[float] = None
    price_currency: Optional[str] = None
    country_code: Optional[str] = None
    grace_period_end_date: Optional[datetime] = None
    trial_end_date: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class VerifySubscriptionResponse(CamelModel):
    """Response after purchase verification"""
    success: bool = True
    acknowledged: bool
    data: SubscriptionResponse


class SubscriptionStatusData(CamelModel):
    is_subscribed: bool
    tier: str  # free, basic, premium
    expiry_date: Optional[datetime] = None


class SubscriptionStatusResponse(CamelModel):
    success: bool = True
    data: SubscriptionStatusData


class SubscriptionHistoryResponse(CamelModel):
    success: bool = True
    data: List[SubscriptionResponse]


class WebhookMessage(BaseModel):
    data: str = Field(..., description="Base64 encoded notification JSON")
    message_id: Optional[str] = Field(None, alias="messageId")


class WebhookEnvelope(BaseModel):
    """Pub/Sub push envelope delivered by Google Play"""
    message: WebhookMessage
    subscription: Optional[str] = None
