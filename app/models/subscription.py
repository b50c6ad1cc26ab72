"""Subscription models (Google Play only)"""
from sqlalchemy import (
    Column, String, DateTime, Boolean, Integer, Float, ForeignKey, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship
import enum
import uuid
from app.database import Base
from app.utils.time_utils import utc_now


class SubscriptionTier(str, enum.Enum):
    BASIC = "basic"
    PREMIUM = "premium"


class SubscriptionStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"
    PAUSED = "paused"
    FAILED = "failed"


class Subscription(Base):
    """
    A user's Google Play subscription

    One row per (user, subscription product). Rows are never deleted; the
    lifecycle engine only moves them between statuses. ``active`` means
    "active as of the last confirmed verification".
    """

    __tablename__ = "subscriptions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # Google Play purchase information
    subscription_id = Column(String(255), nullable=False, index=True)
    product_id = Column(String(255), nullable=False)
    purchase_token = Column(String(500), nullable=False, unique=True)
    order_id = Column(String(255), nullable=True, unique=True)
    developer_payload = Column(String(500), nullable=True)

    tier = Column(String(20), nullable=False)  # basic, premium
    status = Column(String(20), default=SubscriptionStatus.PENDING.value, nullable=False)

    # Billing period
    start_date = Column(DateTime, nullable=False)
    expiry_date = Column(DateTime, nullable=False)
    auto_renewing = Column(Boolean, default=True, nullable=False)
    grace_period_end_date = Column(DateTime, nullable=True)
    trial_end_date = Column(DateTime, nullable=True)

    # Payment details reported by Google Play
    payment_state = Column(Integer, nullable=True)  # 0 pending, 1 received, 2 free trial, 3 deferred
    price_amount = Column(Float, nullable=True)
    price_currency = Column(String(3), nullable=True)
    country_code = Column(String(2), nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    # Relationships
    user = relationship("User", back_populates="subscriptions")

    __table_args__ = (
        UniqueConstraint("user_id", "subscription_id", name="uq_subscriptions_user_subscription"),
        Index("idx_subscriptions_status_expiry", "status", "expiry_date"),
    )

    def __repr__(self):
        return f"<Subscription(id={self.id}, user_id={self.user_id}, status={self.status})>"
