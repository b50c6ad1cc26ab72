"""Subscription lifecycle service for Google Play purchases"""
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Optional, Tuple
import base64
import binascii
import enum
import json
import logging

from app.config import settings
from app.core.exceptions import (
    ConflictError,
    InvalidSubscriptionError,
    NotFoundError,
    WebhookDecodeError,
)
from app.models.subscription import Subscription, SubscriptionStatus
from app.services.google_play_service import GooglePlayService, SubscriptionVerification
from app.utils.time_utils import utc_now

logger = logging.getLogger(__name__)


class NotificationType(str, enum.Enum):
    """Subscription events delivered by the Google Play webhook"""

    PURCHASED = "PURCHASED"
    RENEWED = "RENEWED"
    EXPIRED = "EXPIRED"
    CANCELED = "CANCELED"
    RECOVERED = "RECOVERED"
    PAUSED = "PAUSED"
    RESTARTED = "RESTARTED"
    PRORATED = "PRORATED"
    DEFERRED = "DEFERRED"

    @classmethod
    def parse(cls, raw: Any) -> Optional["NotificationType"]:
        """
        Accept ``RENEWED``, ``SUBSCRIPTION_RENEWED`` or the numeric RTDN code

        Returns None for anything outside the handled set.
        """
        if isinstance(raw, bool) or raw is None:
            return None
        if isinstance(raw, int) or (isinstance(raw, str) and raw.isdigit()):
            return RTDN_CODES.get(int(raw))
        if isinstance(raw, str):
            name = raw.strip().upper()
            if name.startswith("SUBSCRIPTION_"):
                name = name[len("SUBSCRIPTION_"):]
            try:
                return cls(name)
            except ValueError:
                return None
        return None


# Google Play Real-time developer notification codes
RTDN_CODES = {
    1: NotificationType.RECOVERED,
    2: NotificationType.RENEWED,
    3: NotificationType.CANCELED,
    4: NotificationType.PURCHASED,
    7: NotificationType.RESTARTED,
    9: NotificationType.DEFERRED,
    10: NotificationType.PAUSED,
    13: NotificationType.EXPIRED,
}

# Events that re-verify with Google before touching the record:
# (set status to active, set auto_renewing to true)
REVERIFY_EFFECTS = {
    NotificationType.PURCHASED: (True, True),
    NotificationType.RENEWED: (True, True),
    NotificationType.RECOVERED: (True, False),
    NotificationType.RESTARTED: (True, False),
    NotificationType.PRORATED: (False, False),
    NotificationType.DEFERRED: (False, False),
}


class SubscriptionService:
    """
    Subscription lifecycle engine

    Reconciles verify requests and webhook events against the stored
    subscription records. Holds no state of its own beyond the session and
    the billing client it is given.
    """

    def __init__(self, db: Session, billing: GooglePlayService):
        self.db = db
        self.billing = billing

    def _commit(self):
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Subscription write rejected by unique constraint: {e.orig}")
            raise ConflictError("Purchase token or order is already linked to another subscription")

    async def verify_and_save(
        self,
        user_id: str,
        package_name: str,
        subscription_id: str,
        purchase_token: str
    ) -> Tuple[Subscription, bool]:
        """
        Verify a purchase with Google Play and upsert the user's subscription

        Replaying the same purchase converges on the same row. The purchase
        is acknowledged after the row is written; an acknowledgement failure
        is logged and reported but the stored subscription stands.

        Returns:
            (subscription, acknowledged)

        Raises:
            InvalidSubscriptionError: Google reports the purchase as unpaid or expired
            VerificationFailedError: Google could not be reached
            ConflictError: Purchase token or order id belongs to another record
        """
        logger.info(f"Verifying subscription {subscription_id} for user {user_id}")

        verification = await self.billing.verify_subscription(package_name, subscription_id, purchase_token)
        if not verification.is_valid:
            logger.info(f"Rejected subscription {subscription_id} for user {user_id}: not paid or expired")
            raise InvalidSubscriptionError()

        subscription = self.db.query(Subscription).filter(
            Subscription.user_id == user_id,
            Subscription.subscription_id == subscription_id
        ).first()

        if subscription is None:
            subscription = Subscription(
                user_id=user_id,
                subscription_id=subscription_id,
                start_date=verification.start_date or utc_now()
            )
            self.db.add(subscription)

        subscription.product_id = subscription_id
        subscription.purchase_token = purchase_token
        subscription.tier = verification.tier
        subscription.status = SubscriptionStatus.ACTIVE.value
        subscription.expiry_date = verification.expiry_date
        subscription.auto_renewing = True
        self._apply_payment_details(subscription, verification)

        self._commit()
        self.db.refresh(subscription)

        logger.info(
            f"Subscription {subscription_id} active for user {user_id} "
            f"(tier={subscription.tier}, expires={subscription.expiry_date})"
        )

        acknowledged = True
        try:
            await self.billing.acknowledge_subscription(package_name, subscription_id, purchase_token)
        except Exception as e:
            acknowledged = False
            logger.error(f"Acknowledgement failed for subscription {subscription_id}, user {user_id}: {str(e)}")

        return subscription, acknowledged

    @staticmethod
    def _apply_payment_details(subscription: Subscription, verification: SubscriptionVerification):
        if verification.payment_state is not None:
            subscription.payment_state = verification.payment_state
        if verification.order_id:
            subscription.order_id = verification.order_id
        if verification.price_amount is not None:
            subscription.price_amount = verification.price_amount
        if verification.price_currency:
            subscription.price_currency = verification.price_currency
        if verification.country_code:
            subscription.country_code = verification.country_code
        if verification.developer_payload:
            subscription.developer_payload = verification.developer_payload

    @staticmethod
    def decode_webhook(data: str) -> Dict[str, Any]:
        """
        Decode the base64 JSON payload of a webhook message

        Both the flat shape and Google's RTDN shape (with a nested
        ``subscriptionNotification``) are flattened to
        ``notificationType``, ``subscriptionId``, ``purchaseToken``, ``packageName``.
        """
        try:
            payload = json.loads(base64.b64decode(data, validate=True).decode("utf-8"))
        except (binascii.Error, UnicodeDecodeError, ValueError) as e:
            raise WebhookDecodeError(f"Error processing webhook: {str(e)}")

        if not isinstance(payload, dict):
            raise WebhookDecodeError("Error processing webhook: payload is not an object")

        nested = payload.get("subscriptionNotification")
        if isinstance(nested, dict):
            payload = {**payload, **nested}

        payload.setdefault("packageName", settings.GOOGLE_PLAY_PACKAGE_NAME)
        return payload

    async def handle_webhook(self, data: str) -> Optional[NotificationType]:
        """
        Decode and process one webhook delivery

        Only a payload that cannot be decoded raises. Everything after
        decoding is logged and swallowed so the sender never sees a failure
        and does not redeliver.
        """
        payload = self.decode_webhook(data)
        try:
            return await self.process_notification(payload)
        except Exception:
            self.db.rollback()
            logger.exception(
                f"Webhook processing failed for {payload.get('notificationType')} "
                f"on subscription {payload.get('subscriptionId')}"
            )
            return None

    async def process_notification(self, payload: Dict[str, Any]) -> Optional[NotificationType]:
        """Apply one decoded webhook event to the matching subscription"""
        notification_type = NotificationType.parse(payload.get("notificationType"))
        if notification_type is None:
            logger.info(f"Unhandled notification type: {payload.get('notificationType')}")
            return None

        subscription_id = payload.get("subscriptionId")
        purchase_token = payload.get("purchaseToken")
        package_name = payload.get("packageName")

        # subscriptionId alone is shared by every subscriber of the product.
        # An event carrying a new linked purchase token (upgrade, resubscribe)
        # matches no row and is dropped until the app calls verify with it.
        subscription = self.db.query(Subscription).filter(
            Subscription.subscription_id == subscription_id,
            Subscription.purchase_token == purchase_token
        ).first()
        if subscription is None:
            # Webhooks never create records; only a verify call does
            logger.info(f"Ignoring {notification_type.value} for unknown subscription {subscription_id}")
            return notification_type

        if notification_type in REVERIFY_EFFECTS:
            set_active, set_auto_renewing = REVERIFY_EFFECTS[notification_type]
            verification = await self.billing.verify_subscription(package_name, subscription_id, purchase_token)
            if not verification.is_valid:
                logger.info(f"{notification_type.value} for subscription {subscription_id} did not verify, leaving as is")
                return notification_type

            subscription.expiry_date = verification.expiry_date
            if set_active:
                subscription.status = SubscriptionStatus.ACTIVE.value
            if set_auto_renewing:
                subscription.auto_renewing = True

        elif notification_type == NotificationType.EXPIRED:
            subscription.status = SubscriptionStatus.EXPIRED.value
            subscription.auto_renewing = False

        elif notification_type == NotificationType.CANCELED:
            subscription.status = SubscriptionStatus.CANCELLED.value
            subscription.auto_renewing = False

        elif notification_type == NotificationType.PAUSED:
            subscription.status = SubscriptionStatus.PAUSED.value

        self._commit()
        logger.info(
            f"Applied {notification_type.value} to subscription {subscription_id} "
            f"(status={subscription.status}, expires={subscription.expiry_date})"
        )
        return notification_type

    def cancel_subscription(self, user_id: str) -> Subscription:
        """
        Cancel the user's active subscription locally

        Google Play is not called; the user cancels renewal in the store.

        Raises:
            NotFoundError: No active subscription
        """
        subscription = self.db.query(Subscription).filter(
            Subscription.user_id == user_id,
            Subscription.status == SubscriptionStatus.ACTIVE.value
        ).order_by(Subscription.expiry_date.desc()).first()

        if not subscription:
            raise NotFoundError("No active subscription found")

        subscription.status = SubscriptionStatus.CANCELLED.value
        subscription.auto_renewing = False
        self._commit()

        logger.info(f"Subscription {subscription.subscription_id} cancelled for user {user_id}")
        return subscription

    def get_active_subscription(self, user_id: str) -> Optional[Subscription]:
        """Active subscription whose last known expiry is still ahead"""
        return self.db.query(Subscription).filter(
            Subscription.user_id == user_id,
            Subscription.status == SubscriptionStatus.ACTIVE.value,
            Subscription.expiry_date > utc_now()
        ).order_by(Subscription.expiry_date.desc()).first()

    def get_subscription_status(self, user_id: str) -> Dict[str, Any]:
        """Get user's subscription status"""
        subscription = self.get_active_subscription(user_id)
        return {
            "is_subscribed": subscription is not None,
            "tier": subscription.tier if subscription else "free",
            "expiry_date": subscription.expiry_date if subscription else None
        }

    def get_subscription_history(self, user_id: str) -> List[Subscription]:
        """All of a user's subscriptions, newest first"""
        return self.db.query(Subscription).filter(
            Subscription.user_id == user_id
        ).order_by(
            Subscription.created_at.desc()
        ).all()
