"""Google Play Developer API client for subscription purchases"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional
import asyncio
import logging
import os

from app.config import settings
from app.core.exceptions import VerificationFailedError
from app.utils.time_utils import from_millis, utc_now

logger = logging.getLogger(__name__)

ANDROID_PUBLISHER_SCOPE = "https://www.googleapis.com/auth/androidpublisher"

# paymentState reported by purchases.subscriptions.get
PAYMENT_RECEIVED = 1


@dataclass
class SubscriptionVerification:
    """Result of verifying a purchase token with Google Play"""
    is_valid: bool
    tier: str
    expiry_date: datetime
    start_date: Optional[datetime] = None
    auto_renewing: bool = False
    payment_state: Optional[int] = None
    order_id: Optional[str] = None
    price_amount: Optional[float] = None
    price_currency: Optional[str] = None
    country_code: Optional[str] = None
    developer_payload: Optional[str] = None


class GooglePlayService:
    """
    Billing verification client

    Built once at startup and handed to the subscription service. The
    Google client library is blocking, so every call runs in a worker thread
    under ``timeout_seconds``.
    """

    def __init__(
        self,
        service_account_path: Optional[str] = None,
        tiers: Optional[Dict[str, str]] = None,
        timeout_seconds: Optional[float] = None
    ):
        self.service_account_path = service_account_path or settings.GOOGLE_PLAY_SERVICE_ACCOUNT_PATH
        self.tiers = tiers if tiers is not None else settings.SUBSCRIPTION_TIERS
        self.timeout_seconds = timeout_seconds or settings.GOOGLE_PLAY_TIMEOUT_SECONDS
        self._service = None

    def _get_service(self):
        """Build the androidpublisher client (lazy loading)"""
        if self._service is None:
            if not os.path.exists(self.service_account_path):
                logger.error(f"Google Play service account file not found at {self.service_account_path}")
                raise VerificationFailedError("Google Play verification is not configured")

            import httplib2
            from google.oauth2 import service_account
            from google_auth_httplib2 import AuthorizedHttp
            from googleapiclient.discovery import build

            credentials = service_account.Credentials.from_service_account_file(
                self.service_account_path,
                scopes=[ANDROID_PUBLISHER_SCOPE]
            )
            # Socket-level timeout, same bound as the await in _call
            http = AuthorizedHttp(credentials, http=httplib2.Http(timeout=self.timeout_seconds))
            self._service = build("androidpublisher", "v3", http=http, cache_discovery=False)
            logger.info("Google Play Developer API client initialized")

        return self._service

    def _subscriptions(self):
        return self._get_service().purchases().subscriptions()

    async def _call(self, description: str, request_factory: Callable[[], Any]) -> Any:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(lambda: request_factory().execute()),
                timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.error(f"Google Play {description} timed out after {self.timeout_seconds}s")
            raise VerificationFailedError(f"Google Play {description} timed out")
        except VerificationFailedError:
            raise
        except Exception as e:
            logger.error(f"Google Play {description} failed: {str(e)}")
            raise VerificationFailedError(f"Error during Google Play {description}")

    def get_subscription_tier(self, subscription_id: str) -> str:
        """Map a subscription ID to a tier; unknown IDs are basic"""
        return self.tiers.get(subscription_id, "basic")

    async def verify_subscription(
        self,
        package_name: str,
        subscription_id: str,
        purchase_token: str
    ) -> SubscriptionVerification:
        """
        Look up a subscription purchase

        A purchase is valid only when payment has been received and the
        expiry reported by Google is still in the future.

        Raises:
            VerificationFailedError: Provider error, timeout or missing credentials
        """
        response = await self._call(
            "verification",
            lambda: self._subscriptions().get(
                packageName=package_name,
                subscriptionId=subscription_id,
                token=purchase_token
            )
        )
        return self.parse_purchase(subscription_id, response)

    def parse_purchase(self, subscription_id: str, purchase: Optional[Dict[str, Any]]) -> SubscriptionVerification:
        """Turn a SubscriptionPurchase resource into a verification result"""
        if not purchase:
            return SubscriptionVerification(
                is_valid=False,
                tier=self.get_subscription_tier(subscription_id),
                expiry_date=from_millis(0)
            )

        expiry_date = from_millis(purchase.get("expiryTimeMillis") or 0)
        payment_state = purchase.get("paymentState")
        is_valid = payment_state == PAYMENT_RECEIVED and expiry_date > utc_now()

        price_micros = purchase.get("priceAmountMicros")
        start_millis = purchase.get("startTimeMillis")

        return SubscriptionVerification(
            is_valid=is_valid,
            tier=self.get_subscription_tier(subscription_id),
            expiry_date=expiry_date,
            start_date=from_millis(start_millis) if start_millis else None,
            auto_renewing=bool(purchase.get("autoRenewing")),
            payment_state=payment_state,
            order_id=purchase.get("orderId"),
            price_amount=int(price_micros) / 1_000_000 if price_micros is not None else None,
            price_currency=purchase.get("priceCurrencyCode"),
            country_code=purchase.get("countryCode"),
            developer_payload=purchase.get("developerPayload") or None
        )

    async def acknowledge_subscription(
        self,
        package_name: str,
        subscription_id: str,
        purchase_token: str
    ) -> None:
        """Acknowledge a subscription purchase so Google does not refund it"""
        await self._call(
            "acknowledgement",
            lambda: self._subscriptions().acknowledge(
                packageName=package_name,
                subscriptionId=subscription_id,
                token=purchase_token,
                body={}
            )
        )
        logger.info(f"Acknowledged subscription {subscription_id}")
