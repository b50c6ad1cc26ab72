"""Firebase Cloud Messaging push delivery"""
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
import asyncio
import logging
import os

from app.config import settings
from app.core.exceptions import DeliveryFailedError

logger = logging.getLogger(__name__)


@dataclass
class PushOptions:
    """Delivery options shared by Android and APNs"""
    priority: str = "high"  # high, normal
    ttl: Optional[int] = None  # seconds
    collapse_key: Optional[str] = None
    sound: Optional[str] = None
    badge: Optional[int] = None


@dataclass
class TokenResult:
    token: str
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class MulticastResult:
    """Per-token outcome of one multicast send"""
    results: List[TokenResult] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failure_count(self) -> int:
        return sum(1 for r in self.results if not r.success)


def android_priorities(priority: str):
    """(message priority, notification priority) for Android"""
    if priority == "normal":
        return "normal", "default"
    return "high", "high"


def apns_priority(priority: str) -> str:
    return "5" if priority == "normal" else "10"


class FCMService:
    """
    Push delivery client backed by the Firebase Admin SDK

    Constructed once at startup. Without a credentials file it runs in
    development mode: messages are logged and every token is reported as
    delivered.
    """

    def __init__(
        self,
        credentials_path: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        channel_id: Optional[str] = None
    ):
        self.credentials_path = credentials_path or settings.FCM_CREDENTIALS_PATH
        self.timeout_seconds = timeout_seconds or settings.FCM_TIMEOUT_SECONDS
        self.channel_id = channel_id or settings.FCM_ANDROID_CHANNEL_ID
        self._firebase_app = None
        self._initialized = False

    def _get_firebase_app(self):
        """Initialize Firebase Admin SDK (lazy loading)"""
        if not self._initialized:
            self._initialized = True
            import firebase_admin
            from firebase_admin import credentials

            if firebase_admin._apps:
                self._firebase_app = firebase_admin.get_app()
            elif os.path.exists(self.credentials_path):
                try:
                    cred = credentials.Certificate(self.credentials_path)
                    # httpTimeout bounds the SDK's own HTTP calls
                    self._firebase_app = firebase_admin.initialize_app(
                        cred, {"httpTimeout": self.timeout_seconds}
                    )
                    logger.info("Firebase Admin SDK initialized successfully")
                except Exception as e:
                    logger.error(f"Failed to initialize Firebase Admin SDK: {str(e)}")
            else:
                logger.warning(f"FCM credentials file not found at {self.credentials_path}")
                logger.info("Running in development mode - notifications will be logged only")

        return self._firebase_app

    def _build_platform_config(self, options: PushOptions):
        from firebase_admin import messaging

        android_priority, notification_priority = android_priorities(options.priority)

        android = messaging.AndroidConfig(
            priority=android_priority,
            ttl=options.ttl,
            collapse_key=options.collapse_key,
            notification=messaging.AndroidNotification(
                channel_id=self.channel_id,
                priority=notification_priority,
                default_sound=True,
                default_vibrate_timings=True,
                sound=options.sound
            )
        )
        apns = messaging.APNSConfig(
            headers={
                "apns-priority": apns_priority(options.priority),
                "apns-expiration": str(options.ttl) if options.ttl else "0"
            },
            payload=messaging.APNSPayload(
                aps=messaging.Aps(
                    sound=options.sound or "default",
                    badge=options.badge if options.badge is not None else 1
                )
            )
        )
        return android, apns

    @staticmethod
    def _stringify(data: Optional[Dict[str, Any]]) -> Dict[str, str]:
        # FCM data payloads only carry string values
        return {str(k): str(v) for k, v in (data or {}).items()}

    async def _run(self, description: str, send: Callable[[], Any]) -> Any:
        try:
            return await asyncio.wait_for(asyncio.to_thread(send), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.error(f"FCM {description} timed out after {self.timeout_seconds}s")
            raise DeliveryFailedError(f"Timed out sending {description}")
        except Exception as e:
            logger.error(f"Failed to send FCM {description}: {str(e)}")
            raise DeliveryFailedError(f"Failed to send {description}")

    async def send_multicast(
        self,
        tokens: List[str],
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None,
        options: Optional[PushOptions] = None
    ) -> MulticastResult:
        """
        Send one notification to many device tokens

        Returns:
            Per-token results in the same order as ``tokens``

        Raises:
            DeliveryFailedError: The send call itself failed or timed out
        """
        options = options or PushOptions()
        app = self._get_firebase_app()

        if app is None:
            logger.info(f"[DEV MODE] Would send notification to {len(tokens)} devices:")
            logger.info(f"  Title: {title}")
            logger.info(f"  Body: {body}")
            logger.info(f"  Data: {data}")
            return MulticastResult(results=[TokenResult(token=t, success=True) for t in tokens])

        from firebase_admin import messaging

        android, apns = self._build_platform_config(options)
        message = messaging.MulticastMessage(
            tokens=tokens,
            notification=messaging.Notification(title=title, body=body),
            data=self._stringify(data),
            android=android,
            apns=apns
        )

        response = await self._run(
            "multicast notification",
            lambda: messaging.send_each_for_multicast(message, app=app)
        )

        results = []
        for token, item in zip(tokens, response.responses):
            results.append(TokenResult(
                token=token,
                success=item.success,
                message_id=item.message_id,
                error=str(item.exception) if item.exception else None
            ))

        result = MulticastResult(results=results)
        logger.info(f"Sent notification to {result.success_count}/{len(tokens)} devices")
        return result

    async def send_to_topic(
        self,
        topic: str,
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None,
        options: Optional[PushOptions] = None
    ) -> Optional[str]:
        """Broadcast to every device subscribed to a topic; returns the FCM message id"""
        topic = f"{settings.NOTIFICATION_TOPIC_PREFIX}{topic}"
        app = self._get_firebase_app()

        if app is None:
            logger.info(f"[DEV MODE] Would send to topic '{topic}': {title} - {body}")
            return None

        from firebase_admin import messaging

        android, apns = self._build_platform_config(options or PushOptions())
        message = messaging.Message(
            topic=topic,
            notification=messaging.Notification(title=title, body=body),
            data=self._stringify(data),
            android=android,
            apns=apns
        )
        message_id = await self._run("topic notification", lambda: messaging.send(message, app=app))
        logger.info(f"Sent notification to topic '{topic}'")
        return message_id
