"""
Shared fixtures: in-memory database, fake Google Play and FCM clients,
authenticated users.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret"
os.environ["RATE_LIMIT_VERIFY"] = "1000/minute"
os.environ["GOOGLE_PLAY_PREMIUM_PRODUCT_IDS"] = "com.yourapp.subscription.premium"
os.environ["GOOGLE_PLAY_BASIC_PRODUCT_IDS"] = "com.yourapp.subscription.basic"

from datetime import timedelta
from typing import Dict, Generator, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.dependencies import get_fcm_service, get_google_play_service
from app.core.exceptions import VerificationFailedError
from app.core.security import create_access_token
from app.database import Base, get_db
from app.main import app
from app.models import User
from app.services.fcm_service import MulticastResult, PushOptions, TokenResult
from app.services.google_play_service import SubscriptionVerification
from app.utils.time_utils import utc_now

PACKAGE_NAME = "com.yourapp.wallpapers"
PREMIUM_ID = "com.yourapp.subscription.premium"
BASIC_ID = "com.yourapp.subscription.basic"


class FakeGooglePlay:
    """Stands in for GooglePlayService; results are keyed by purchase token"""

    def __init__(self):
        self.results: Dict[str, SubscriptionVerification] = {}
        self.verify_calls: List[tuple] = []
        self.ack_calls: List[tuple] = []
        self.fail_verify = False
        self.fail_ack = False

    def set_valid(self, purchase_token: str, tier: str = "premium", days: int = 30, order_id: Optional[str] = None):
        self.results[purchase_token] = SubscriptionVerification(
            is_valid=True,
            tier=tier,
            expiry_date=utc_now() + timedelta(days=days),
            auto_renewing=True,
            payment_state=1,
            order_id=order_id,
            price_amount=4.99,
            price_currency="USD",
            country_code="US"
        )

    def set_invalid(self, purchase_token: str):
        self.results[purchase_token] = SubscriptionVerification(
            is_valid=False,
            tier="basic",
            expiry_date=utc_now() - timedelta(days=1),
            payment_state=0
        )

    async def verify_subscription(self, package_name, subscription_id, purchase_token):
        self.verify_calls.append((package_name, subscription_id, purchase_token))
        if self.fail_verify:
            raise VerificationFailedError("Google Play verification timed out")
        return self.results[purchase_token]

    async def acknowledge_subscription(self, package_name, subscription_id, purchase_token):
        self.ack_calls.append((package_name, subscription_id, purchase_token))
        if self.fail_ack:
            raise VerificationFailedError("Error during Google Play acknowledgement")


class FakeFCM:
    """Stands in for FCMService; records every multicast"""

    def __init__(self):
        self.multicast_calls: List[dict] = []
        self.topic_calls: List[dict] = []
        self.failing_tokens = set()

    async def send_multicast(self, tokens, title, body, data=None, options: Optional[PushOptions] = None):
        self.multicast_calls.append({
            "tokens": list(tokens),
            "title": title,
            "body": body,
            "data": data,
            "options": options,
        })
        return MulticastResult(results=[
            TokenResult(
                token=t,
                success=t not in self.failing_tokens,
                message_id=None if t in self.failing_tokens else f"msg-{t}",
                error="registration-token-not-registered" if t in self.failing_tokens else None
            )
            for t in tokens
        ])

    async def send_to_topic(self, topic, title, body, data=None, options=None):
        self.topic_calls.append({"topic": topic, "title": title, "body": body})
        return f"topic-msg-{topic}"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)


@pytest.fixture
def db(engine) -> Generator[Session, None, None]:
    session = sessionmaker(bind=engine, autoflush=False, autocommit=False)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def google_play() -> FakeGooglePlay:
    return FakeGooglePlay()


@pytest.fixture
def fcm() -> FakeFCM:
    return FakeFCM()


@pytest.fixture
def client(engine, google_play, fcm) -> Generator[TestClient, None, None]:
    TestingSession = sessionmaker(bind=engine, autoflush=False, autocommit=False)

    def _override_get_db():
        session = TestingSession()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_google_play_service] = lambda: google_play
    app.dependency_overrides[get_fcm_service] = lambda: fcm
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_user(db: Session, email: str, is_admin: bool = False) -> User:
    user = User(email=email, display_name=email.split("@")[0], is_admin=is_admin)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def auth_headers(user: User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture
def user(db) -> User:
    return make_user(db, "user@example.com")


@pytest.fixture
def other_user(db) -> User:
    return make_user(db, "other@example.com")


@pytest.fixture
def admin(db) -> User:
    return make_user(db, "admin@example.com", is_admin=True)
