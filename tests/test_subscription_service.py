"""
Tests for the subscription lifecycle engine.

Covers:
- Idempotent verify-and-save upserts
- Acknowledgement failures that keep the stored record
- Webhook dispatch for every handled notification type
- Cancellation of the active subscription
"""
import asyncio
import base64
import json
from datetime import timedelta

import pytest

from app.core.exceptions import (
    ConflictError,
    InvalidSubscriptionError,
    NotFoundError,
    VerificationFailedError,
    WebhookDecodeError,
)
from app.models import Subscription
from app.services.subscription_service import NotificationType, SubscriptionService
from app.utils.time_utils import utc_now
from tests.conftest import BASIC_ID, PACKAGE_NAME, PREMIUM_ID


def run(coro):
    return asyncio.run(coro)


def encode(payload: dict) -> str:
    return base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")


def webhook(notification_type, subscription_id=PREMIUM_ID, purchase_token="token-1") -> str:
    return encode({
        "notificationType": notification_type,
        "subscriptionId": subscription_id,
        "purchaseToken": purchase_token,
        "packageName": PACKAGE_NAME,
    })


@pytest.fixture
def service(db, google_play):
    return SubscriptionService(db, google_play)


@pytest.fixture
def active_subscription(service, google_play, user):
    google_play.set_valid("token-1", tier="premium", order_id="GPA.1234")
    subscription, _ = run(service.verify_and_save(user.id, PACKAGE_NAME, PREMIUM_ID, "token-1"))
    return subscription


class TestVerifyAndSave:

    def test_creates_active_subscription(self, service, google_play, user, db):
        google_play.set_valid("token-1", tier="premium", order_id="GPA.1234")

        subscription, acknowledged = run(service.verify_and_save(user.id, PACKAGE_NAME, PREMIUM_ID, "token-1"))

        assert acknowledged is True
        assert subscription.status == "active"
        assert subscription.tier == "premium"
        assert subscription.auto_renewing is True
        assert subscription.order_id == "GPA.1234"
        assert subscription.price_currency == "USD"
        assert subscription.expiry_date > utc_now()
        assert google_play.ack_calls == [(PACKAGE_NAME, PREMIUM_ID, "token-1")]

    def test_replay_converges_on_one_record(self, service, google_play, user, db):
        google_play.set_valid("token-1", order_id="GPA.1234")

        first, _ = run(service.verify_and_save(user.id, PACKAGE_NAME, PREMIUM_ID, "token-1"))
        first_id, first_start = first.id, first.start_date
        second, _ = run(service.verify_and_save(user.id, PACKAGE_NAME, PREMIUM_ID, "token-1"))

        assert db.query(Subscription).count() == 1
        assert second.id == first_id
        assert second.start_date == first_start
        assert second.status == "active"
        assert second.purchase_token == "token-1"
        assert second.order_id == "GPA.1234"

    def test_reactivates_cancelled_subscription(self, service, google_play, user, active_subscription):
        service.cancel_subscription(user.id)

        subscription, _ = run(service.verify_and_save(user.id, PACKAGE_NAME, PREMIUM_ID, "token-1"))

        assert subscription.status == "active"
        assert subscription.auto_renewing is True

    def test_invalid_purchase_is_rejected_without_writing(self, service, google_play, user, db):
        google_play.set_invalid("token-1")

        with pytest.raises(InvalidSubscriptionError):
            run(service.verify_and_save(user.id, PACKAGE_NAME, PREMIUM_ID, "token-1"))

        assert db.query(Subscription).count() == 0
        assert google_play.ack_calls == []

    def test_provider_failure_surfaces_and_writes_nothing(self, service, google_play, user, db):
        google_play.fail_verify = True

        with pytest.raises(VerificationFailedError):
            run(service.verify_and_save(user.id, PACKAGE_NAME, PREMIUM_ID, "token-1"))

        assert db.query(Subscription).count() == 0

    def test_acknowledgement_failure_keeps_record(self, service, google_play, user, db):
        google_play.set_valid("token-1")
        google_play.fail_ack = True

        subscription, acknowledged = run(service.verify_and_save(user.id, PACKAGE_NAME, PREMIUM_ID, "token-1"))

        assert acknowledged is False
        db.expire_all()
        stored = db.query(Subscription).one()
        assert stored.status == "active"

    def test_purchase_token_owned_by_another_user_conflicts(self, service, google_play, user, other_user, db):
        google_play.set_valid("token-1")
        run(service.verify_and_save(user.id, PACKAGE_NAME, PREMIUM_ID, "token-1"))

        with pytest.raises(ConflictError):
            run(service.verify_and_save(other_user.id, PACKAGE_NAME, PREMIUM_ID, "token-1"))

        db.expire_all()
        assert db.query(Subscription).count() == 1
        assert db.query(Subscription).one().user_id == user.id


class TestNotificationTypeParsing:

    @pytest.mark.parametrize("raw, expected", [
        ("RENEWED", NotificationType.RENEWED),
        ("SUBSCRIPTION_CANCELED", NotificationType.CANCELED),
        ("subscription_paused", NotificationType.PAUSED),
        (4, NotificationType.PURCHASED),
        ("13", NotificationType.EXPIRED),
    ])
    def test_known_values(self, raw, expected):
        assert NotificationType.parse(raw) is expected

    @pytest.mark.parametrize("raw", ["SUBSCRIPTION_ON_HOLD", 5, None, "", True, {"x": 1}])
    def test_unknown_values(self, raw):
        assert NotificationType.parse(raw) is None


class TestWebhook:

    def test_unknown_subscription_is_a_noop(self, service, google_play, db):
        google_play.set_valid("token-1")

        result = run(service.handle_webhook(webhook("SUBSCRIPTION_RENEWED")))

        assert result is NotificationType.RENEWED
        assert db.query(Subscription).count() == 0
        assert google_play.verify_calls == []

    def test_renewed_refreshes_expiry(self, service, google_play, active_subscription, db):
        active_subscription.auto_renewing = False
        db.commit()
        google_play.set_valid("token-1", days=60)

        run(service.handle_webhook(webhook("SUBSCRIPTION_RENEWED")))

        db.expire_all()
        stored = db.query(Subscription).one()
        assert stored.status == "active"
        assert stored.auto_renewing is True
        assert stored.expiry_date > utc_now() + timedelta(days=59)

    def test_renewed_with_invalid_result_leaves_record(self, service, google_play, active_subscription, db):
        service.cancel_subscription(active_subscription.user_id)
        google_play.set_invalid("token-1")

        run(service.handle_webhook(webhook("SUBSCRIPTION_RENEWED")))

        db.expire_all()
        assert db.query(Subscription).one().status == "cancelled"

    @pytest.mark.parametrize("notification_type, status", [
        ("SUBSCRIPTION_EXPIRED", "expired"),
        ("SUBSCRIPTION_CANCELED", "cancelled"),
    ])
    def test_terminal_events_skip_verification(self, service, google_play, active_subscription, db,
                                               notification_type, status):
        calls_before = len(google_play.verify_calls)

        run(service.handle_webhook(webhook(notification_type)))

        db.expire_all()
        stored = db.query(Subscription).one()
        assert stored.status == status
        assert stored.auto_renewing is False
        assert len(google_play.verify_calls) == calls_before

    def test_paused_keeps_expiry(self, service, active_subscription, db):
        expiry = active_subscription.expiry_date

        run(service.handle_webhook(webhook("SUBSCRIPTION_PAUSED")))

        db.expire_all()
        stored = db.query(Subscription).one()
        assert stored.status == "paused"
        assert stored.expiry_date == expiry

    @pytest.mark.parametrize("notification_type", ["SUBSCRIPTION_RECOVERED", "SUBSCRIPTION_RESTARTED"])
    def test_recovery_events_reactivate(self, service, google_play, active_subscription, db, notification_type):
        run(service.handle_webhook(webhook("SUBSCRIPTION_PAUSED")))
        google_play.set_valid("token-1", days=45)

        run(service.handle_webhook(webhook(notification_type)))

        db.expire_all()
        stored = db.query(Subscription).one()
        assert stored.status == "active"
        assert stored.expiry_date > utc_now() + timedelta(days=44)

    @pytest.mark.parametrize("notification_type", ["SUBSCRIPTION_PRORATED", "SUBSCRIPTION_DEFERRED"])
    def test_expiry_only_events_leave_status(self, service, google_play, active_subscription, db, notification_type):
        run(service.handle_webhook(webhook("SUBSCRIPTION_PAUSED")))
        google_play.set_valid("token-1", days=90)

        run(service.handle_webhook(webhook(notification_type)))

        db.expire_all()
        stored = db.query(Subscription).one()
        assert stored.status == "paused"
        assert stored.expiry_date > utc_now() + timedelta(days=89)

    def test_unknown_type_is_ignored(self, service, active_subscription, db):
        result = run(service.handle_webhook(webhook("SUBSCRIPTION_PRICE_CHANGE_CONFIRMED")))

        assert result is None
        db.expire_all()
        assert db.query(Subscription).one().status == "active"

    def test_rtdn_shape_is_understood(self, service, active_subscription, db):
        data = encode({
            "version": "1.0",
            "packageName": PACKAGE_NAME,
            "subscriptionNotification": {
                "version": "1.0",
                "notificationType": 3,
                "purchaseToken": "token-1",
                "subscriptionId": PREMIUM_ID,
            },
        })

        run(service.handle_webhook(data))

        db.expire_all()
        assert db.query(Subscription).one().status == "cancelled"

    def test_event_for_other_token_does_not_touch_record(self, service, active_subscription, db):
        run(service.handle_webhook(webhook("SUBSCRIPTION_EXPIRED", purchase_token="someone-else")))

        db.expire_all()
        assert db.query(Subscription).one().status == "active"

    def test_renewal_under_new_linked_token_is_dropped(self, service, google_play, active_subscription, db):
        google_play.set_valid("token-2", days=60)
        calls_before = len(google_play.verify_calls)

        result = run(service.handle_webhook(webhook("SUBSCRIPTION_RENEWED", purchase_token="token-2")))

        assert result is NotificationType.RENEWED
        assert len(google_play.verify_calls) == calls_before
        db.expire_all()
        stored = db.query(Subscription).one()
        assert stored.purchase_token == "token-1"
        assert stored.expiry_date < utc_now() + timedelta(days=31)

    def test_internal_errors_are_swallowed(self, service, google_play, active_subscription, db):
        google_play.fail_verify = True

        result = run(service.handle_webhook(webhook("SUBSCRIPTION_RENEWED")))

        assert result is None
        db.expire_all()
        assert db.query(Subscription).one().status == "active"

    def test_undecodable_payload_raises(self, service):
        with pytest.raises(WebhookDecodeError):
            run(service.handle_webhook("not base64 at all!"))

    def test_non_object_payload_raises(self, service):
        with pytest.raises(WebhookDecodeError):
            run(service.handle_webhook(encode(["RENEWED"])))


class TestCancelAndStatus:

    def test_cancel_active(self, service, active_subscription, user, db):
        cancelled = service.cancel_subscription(user.id)

        assert cancelled.status == "cancelled"
        assert cancelled.auto_renewing is False

    def test_cancel_twice_is_not_found(self, service, active_subscription, user):
        service.cancel_subscription(user.id)

        with pytest.raises(NotFoundError):
            service.cancel_subscription(user.id)

    def test_cancel_without_subscription(self, service, user):
        with pytest.raises(NotFoundError):
            service.cancel_subscription(user.id)

    def test_status_for_free_user(self, service, user):
        assert service.get_subscription_status(user.id) == {
            "is_subscribed": False,
            "tier": "free",
            "expiry_date": None,
        }

    def test_status_ignores_stale_active_record(self, service, active_subscription, user, db):
        active_subscription.expiry_date = utc_now() - timedelta(hours=1)
        db.commit()

        assert service.get_subscription_status(user.id)["is_subscribed"] is False

    def test_history_lists_all_records(self, service, google_play, active_subscription, user):
        google_play.set_valid("token-2", tier="basic")
        run(service.verify_and_save(user.id, PACKAGE_NAME, BASIC_ID, "token-2"))
        service.cancel_subscription(user.id)

        history = service.get_subscription_history(user.id)

        assert len(history) == 2
        assert {s.subscription_id for s in history} == {PREMIUM_ID, BASIC_ID}
