"""Tests for notification fan-out, the inbox and push subscriptions.

Tests cover:
- The notification is stored before any delivery is attempted
- Per-endpoint failure isolation and gone-endpoint deactivation
- Read state, unread counts and expiry
- Subscription upsert by endpoint
"""

from datetime import timedelta
from uuid import uuid4

import pytest
from pydantic import ValidationError as PydanticValidationError

from freefor.db.models import Notification, PushSubscription
from freefor.db.types import utcnow
from freefor.errors import ApiErrorCode, NotFoundError, ValidationError
from freefor.schemas.notifications import PushKeys, PushSubscriptionRequest
from freefor.services import notifications
from tests.factories import create_subscription, create_user
from tests.support.push import FakePushSender, gone_error, transient_error


class TestNotify:
    async def test_no_subscriptions_still_stores_notification(self, db_session, push_sender):
        user = create_user(db_session, username="alpha")

        result = await notifications.notify(db_session, push_sender, user.id, "Hi", "There")

        assert result.attempted == 0
        assert result.succeeded == 0
        assert result.message == "no active subscriptions"
        stored = db_session.query(Notification).one()
        assert stored.id == result.notification_id
        assert stored.is_read is False
        assert push_sender.sent == []

    async def test_disabled_sender_stores_without_delivery(self, db_session):
        user = create_user(db_session, username="alpha")
        create_subscription(db_session, user)
        sender = FakePushSender(enabled=False)

        result = await notifications.notify(db_session, sender, user.id, "Hi", "There")

        assert result.attempted == 0
        assert result.message == "push notifications disabled"
        assert db_session.query(Notification).count() == 1
        assert sender.sent == []

    async def test_failures_are_isolated_per_endpoint(self, db_session):
        user = create_user(db_session, username="alpha")
        ok = create_subscription(db_session, user)
        gone = create_subscription(db_session, user)
        flaky = create_subscription(db_session, user)
        sender = FakePushSender(
            failures={gone.endpoint: gone_error(), flaky.endpoint: transient_error()}
        )

        result = await notifications.notify(db_session, sender, user.id, "Game?", "Now")

        assert result.attempted == 3
        assert result.succeeded == 1
        assert len(sender.sent) == 3

        db_session.expire_all()
        ok_row = db_session.get(PushSubscription, ok.id)
        gone_row = db_session.get(PushSubscription, gone.id)
        flaky_row = db_session.get(PushSubscription, flaky.id)
        assert ok_row.last_used_at is not None
        assert ok_row.last_error is None
        assert gone_row.is_active is False
        assert gone_row.last_error is not None
        assert flaky_row.is_active is True
        assert "503" in flaky_row.last_error

    async def test_unexpected_sender_error_is_isolated(self, db_session):
        user = create_user(db_session, username="alpha")
        ok = create_subscription(db_session, user)
        broken = create_subscription(db_session, user)
        sender = FakePushSender(failures={broken.endpoint: ValueError("Incorrect padding")})

        result = await notifications.notify(db_session, sender, user.id, "Game?", "Now")

        assert result.attempted == 2
        assert result.succeeded == 1
        by_id = {r.subscription_id: r for r in result.results}
        assert by_id[ok.id].success is True
        assert by_id[broken.id].success is False
        assert by_id[broken.id].error == "Push delivery failed: ValueError"

        db_session.expire_all()
        ok_row = db_session.get(PushSubscription, ok.id)
        broken_row = db_session.get(PushSubscription, broken.id)
        assert ok_row.last_used_at is not None
        assert broken_row.is_active is True
        assert broken_row.last_error == "Push delivery failed: ValueError"

    async def test_success_clears_previous_error(self, db_session, push_sender):
        user = create_user(db_session, username="alpha")
        subscription = create_subscription(db_session, user)
        subscription.last_error = "earlier failure"
        db_session.commit()

        await notifications.notify(db_session, push_sender, user.id, "Hi", "There")

        db_session.expire_all()
        assert db_session.get(PushSubscription, subscription.id).last_error is None

    async def test_inactive_subscriptions_are_skipped(self, db_session, push_sender):
        user = create_user(db_session, username="alpha")
        create_subscription(db_session, user, is_active=False)

        result = await notifications.notify(db_session, push_sender, user.id, "Hi", "There")

        assert result.attempted == 0
        assert push_sender.sent == []

    async def test_payload_shape(self, db_session, push_sender):
        user = create_user(db_session, username="alpha")
        create_subscription(db_session, user)

        await notifications.notify(
            db_session,
            push_sender,
            user.id,
            "Match found",
            "You and Bravo are free tonight",
            category="availability_match",
            payload={"match_id": "m1"},
        )

        _, payload = push_sender.sent[0]
        assert payload["tag"] == "availability_match"
        assert payload["require_interaction"] is False
        assert payload["data"]["match_id"] == "m1"
        assert "notification_id" in payload["data"]
        assert [a["action"] for a in payload["actions"]] == ["view"]

    async def test_title_too_long(self, db_session, push_sender):
        user = create_user(db_session, username="alpha")

        with pytest.raises(ValidationError):
            await notifications.notify(db_session, push_sender, user.id, "x" * 101, "body")
        assert db_session.query(Notification).count() == 0

    async def test_notify_many_dedupes_users(self, db_session, push_sender):
        a = create_user(db_session, username="alpha")
        b = create_user(db_session, username="bravo")

        result = await notifications.notify_many(
            db_session, push_sender, [a.id, b.id, a.id], "Tonight?", "Lobby at 8"
        )

        assert result.total == 2
        assert db_session.query(Notification).count() == 2

    async def test_send_test_notification(self, db_session, push_sender):
        user = create_user(db_session, username="alpha")
        create_subscription(db_session, user)

        result = await notifications.send_test_notification(db_session, push_sender, user.id)

        assert result.succeeded == 1
        assert db_session.query(Notification).one().category == "test"


class TestInbox:
    async def test_mark_read_and_counts(self, db_session, push_sender):
        user = create_user(db_session, username="alpha")
        first = await notifications.notify(db_session, push_sender, user.id, "One", "1")
        await notifications.notify(
            db_session, push_sender, user.id, "Two", "2", category="friend_request"
        )

        summary = notifications.get_unread_summary(db_session, user.id)
        assert summary.unread_count == 2
        assert summary.by_category == {"general": 1, "friend_request": 1}

        updated = notifications.mark_read(db_session, user.id, [first.notification_id])
        assert updated.updated == 1
        assert notifications.unread_count(db_session, user.id) == 1

        updated = notifications.mark_read(db_session, user.id)
        assert updated.updated == 1
        assert notifications.unread_count(db_session, user.id) == 0

    async def test_mark_read_ignores_other_users(self, db_session, push_sender):
        owner = create_user(db_session, username="alpha")
        other = create_user(db_session, username="bravo")
        result = await notifications.notify(db_session, push_sender, owner.id, "One", "1")

        updated = notifications.mark_read(db_session, other.id, [result.notification_id])

        assert updated.updated == 0
        assert notifications.unread_count(db_session, owner.id) == 1

    def test_mark_read_empty_list(self, db_session):
        user = create_user(db_session, username="alpha")
        assert notifications.mark_read(db_session, user.id, []).updated == 0

    async def test_list_newest_first_with_filters(self, db_session, push_sender):
        user = create_user(db_session, username="alpha")
        await notifications.notify(db_session, push_sender, user.id, "Old", "1")
        await notifications.notify(
            db_session, push_sender, user.id, "New", "2", category="friend_request"
        )

        page = notifications.list_notifications(db_session, user.id)
        assert [n.title for n in page.notifications] == ["New", "Old"]
        assert page.total == 2
        assert page.has_more is False

        filtered = notifications.list_notifications(db_session, user.id, category="general")
        assert [n.title for n in filtered.notifications] == ["Old"]

    def test_expired_notifications_are_hidden_and_purged(self, db_session):
        user = create_user(db_session, username="alpha")
        now = utcnow()
        db_session.add(
            Notification(
                user_id=user.id,
                title="Stale",
                body="",
                category="general",
                priority="normal",
                created_at=now - timedelta(days=40),
                expires_at=now - timedelta(days=10),
            )
        )
        db_session.add(
            Notification(
                user_id=user.id,
                title="Fresh",
                body="",
                category="general",
                priority="normal",
                created_at=now,
                expires_at=now + timedelta(days=30),
            )
        )
        db_session.commit()

        assert notifications.unread_count(db_session, user.id) == 1
        assert notifications.purge_expired(db_session) == 1

        db_session.expire_all()
        assert [n.title for n in db_session.query(Notification).all()] == ["Fresh"]


class TestSubscriptions:
    def _request(self, endpoint: str) -> PushSubscriptionRequest:
        return PushSubscriptionRequest(
            endpoint=endpoint,
            keys=PushKeys(p256dh="p256dh-key", auth="auth-key"),
            user_agent="pytest",
        )

    def test_subscribe_upserts_by_endpoint(self, db_session):
        user = create_user(db_session, username="alpha")
        endpoint = "https://push.example.test/abc"

        first = notifications.subscribe(db_session, user.id, self._request(endpoint))
        second = notifications.subscribe(db_session, user.id, self._request(endpoint))

        assert first.id == second.id
        assert len(notifications.list_subscriptions(db_session, user.id)) == 1

    def test_endpoint_moves_to_new_user(self, db_session):
        a = create_user(db_session, username="alpha")
        b = create_user(db_session, username="bravo")
        endpoint = "https://push.example.test/shared"

        notifications.subscribe(db_session, a.id, self._request(endpoint))
        notifications.subscribe(db_session, b.id, self._request(endpoint))

        assert notifications.list_subscriptions(db_session, a.id) == []
        assert len(notifications.list_subscriptions(db_session, b.id)) == 1

    def test_resubscribe_reactivates(self, db_session):
        user = create_user(db_session, username="alpha")
        subscription = create_subscription(db_session, user, is_active=False)

        out = notifications.subscribe(db_session, user.id, self._request(subscription.endpoint))

        assert out.is_active is True

    def test_unsubscribe(self, db_session):
        user = create_user(db_session, username="alpha")
        subscription = create_subscription(db_session, user)

        notifications.unsubscribe(db_session, user.id, subscription.endpoint)

        assert notifications.list_subscriptions(db_session, user.id) == []

    def test_unsubscribe_unknown_endpoint(self, db_session):
        user = create_user(db_session, username="alpha")

        with pytest.raises(NotFoundError) as exc_info:
            notifications.unsubscribe(db_session, user.id, f"https://push.example.test/{uuid4()}")
        assert exc_info.value.code == ApiErrorCode.E_SUBSCRIPTION_NOT_FOUND

    def test_resubscribe_refreshes_agent_and_clears_error(self, db_session):
        user = create_user(db_session, username="alpha")
        subscription = create_subscription(db_session, user, is_active=False)
        subscription.last_error = "Push service rejected message (HTTP 410)"
        subscription.user_agent = "old browser"
        db_session.commit()

        notifications.subscribe(db_session, user.id, self._request(subscription.endpoint))

        db_session.expire_all()
        row = db_session.get(PushSubscription, subscription.id)
        assert row.is_active is True
        assert row.last_error is None
        assert row.user_agent == "pytest"

    def test_concurrent_registration_takes_over_existing_row(self, db_session, monkeypatch):
        a = create_user(db_session, username="alpha")
        b = create_user(db_session, username="bravo")
        existing = create_subscription(db_session, a, is_active=False)
        existing.last_error = "Push service rejected message (HTTP 410)"
        existing.user_agent = "old browser"
        db_session.commit()

        # The first lookup misses, as if another request inserted the row meanwhile
        lookups = []
        real_scalar = db_session.scalar

        def scalar(statement, *args, **kwargs):
            lookups.append(statement)
            if len(lookups) == 1:
                return None
            return real_scalar(statement, *args, **kwargs)

        monkeypatch.setattr(db_session, "scalar", scalar)

        out = notifications.subscribe(db_session, b.id, self._request(existing.endpoint))

        assert out.id == existing.id
        assert len(lookups) == 2
        db_session.expire_all()
        row = db_session.get(PushSubscription, existing.id)
        assert row.user_id == b.id
        assert row.is_active is True
        assert row.last_error is None
        assert row.user_agent == "pytest"


class TestPushKeys:
    def test_accepts_browser_keys(self):
        keys = PushKeys(
            p256dh="BNcRdreALRFXTkOOUHK1EtK2wtaz5Ry4YfYCA_0QTpQtUbVlUls0VJXg7A8u-Ts1XbjhazAkj7I99e8QcYP7DkM",
            auth="tBHItJI5svbpez7KI4CCXg==",
        )

        assert keys.auth == "tBHItJI5svbpez7KI4CCXg=="

    @pytest.mark.parametrize(
        "field,value",
        [
            ("p256dh", "not base64!"),
            ("p256dh", "abcde"),
            ("auth", "a+b/c"),
            ("auth", "abc==="),
        ],
    )
    def test_rejects_non_base64url(self, field, value):
        fields = {"p256dh": "p256dh-key", "auth": "auth-key"}
        fields[field] = value

        with pytest.raises(PydanticValidationError):
            PushKeys(**fields)
