"""Tests for Celery housekeeping tasks."""

import importlib
from datetime import timedelta

import pytest

from freefor.celery import celery_app
from freefor.db.models import Notification
from freefor.db.types import utcnow
from freefor.tasks import purge_expired_notifications
from tests.factories import create_user

purge_module = importlib.import_module("freefor.tasks.purge_expired_notifications")


@pytest.fixture
def task_sessions(monkeypatch, session_factory):
    monkeypatch.setattr(purge_module, "get_session_factory", lambda: session_factory)
    return session_factory


def _add_notification(db, user, title: str, expires_in: timedelta) -> None:
    now = utcnow()
    db.add(
        Notification(
            user_id=user.id,
            title=title,
            body="",
            created_at=now,
            expires_at=now + expires_in,
        )
    )
    db.commit()


class TestPurgeExpiredNotifications:
    def test_purges_only_expired_rows(self, task_sessions, db_session):
        user = create_user(db_session, username="alpha")
        _add_notification(db_session, user, "Stale", -timedelta(hours=1))
        _add_notification(db_session, user, "Fresh", timedelta(days=1))

        result = purge_expired_notifications.apply(kwargs={"request_id": "req-1"}).get()

        assert result == {"status": "ok", "purged": 1}
        db_session.expire_all()
        assert [n.title for n in db_session.query(Notification).all()] == ["Fresh"]

    def test_run_purge_with_nothing_expired(self, task_sessions):
        assert purge_module.run_purge() == 0


class TestCeleryConfig:
    def test_purge_is_scheduled_hourly(self):
        entry = celery_app.conf.beat_schedule["purge-expired-notifications"]

        assert entry["task"] == "purge_expired_notifications"
        assert entry["schedule"].minute == {0}

    def test_purge_routed_to_maintenance_queue(self):
        assert celery_app.conf.task_routes["purge_expired_notifications"] == {
            "queue": "maintenance"
        }

    def test_task_registered(self):
        assert "purge_expired_notifications" in celery_app.tasks
