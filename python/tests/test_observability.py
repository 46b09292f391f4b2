"""Tests for structured logging context.

Covers:
- Request context injection (request_id, user_id, path, method)
- Celery task context injection
- Context clearing between requests and tasks
"""

import pytest

from freefor.logging import (
    REDACTED,
    SENSITIVE_KEYS,
    add_request_context,
    clear_request_context,
    clear_task_context,
    configure_task_logging,
    get_request_id,
    redact_sensitive,
    set_request_context,
    set_user_id,
)


class TestRequestContext:
    def setup_method(self):
        clear_request_context()
        clear_task_context()

    def teardown_method(self):
        clear_request_context()

    def test_request_fields_injected(self):
        set_request_context("req-1", path="/availability/me", method="GET")
        set_user_id("8c4e1e52-7d8a-4a44-9d1e-1e0f3f9a2b10")

        event = add_request_context(None, "info", {"event": "x"})

        assert event == {
            "event": "x",
            "request_id": "req-1",
            "user_id": "8c4e1e52-7d8a-4a44-9d1e-1e0f3f9a2b10",
            "path": "/availability/me",
            "method": "GET",
        }
        assert get_request_id() == "req-1"

    def test_none_values_not_injected(self):
        set_request_context("req-2")

        event = add_request_context(None, "info", {"event": "x"})

        assert event == {"event": "x", "request_id": "req-2"}

    def test_clear_removes_everything(self):
        set_request_context("req-3", user_id="u", path="/friends", method="POST")
        clear_request_context()

        assert add_request_context(None, "info", {"event": "x"}) == {"event": "x"}
        assert get_request_id() is None


class TestTaskContext:
    def test_task_fields_injected_and_cleared(self):
        configure_task_logging(
            request_id="req-9", task_name="purge_expired_notifications", task_id="t-1"
        )

        event = add_request_context(None, "info", {"event": "x"})
        assert event["task_name"] == "purge_expired_notifications"
        assert event["task_id"] == "t-1"
        assert event["request_id"] == "req-9"

        clear_task_context()
        assert add_request_context(None, "info", {"event": "x"}) == {"event": "x"}


class TestRedaction:
    @pytest.mark.parametrize("key", sorted(SENSITIVE_KEYS))
    def test_sensitive_fields_masked(self, key):
        event = redact_sensitive(None, "info", {"event": "x", key: "value"})

        assert event[key] == REDACTED

    def test_other_fields_untouched(self):
        event = redact_sensitive(
            None, "info", {"event": "calendar_connected", "provider_name": "google"}
        )

        assert event == {"event": "calendar_connected", "provider_name": "google"}
