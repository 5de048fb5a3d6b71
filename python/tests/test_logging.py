"""Tests for structured log context.

Context fields bound for a request, socket or job are merged into every
event by the add_request_context processor and cleared afterwards.
"""

import pytest

from kivendi.logging import (
    add_request_context,
    clear_request_context,
    clear_task_context,
    configure_task_logging,
    get_request_id,
    set_request_context,
    set_socket_context,
)


def _render(**event) -> dict:
    return add_request_context(None, "info", {"event": "something_happened", **event})


@pytest.fixture(autouse=True)
def clean_context():
    clear_request_context()
    clear_task_context()
    yield
    clear_request_context()
    clear_task_context()


class TestRequestContext:
    def test_request_fields_merged(self):
        set_request_context("req-1", path="/api/v1/conversations", method="GET")

        event = _render()

        assert event["request_id"] == "req-1"
        assert event["path"] == "/api/v1/conversations"
        assert event["method"] == "GET"
        assert "user_id" not in event
        assert get_request_id() == "req-1"

    def test_user_added_later_keeps_path(self):
        set_request_context("req-1", path="/api/v1/notifications", method="GET")
        set_request_context("req-1", "42")

        event = _render()

        assert event["user_id"] == "42"
        assert event["path"] == "/api/v1/notifications"

    def test_explicit_fields_win(self):
        set_request_context("req-1", "42")

        assert _render(user_id="7")["user_id"] == "7"

    def test_clear(self):
        set_request_context("req-1", "42", path="/health", method="GET")
        clear_request_context()

        event = _render()

        assert set(event) == {"event"}
        assert get_request_id() is None


class TestSocketContext:
    def test_conversation_socket(self):
        set_socket_context(42, 9)

        event = _render()

        assert event["user_id"] == "42"
        assert event["conversation_id"] == "9"

    def test_notification_socket_has_no_conversation(self):
        set_socket_context(42, 9)
        set_socket_context(42)

        assert "conversation_id" not in _render()


class TestTaskContext:
    def test_task_fields(self):
        configure_task_logging(task_name="expire_boosts", task_id="abc")

        event = _render()

        assert event["task_name"] == "expire_boosts"
        assert event["task_id"] == "abc"

    def test_clear_task_context(self):
        configure_task_logging(request_id="req-1", task_name="expire_boosts")
        clear_task_context()

        assert set(_render()) == {"event"}
