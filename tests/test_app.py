# SPDX-License-Identifier: MIT
"""HTTP surface of the gateway application."""

from __future__ import annotations

import time

import httpx
import pytest
from fastapi.testclient import TestClient

from adapters import SlackAdapter, TelegramAdapter, TestAdapter
from coordination import ConversationLockManager
from gateway.app import create_app
from observability import telemetry
from runtime.environment import RuntimeEnv
from runtime.settings import Settings


def _wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def _slack(allowed=("U1",)) -> tuple[SlackAdapter, list[httpx.Request]]:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"ok": True, "user_id": "UBOT"})

    adapter = SlackAdapter(
        "xoxb-test",
        "batch",
        list(allowed),
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    adapter.bot_user_id = "UBOT"
    return adapter, requests


class _Recorder:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str, str]] = []

    async def __call__(self, adapter, conversation_id, text):
        self.calls.append((adapter.platform_type, conversation_id, text))
        return text


def test_health_endpoints() -> None:
    app = create_app(start_adapters=False)
    with TestClient(app) as client:
        assert client.get("/health").json() == {"status": "ok"}
        body = client.get("/health/concurrency").json()
        assert body == {
            "status": "ok",
            "maxConcurrent": 10,
            "currentActive": 0,
            "queuedTotal": 0,
        }
        dispatch = client.get("/health/dispatch").json()
        assert dispatch["pending"] == 0
        assert dispatch["sources"] == {}


def test_app_uses_runtime_lock_manager() -> None:
    app = create_app(start_adapters=False)
    assert app.state.lock_manager is RuntimeEnv.instance().lock_manager


def test_concurrency_endpoint_reports_failure(monkeypatch) -> None:
    manager = ConversationLockManager(2)

    def broken():
        raise RuntimeError("stats unavailable")

    monkeypatch.setattr(manager, "get_stats", broken)
    app = create_app(Settings(), lock_manager=manager, start_adapters=False)
    with TestClient(app) as client:
        response = client.get("/health/concurrency")
    assert response.status_code == 500
    assert response.json() == {"status": "error", "reason": "Failed to get stats"}


def test_test_message_round_trip() -> None:
    adapter = TestAdapter()
    app = create_app(
        Settings(),
        lock_manager=ConversationLockManager(2),
        test_adapter=adapter,
        start_adapters=False,
    )
    with TestClient(app) as client:
        response = client.post(
            "/test/message", json={"conversationId": "conv-1", "message": "hello"}
        )
        assert response.json() == {
            "success": True,
            "conversationId": "conv-1",
            "message": "hello",
        }

        def replied() -> bool:
            messages = client.get("/test/messages/conv-1").json()["messages"]
            return len(messages) == 2

        assert _wait_for(replied)
        messages = client.get("/test/messages/conv-1").json()["messages"]
        assert [(m["direction"], m["message"]) for m in messages] == [
            ("received", "hello"),
            ("sent", "Echo: hello"),
        ]

        assert client.delete("/test/messages/conv-1").json() == {"success": True}
        assert client.get("/test/messages/conv-1").json()["messages"] == []


def test_test_message_requires_fields() -> None:
    app = create_app(Settings(), lock_manager=ConversationLockManager(1), start_adapters=False)
    with TestClient(app) as client:
        missing = client.post("/test/message", json={"conversationId": "c1"})
        assert missing.status_code == 400
        assert missing.json() == {"error": "conversationId and message required"}

        malformed = client.post("/test/message", json=["not", "an", "object"])
        assert malformed.status_code == 400
        assert malformed.json() == {"error": "Invalid request data"}


def test_test_routes_absent_when_disabled() -> None:
    app = create_app(
        Settings(test_adapter_enabled=False),
        lock_manager=ConversationLockManager(1),
        start_adapters=False,
    )
    with TestClient(app) as client:
        assert client.post("/test/message", json={}).status_code == 404
        assert client.post("/webhooks/slack", json={}).status_code == 404


def test_messages_for_one_conversation_keep_order() -> None:
    handler = _Recorder()
    app = create_app(
        Settings(),
        lock_manager=ConversationLockManager(3),
        handler=handler,
        start_adapters=False,
    )
    with TestClient(app) as client:
        for i in range(5):
            client.post("/test/message", json={"conversationId": "c1", "message": f"m{i}"})
    # Shutdown drains submitted work.
    assert [text for _, _, text in handler.calls] == [f"m{i}" for i in range(5)]


def test_slack_url_verification() -> None:
    slack, _ = _slack()
    app = create_app(
        Settings(), lock_manager=ConversationLockManager(1), slack=slack, start_adapters=False
    )
    with TestClient(app) as client:
        response = client.post(
            "/webhooks/slack", json={"type": "url_verification", "challenge": "abc123"}
        )
    assert response.status_code == 200
    assert response.text == "abc123"


def test_slack_event_is_acknowledged_and_dispatched() -> None:
    slack, _ = _slack()
    handler = _Recorder()
    app = create_app(
        Settings(),
        lock_manager=ConversationLockManager(1),
        handler=handler,
        slack=slack,
        start_adapters=False,
    )
    with TestClient(app) as client:
        ok = client.post(
            "/webhooks/slack",
            json={
                "type": "event_callback",
                "event": {
                    "type": "app_mention",
                    "user": "U1",
                    "channel": "C1",
                    "text": "<@UBOT> run tests",
                },
            },
        )
        ignored = client.post(
            "/webhooks/slack",
            json={
                "type": "event_callback",
                "event": {"type": "message", "user": "U2", "channel": "D1", "text": "hi"},
            },
        )
        bad = client.post(
            "/webhooks/slack",
            content=b"{not json",
            headers={"content-type": "application/json"},
        )
    assert ok.text == "OK"
    assert ignored.text == "OK"
    assert bad.status_code == 400
    assert handler.calls == [("slack", "C1", "run tests")]


def test_slack_command_translated_and_dispatched() -> None:
    slack, _ = _slack()
    handler = _Recorder()
    app = create_app(
        Settings(),
        lock_manager=ConversationLockManager(1),
        handler=handler,
        slack=slack,
        start_adapters=False,
    )
    with TestClient(app) as client:
        response = client.post(
            "/slack/commands",
            data={
                "command": "/agent-pytest",
                "text": "-k smoke",
                "user_id": "U1",
                "channel_id": "C9",
            },
        )
        denied = client.post(
            "/slack/commands",
            data={"command": "/agent-status", "user_id": "U2", "channel_id": "C9"},
        )
        no_channel = client.post(
            "/slack/commands", data={"command": "/agent-status", "user_id": "U1"}
        )
    assert response.json() == {"response_type": "in_channel", "text": "Processing /pytest..."}
    assert denied.json()["response_type"] == "ephemeral"
    assert no_channel.status_code == 400
    assert handler.calls == [("slack", "C9", "/pytest -k smoke")]


def test_slack_adapter_started_with_lifespan() -> None:
    slack, requests = _slack()
    slack.bot_user_id = None
    app = create_app(Settings(), lock_manager=ConversationLockManager(1), slack=slack)
    with TestClient(app):
        assert slack.bot_user_id == "UBOT"
    assert requests[0].url.path == "/api/auth.test"


def test_telegram_messages_are_polled_and_dispatched(
    telegram_api, telegram_application, make_update
) -> None:
    handler = _Recorder()
    telegram_api.updates = [make_update(1, "ping", user_id=5, chat_id=77)]
    telegram = TelegramAdapter(
        "123:abc", "batch", [], poll_timeout=0, application=telegram_application
    )
    app = create_app(
        Settings(),
        lock_manager=ConversationLockManager(1),
        handler=handler,
        telegram=telegram,
    )
    with TestClient(app):
        assert _wait_for(lambda: bool(handler.calls))
    assert handler.calls == [("telegram", "77", "ping")]
    assert not telegram_application.running


@pytest.mark.asyncio()
async def test_shutdown_drains_when_telegram_stop_fails(
    telegram_application, monkeypatch
) -> None:
    handler = _Recorder()
    telegram = TelegramAdapter(
        "123:abc", "batch", [], application=telegram_application
    )
    stopped: list[bool] = []

    async def start() -> None:
        return None

    async def broken_stop() -> None:
        stopped.append(True)
        raise RuntimeError("network down")

    telegram.start = start  # type: ignore[method-assign]
    telegram.stop = broken_stop  # type: ignore[method-assign]
    app = create_app(
        Settings(),
        lock_manager=ConversationLockManager(1),
        handler=handler,
        telegram=telegram,
    )
    summaries: list[bool] = []
    monkeypatch.setattr(telemetry, "log_summary", lambda: summaries.append(True))

    with pytest.raises(RuntimeError, match="network down"):
        async with app.router.lifespan_context(app):
            app.state.dispatcher.submit(telegram, "42", "late message")

    assert stopped == [True]
    assert handler.calls == [("telegram", "42", "late message")]
    assert app.state.dispatcher.pending == 0
    assert summaries == [True]


def test_slack_webhook_rejects_non_object_bodies() -> None:
    slack, _ = _slack()
    handler = _Recorder()
    app = create_app(
        Settings(),
        lock_manager=ConversationLockManager(1),
        handler=handler,
        slack=slack,
        start_adapters=False,
    )
    with TestClient(app) as client:
        as_list = client.post("/webhooks/slack", json=[])
        as_string = client.post("/webhooks/slack", json="event_callback")
        bad_event = client.post(
            "/webhooks/slack", json={"type": "event_callback", "event": ["x"]}
        )
    assert as_list.status_code == 400
    assert as_list.json() == {"error": "Invalid JSON body"}
    assert as_string.status_code == 400
    assert bad_event.status_code == 200
    assert bad_event.text == "OK"
    assert handler.calls == []
