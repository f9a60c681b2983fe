# SPDX-License-Identifier: MIT
"""Test configuration for the conversation gateway.

Keeps logfire local, isolates settings from the developer environment and
provides a fresh :class:`RuntimeEnv` per test.
"""

from __future__ import annotations

import asyncio
import json

import logfire
import pytest
from telegram.ext import Application
from telegram.request import BaseRequest

ENV_VARS = (
    "MAX_CONCURRENT_CONVERSATIONS",
    "LOG_LEVEL",
    "LOGFIRE_TOKEN",
    "HOST",
    "PORT",
    "ORCHESTRATOR",
    "TEST_ADAPTER_ENABLED",
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_STREAMING_MODE",
    "TELEGRAM_ALLOWED_USER_IDS",
    "TELEGRAM_POLL_TIMEOUT",
    "SLACK_BOT_TOKEN",
    "SLACK_STREAMING_MODE",
    "SLACK_ALLOWED_USER_IDS",
)


@pytest.fixture(scope="session", autouse=True)
def _configure_logfire():
    """Keep telemetry in-process and quiet during tests."""

    logfire.configure(send_to_logfire=False, console=False)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch, tmp_path):
    """Remove gateway variables and run from an empty directory (no ``.env``)."""

    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture(autouse=True)
def _init_runtime_env(_clean_env):
    """Initialise a default runtime environment for tests."""

    from runtime.environment import RuntimeEnv
    from runtime.settings import load_settings

    RuntimeEnv.reset()
    RuntimeEnv.initialize(load_settings())
    yield
    RuntimeEnv.reset()


@pytest.fixture(autouse=True)
def _reset_telemetry():
    from observability import telemetry

    telemetry.reset()
    yield
    telemetry.reset()


class BotApiStub(BaseRequest):
    """Answer Telegram Bot API calls from memory and record them."""

    def __init__(self, primary: BotApiStub | None = None) -> None:
        self.calls: list[tuple[str, dict]] = []
        self.updates: list[dict] = []
        self._primary = primary

    @property
    def read_timeout(self) -> float:
        return 1.0

    async def initialize(self) -> None:
        return None

    async def shutdown(self) -> None:
        return None

    async def do_request(
        self,
        url,
        method,
        request_data=None,
        read_timeout=None,
        write_timeout=None,
        connect_timeout=None,
        pool_timeout=None,
    ):
        if self._primary is not None:
            return await self._primary.do_request(url, method, request_data)
        name = url.rsplit("/", 1)[-1]
        params = dict(request_data.parameters) if request_data else {}
        self.calls.append((name, params))
        if name == "getMe":
            result = {
                "id": 1,
                "is_bot": True,
                "first_name": "Gateway",
                "username": "gateway_bot",
            }
        elif name == "getUpdates":
            # Long polling would block; yield so the loop keeps running.
            await asyncio.sleep(0.01)
            result, self.updates = self.updates, []
        elif name == "sendMessage":
            result = {
                "message_id": len(self.calls),
                "date": 0,
                "chat": {"id": params["chat_id"], "type": "private"},
                "text": params["text"],
            }
        else:
            result = True
        return 200, json.dumps({"ok": True, "result": result}).encode()

    def called(self, name: str) -> list[dict]:
        return [params for method, params in self.calls if method == name]


def telegram_update(
    update_id: int, text: str | None, *, user_id: int = 1, chat_id: int = -100
) -> dict:
    message = {
        "message_id": update_id,
        "date": 0,
        "chat": {"id": chat_id, "type": "group", "title": "team"},
        "from": {"id": user_id, "is_bot": False, "first_name": "Ada", "username": "ada"},
    }
    if text is not None:
        message["text"] = text
    return {"update_id": update_id, "message": message}


@pytest.fixture()
def telegram_api() -> BotApiStub:
    return BotApiStub()


@pytest.fixture()
def telegram_application(telegram_api):
    """Bot application wired to :class:`BotApiStub` instead of the network."""

    return (
        Application.builder()
        .token("123:abc")
        .request(telegram_api)
        .get_updates_request(BotApiStub(primary=telegram_api))
        .build()
    )


@pytest.fixture()
def make_update():
    return telegram_update
