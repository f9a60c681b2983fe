# SPDX-License-Identifier: MIT
"""Slack adapter: Web API client plus inbound event filtering.

Outbound messages are posted with ``chat.postMessage`` using a single
``mrkdwn`` section block. Inbound events arrive through the Events API
webhook; :meth:`SlackAdapter.extract_message` decides whether an event is a
user message addressed to the bot and, if so, returns the conversation
identifier and the text with the bot mention removed.

Authorisation follows an explicit allowlist: an empty list denies everyone,
``*`` allows everyone, otherwise user ids must match exactly.
"""

from __future__ import annotations

import re
from typing import Any, Mapping

import httpx
import logfire

from runtime.settings import StreamingMode

from .base import PlatformAdapter

SLACK_API_BASE = "https://slack.com/api/"

# Slack reserves many bare command names, so the app registers ``/agent-*``.
SLASH_COMMANDS: dict[str, str] = {
    "/agent-status": "/status",
    "/agent-clone": "/clone",
    "/agent-setcwd": "/setcwd",
    "/agent-getcwd": "/getcwd",
    "/agent-load-commands": "/load-commands",
    "/agent-command-invoke": "/command-invoke",
    "/agent-command-set": "/command-set",
    "/agent-commands": "/commands",
    "/agent-repos": "/repos",
    "/agent-reset": "/reset",
    "/agent-help": "/help",
    "/agent-pytest": "/pytest",
    "/agent-jest": "/jest",
    "/agent-pip-install": "/pip-install",
    "/agent-start-app": "/start-app",
    "/agent-kill-app": "/kill-app",
}


def translate_command(command: str | None) -> str:
    """Map a Slack slash command onto the internal command name.

    Unknown commands pass through unchanged; a missing command means ``/help``.
    """

    if not command:
        return "/help"
    return SLASH_COMMANDS.get(command, command)


class SlackApiError(RuntimeError):
    """Raised when the Slack Web API answers with ``ok: false``."""


class SlackAdapter(PlatformAdapter):
    """Send messages to Slack and interpret Events API payloads."""

    platform_type = "slack"

    def __init__(
        self,
        token: str,
        streaming_mode: StreamingMode = "stream",
        allowed_users: list[str] | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(streaming_mode)
        self._headers = {"Authorization": f"Bearer {token}"}
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=30.0)
        self._allowed_users = list(allowed_users or [])
        self._bot_user_id: str | None = None
        logfire.info(
            "Slack adapter initialised",
            mode=streaming_mode,
            allowlist_size=len(self._allowed_users),
        )

    async def _call(self, method: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        response = await self._client.post(
            f"{SLACK_API_BASE}{method}", json=dict(payload), headers=self._headers
        )
        response.raise_for_status()
        data = response.json()
        if not data.get("ok"):
            raise SlackApiError(f"{method} failed: {data.get('error', 'unknown_error')}")
        return data

    async def send_message(self, conversation_id: str, message: str) -> None:
        try:
            await self._call(
                "chat.postMessage",
                {
                    "channel": conversation_id,
                    "text": message,
                    "blocks": [
                        {"type": "section", "text": {"type": "mrkdwn", "text": message}}
                    ],
                },
            )
        except (httpx.HTTPError, SlackApiError) as exc:
            logfire.error(
                "Slack message send failed",
                channel=conversation_id,
                error=repr(exc),
            )
            raise
        logfire.debug("Slack message sent", channel=conversation_id)

    async def start(self) -> None:
        """Run ``auth.test`` and remember the bot user id for mention checks."""

        data = await self._call("auth.test", {})
        self._bot_user_id = data.get("user_id")
        logfire.info(
            "Slack auth test successful",
            bot=data.get("user"),
            team=data.get("team"),
            bot_user_id=self._bot_user_id,
        )

    async def stop(self) -> None:
        if self._owns_client:
            await self._client.aclose()
        logfire.info("Slack adapter stopped")

    @property
    def bot_user_id(self) -> str | None:
        return self._bot_user_id

    @bot_user_id.setter
    def bot_user_id(self, value: str | None) -> None:
        self._bot_user_id = value

    @staticmethod
    def conversation_id(event: Mapping[str, Any]) -> str:
        """Return the channel (or DM channel) id the event belongs to."""
        return str(event.get("channel") or "")

    @staticmethod
    def user_id(event: Mapping[str, Any]) -> str | None:
        return event.get("user") or None

    def is_user_allowed(self, user_id: str) -> bool:
        if not self._allowed_users:
            return False
        return any(user in ("*", user_id) for user in self._allowed_users)

    def is_bot_mentioned(self, text: str) -> bool:
        if not self._bot_user_id:
            return False
        return f"<@{self._bot_user_id}>" in text

    def strip_mention(self, text: str) -> str:
        if not self._bot_user_id:
            return text
        pattern = re.compile(rf"<@{re.escape(self._bot_user_id)}>\s*")
        return pattern.sub("", text).strip()

    def extract_message(self, event: Mapping[str, Any]) -> tuple[str, str] | None:
        """Return ``(conversation_id, text)`` for events the bot should handle.

        Events are ignored when they are not ``message``/``app_mention``, come
        from a bot, carry no text, look like a slash command (those arrive on
        the commands endpoint), lack a user id, come from a user outside the
        allowlist, or are posted in a channel without mentioning the bot.
        """

        if event.get("type") not in ("message", "app_mention"):
            return None
        if event.get("bot_id") or event.get("subtype") == "bot_message":
            return None
        text = event.get("text") or ""
        if not text:
            return None
        if text.startswith("/"):
            logfire.debug("Skipping slash command delivered as event")
            return None
        user_id = self.user_id(event)
        if not user_id:
            logfire.warning("Slack message without user id, skipping")
            return None
        if not self.is_user_allowed(user_id):
            logfire.warning("Unauthorised Slack user", user_id=user_id)
            return None
        channel = self.conversation_id(event)
        is_dm = event.get("channel_type") == "im" or channel.startswith("D")
        if not is_dm and not self.is_bot_mentioned(text):
            logfire.debug("Slack message not directed at bot", channel=channel)
            return None
        return channel, self.strip_mention(text)


__all__ = [
    "SLASH_COMMANDS",
    "SlackAdapter",
    "SlackApiError",
    "translate_command",
]
