# SPDX-License-Identifier: MIT
"""In-memory adapter backing the HTTP test harness."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone

import logfire

from .base import PlatformAdapter


@dataclass
class RecordedMessage:
    """Message observed by :class:`TestAdapter`."""

    direction: str
    text: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, str]:
        return {
            "direction": self.direction,
            "message": self.text,
            "timestamp": self.timestamp.isoformat(),
        }


class TestAdapter(PlatformAdapter):
    """Record inbound and outbound messages per conversation."""

    __test__ = False  # not a pytest test class
    platform_type = "test"

    def __init__(self) -> None:
        super().__init__("batch")
        self._messages: defaultdict[str, list[RecordedMessage]] = defaultdict(list)

    async def receive_message(self, conversation_id: str, message: str) -> None:
        """Record a message sent by the (simulated) user."""
        self._messages[conversation_id].append(RecordedMessage("received", message))

    async def send_message(self, conversation_id: str, message: str) -> None:
        self._messages[conversation_id].append(RecordedMessage("sent", message))
        logfire.debug(
            "Test adapter message sent",
            conversation_id=conversation_id,
            length=len(message),
        )

    def get_sent_messages(self, conversation_id: str) -> list[dict[str, str]]:
        """Return the recorded messages for ``conversation_id`` in order."""
        return [m.to_dict() for m in self._messages.get(conversation_id, [])]

    def clear_messages(self, conversation_id: str | None = None) -> None:
        """Forget messages for one conversation, or all when ``None``."""
        if conversation_id is None:
            self._messages.clear()
        else:
            self._messages.pop(conversation_id, None)


__all__ = ["RecordedMessage", "TestAdapter"]
