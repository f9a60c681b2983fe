# SPDX-License-Identifier: MIT
"""Interface shared by every chat platform adapter."""

from __future__ import annotations

from abc import ABC, abstractmethod

from runtime.settings import StreamingMode


class PlatformAdapter(ABC):
    """Deliver replies to one chat platform.

    Adapters turn inbound platform events into a conversation identifier plus
    text, and send outbound text back. They never invoke the orchestrator
    directly; inbound messages go through the conversation lock manager.
    """

    platform_type: str = "unknown"

    def __init__(self, streaming_mode: StreamingMode = "stream") -> None:
        self._streaming_mode: StreamingMode = streaming_mode

    @property
    def streaming_mode(self) -> StreamingMode:
        """Return whether replies are streamed or batched."""
        return self._streaming_mode

    @abstractmethod
    async def send_message(self, conversation_id: str, message: str) -> None:
        """Send ``message`` to the chat identified by ``conversation_id``."""

    async def start(self) -> None:
        """Prepare the adapter for use."""

    async def stop(self) -> None:
        """Release adapter resources."""


__all__ = ["PlatformAdapter"]
