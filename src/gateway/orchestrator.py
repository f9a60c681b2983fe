# SPDX-License-Identifier: MIT
"""Boundary to the message orchestrator.

The orchestrator resolves conversation state, invokes the AI engine and sends
the reply through the adapter. It lives outside this service; only its call
shape is defined here, together with a trivial echo handler used by the test
harness and local runs.
"""

from __future__ import annotations

import importlib
from typing import Any, Awaitable, Protocol

from adapters.base import PlatformAdapter


class MessageHandler(Protocol):
    """Handle one inbound user message for a conversation."""

    def __call__(
        self, adapter: PlatformAdapter, conversation_id: str, text: str
    ) -> Awaitable[Any]: ...


async def echo_handler(
    adapter: PlatformAdapter, conversation_id: str, text: str
) -> str:
    """Reply with the received text."""

    reply = f"Echo: {text}"
    await adapter.send_message(conversation_id, reply)
    return reply


def load_handler(path: str) -> MessageHandler:
    """Resolve ``"package.module:attribute"`` to a message handler.

    Raises:
        ValueError: If ``path`` is malformed or the target is not callable.
        ImportError: If the module cannot be imported.
    """

    module_name, sep, attribute = path.partition(":")
    if not sep or not module_name or not attribute:
        raise ValueError(f"Handler path must look like 'module:attribute', got {path!r}")
    module = importlib.import_module(module_name)
    try:
        handler = getattr(module, attribute)
    except AttributeError as exc:
        raise ValueError(f"{module_name} has no attribute {attribute!r}") from exc
    if not callable(handler):
        raise ValueError(f"{path} is not callable")
    return handler


__all__ = ["MessageHandler", "echo_handler", "load_handler"]
