# SPDX-License-Identifier: MIT
"""Route inbound messages from every source through the lock manager.

Two call styles are supported. :meth:`MessageDispatcher.dispatch` awaits the
outcome and propagates failures to the caller. :meth:`MessageDispatcher.submit`
queues the message and returns at once so webhook handlers can acknowledge
within their deadline; failures of submitted work are reported through an
:class:`~utils.error_handler.ErrorHandler` instead of reaching an unrelated
caller.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any

import logfire

from adapters.base import PlatformAdapter
from coordination import ConversationLockManager
from observability import telemetry
from utils.error_handler import ErrorHandler, LoggingErrorHandler

from .orchestrator import MessageHandler


class MessageDispatcher:
    """Submit orchestrator work under per-conversation serialisation."""

    def __init__(
        self,
        lock_manager: ConversationLockManager,
        handler: MessageHandler,
        error_handler: ErrorHandler | None = None,
    ) -> None:
        self._lock_manager = lock_manager
        self._handler = handler
        self._error_handler = error_handler or LoggingErrorHandler()
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def lock_manager(self) -> ConversationLockManager:
        return self._lock_manager

    @property
    def pending(self) -> int:
        """Return the number of submitted messages not yet finished."""
        return len(self._tasks)

    async def dispatch(
        self,
        adapter: PlatformAdapter,
        conversation_id: str,
        text: str,
        *,
        source: str | None = None,
    ) -> Any:
        """Handle ``text`` and wait for the orchestrator result.

        Raises:
            Exception: Whatever the orchestrator raised for this message.
        """
        source = source or adapter.platform_type
        started = time.monotonic()
        future = self._enqueue(adapter, conversation_id, text, source)
        try:
            return await self._observe(future, source, started)
        except asyncio.CancelledError:
            telemetry.record_finished(
                source, ok=False, latency=time.monotonic() - started
            )
            raise

    def submit(
        self,
        adapter: PlatformAdapter,
        conversation_id: str,
        text: str,
        *,
        source: str | None = None,
    ) -> asyncio.Task[Any]:
        """Queue ``text`` for handling and return without waiting.

        The message is enqueued before this method returns. The returned task
        settles with the orchestrator outcome; its failure is already reported
        to the error handler, so callers may ignore it.
        """
        source = source or adapter.platform_type
        started = time.monotonic()
        future = self._enqueue(adapter, conversation_id, text, source)
        task = asyncio.get_running_loop().create_task(
            self._observe(future, source, started),
            name=f"dispatch:{source}:{conversation_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(
            lambda t: self._on_submitted_done(t, source, conversation_id, started)
        )
        return task

    async def drain(self) -> None:
        """Wait for every submitted message to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _enqueue(
        self,
        adapter: PlatformAdapter,
        conversation_id: str,
        text: str,
        source: str,
    ) -> asyncio.Future[Any]:
        telemetry.record_submitted(source)
        logfire.debug(
            "Dispatching message", source=source, conversation_id=conversation_id
        )
        return self._lock_manager.acquire_lock(
            conversation_id, lambda: self._handler(adapter, conversation_id, text)
        )

    @staticmethod
    async def _observe(
        future: asyncio.Future[Any], source: str, started: float
    ) -> Any:
        try:
            result = await future
        except Exception:
            telemetry.record_finished(
                source, ok=False, latency=time.monotonic() - started
            )
            raise
        telemetry.record_finished(source, ok=True, latency=time.monotonic() - started)
        return result

    def _on_submitted_done(
        self,
        task: asyncio.Task[Any],
        source: str,
        conversation_id: str,
        started: float,
    ) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            # _observe records only completed and failed outcomes.
            telemetry.record_finished(
                source, ok=False, latency=time.monotonic() - started
            )
            self._error_handler.warn(
                f"Cancelled {source} message before it finished",
                source=source,
                conversation_id=conversation_id,
            )
            return
        exc = task.exception()
        if exc is not None:
            self._error_handler.handle(
                f"Failed to process {source} message",
                exc,
                source=source,
                conversation_id=conversation_id,
            )


__all__ = ["MessageDispatcher"]
