# SPDX-License-Identifier: MIT
"""Scheduling core serialising work per conversation under a global bound.

:class:`ConversationLockManager` composes a :class:`ConcurrencyGate` with a
:class:`PerConversationQueue`. Every inbound message is submitted through
:meth:`ConversationLockManager.acquire_lock`, which queues the work under its
conversation and greedily promotes eligible work into execution: a
conversation is eligible when it is idle and has queued work, and promotion
continues while the gate admits. When a task finishes, successfully or not,
its global slot and its conversation's active flag are released and promotion
runs again.

Admission and promotion are synchronous and never suspend, so within a single
event loop the queue map needs no locking. The manager never retries work;
failures are delivered to the caller that submitted them.

Example:
    ```python
    manager = ConversationLockManager(max_concurrent=10)
    reply = await manager.acquire_lock("telegram:42", lambda: handle("hi"))
    ```
"""

from __future__ import annotations

import asyncio
import inspect
import time
from typing import Any, TypeVar

import logfire
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from constants import DEFAULT_MAX_CONCURRENT_CONVERSATIONS

from .conversation_queue import PerConversationQueue, QueueEntry, WorkFactory
from .gate import ConcurrencyGate

T = TypeVar("T")


class LockStats(BaseModel):
    """Point-in-time snapshot of coordinator state.

    Serialises with camelCase keys (``maxConcurrent``, ``currentActive`` ...)
    when dumped ``by_alias`` for the HTTP status endpoint.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    max_concurrent: int = Field(..., ge=1, description="Configured global slots.")
    current_active: int = Field(..., ge=0, description="Tasks executing now.")
    queued_total: int = Field(..., ge=0, description="Tasks waiting to start.")
    per_conversation_queue_depths: dict[str, int] = Field(
        default_factory=dict,
        description="Waiting task count per tracked conversation.",
    )


class ConversationLockManager:
    """Run at most one task per conversation and ``max_concurrent`` overall."""

    def __init__(
        self, max_concurrent: int = DEFAULT_MAX_CONCURRENT_CONVERSATIONS
    ) -> None:
        """Create the manager.

        Args:
            max_concurrent: Number of tasks allowed to execute at once across
                all conversations.

        Raises:
            ConfigurationError: If ``max_concurrent`` is not a positive integer.
        """

        self._gate = ConcurrencyGate(max_concurrent)
        self._queues = PerConversationQueue(on_change=self._promote)
        self._running: set[asyncio.Task[None]] = set()
        self._active_gauge = logfire.metric_gauge("conversation_gate_active")
        self._depth_gauge = logfire.metric_gauge("conversation_queue_depth")
        self._submitted = logfire.metric_counter("conversation_tasks_submitted")
        self._completed = logfire.metric_counter("conversation_tasks_completed")
        self._failed = logfire.metric_counter("conversation_tasks_failed")
        logfire.info(
            "Conversation lock manager initialised", max_concurrent=max_concurrent
        )

    def acquire_lock(
        self, conversation_id: str, work: WorkFactory[T]
    ) -> asyncio.Future[T]:
        """Queue ``work`` for ``conversation_id`` and return its outcome future.

        The work is enqueued before this method returns, so submission order is
        the call order. The returned future resolves with the value produced by
        ``work`` or raises the exception it raised. Callers that do not await
        it should attach a done callback to observe failures.

        Args:
            conversation_id: Opaque conversation key.
            work: Zero-argument callable returning an awaitable.

        Returns:
            Future settled with the outcome of ``work``.

        Raises:
            TypeError: If ``work`` is not callable.
            RuntimeError: If called without a running event loop.
        """

        if not callable(work):
            raise TypeError("work must be a zero-argument callable")
        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        self._submitted.add(1)
        logfire.debug(
            "Conversation work queued",
            conversation_id=conversation_id,
            active=self._queues.is_active(conversation_id),
            depth=self._queues.depth(conversation_id),
        )
        self._queues.enqueue(conversation_id, work, future)
        self._update_gauges()
        return future

    def get_stats(self) -> LockStats:
        """Return a read-only snapshot of the coordinator state."""

        return LockStats(
            max_concurrent=self._gate.capacity,
            current_active=self._gate.in_use,
            queued_total=self._queues.queued_total(),
            per_conversation_queue_depths=self._queues.depths(),
        )

    @property
    def max_concurrent(self) -> int:
        """Return the configured number of global slots."""

        return self._gate.capacity

    @property
    def current_active(self) -> int:
        """Return the number of tasks executing now."""

        return self._gate.in_use

    @property
    def queued_total(self) -> int:
        """Return the number of tasks waiting to start."""

        return self._queues.queued_total()

    def is_active(self, conversation_id: str) -> bool:
        """Return ``True`` while ``conversation_id`` has a task executing."""

        return self._queues.is_active(conversation_id)

    async def wait_idle(self) -> None:
        """Wait until nothing is executing and nothing is queued."""

        while self._running:
            await asyncio.wait(set(self._running))

    def _promote(self) -> None:
        while self._gate.available:
            conversation_id = self._queues.next_eligible()
            if conversation_id is None:
                return
            if not self._gate.try_admit():
                return
            entry = self._queues.dequeue_next_if_idle(conversation_id)
            if entry is None:  # pragma: no cover - next_eligible guarantees one
                self._gate.release()
                return
            self._start(entry)

    def _start(self, entry: QueueEntry) -> None:
        task = asyncio.get_running_loop().create_task(
            self._run(entry), name=f"conversation:{entry.conversation_id}"
        )
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    async def _run(self, entry: QueueEntry) -> None:
        future = entry.future
        waited = time.monotonic() - entry.enqueued_at
        try:
            with logfire.span(
                "conversation_lock.run",
                conversation_id=entry.conversation_id,
                waited_seconds=round(waited, 3),
            ):
                result = await _invoke(entry.work)
        except asyncio.CancelledError:
            self._failed.add(1)
            logfire.warning(
                "Conversation work cancelled", conversation_id=entry.conversation_id
            )
            if future is not None and not future.done():
                future.cancel()
            raise
        except Exception as exc:
            self._failed.add(1)
            logfire.debug(
                "Conversation work failed",
                conversation_id=entry.conversation_id,
                error=repr(exc),
            )
            if future is not None and not future.done():
                future.set_exception(exc)
        else:
            self._completed.add(1)
            if future is not None and not future.done():
                future.set_result(result)
        finally:
            self._gate.release()
            # Triggers the next promotion round through the queue listener.
            self._queues.mark_done(entry.conversation_id)
            self._update_gauges()

    def _update_gauges(self) -> None:
        self._active_gauge.set(self._gate.in_use)
        self._depth_gauge.set(self._queues.queued_total())


async def _invoke(work: WorkFactory[Any]) -> Any:
    awaitable = work()
    if not inspect.isawaitable(awaitable):
        raise TypeError(
            f"work must return an awaitable, got {type(awaitable).__name__}"
        )
    return await awaitable


__all__ = ["ConversationLockManager", "LockStats"]
