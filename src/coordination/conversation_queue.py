# SPDX-License-Identifier: MIT
"""Per-conversation FIFO queues with an active flag.

Each conversation identifier owns a queue of pending work and a flag telling
whether one of its tasks is executing. The queue never runs anything itself;
it only answers which conversations may start work and in which order. A
listener supplied at construction is notified whenever that answer may have
changed (new work arrived or a task finished) so the owner can promote work.

Conversations waiting for a global slot are ordered by the moment their head
entry became runnable. A conversation that just finished a task rejoins the
line behind conversations that were already waiting, which keeps a busy
conversation from monopolising freed slots.
"""

from __future__ import annotations

import asyncio
import itertools
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Deque, Protocol, TypeVar

T = TypeVar("T", covariant=True)


class WorkFactory(Protocol[T]):
    """Zero-argument callable producing the awaitable to execute."""

    def __call__(self) -> Awaitable[T]: ...


@dataclass
class QueueEntry:
    """Pending unit of work for one conversation."""

    conversation_id: str
    work: WorkFactory[Any]
    enqueued_at: float
    sequence: int
    future: asyncio.Future[Any] | None = None


@dataclass
class ConversationState:
    """Queue and activity flag for a single conversation."""

    queue: Deque[QueueEntry] = field(default_factory=deque)
    active: bool = False
    # Ordering key for the oldest-first tie-break; set when the head becomes
    # runnable, i.e. on enqueue into an idle empty queue or after a task ends.
    ready_ticket: int = 0


class PerConversationQueue:
    """Map conversation identifiers to FIFO queues of pending work."""

    def __init__(
        self,
        on_change: Callable[[], None] | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Create an empty queue map.

        Args:
            on_change: Called after every enqueue and completion so the owner
                can attempt promotion.
            clock: Timestamp source for ``enqueued_at``.
        """

        self._states: dict[str, ConversationState] = {}
        self._on_change = on_change
        self._clock = clock
        self._sequence = itertools.count()
        self._tickets = itertools.count()

    def enqueue(
        self,
        conversation_id: str,
        work: WorkFactory[Any],
        future: asyncio.Future[Any] | None = None,
    ) -> QueueEntry:
        """Append ``work`` to the queue for ``conversation_id``.

        Args:
            conversation_id: Opaque conversation key.
            work: Zero-argument factory returning the awaitable to run.
            future: Optional future resolved by the owner with the outcome.

        Returns:
            The queued :class:`QueueEntry`.
        """

        state = self._states.get(conversation_id)
        if state is None:
            state = ConversationState()
            self._states[conversation_id] = state
        entry = QueueEntry(
            conversation_id=conversation_id,
            work=work,
            enqueued_at=self._clock(),
            sequence=next(self._sequence),
            future=future,
        )
        if not state.queue and not state.active:
            state.ready_ticket = next(self._tickets)
        state.queue.append(entry)
        self._notify()
        return entry

    def dequeue_next_if_idle(self, conversation_id: str) -> QueueEntry | None:
        """Pop the head entry for ``conversation_id`` when it is idle.

        The conversation is marked active when an entry is returned.

        Returns:
            The head entry, or ``None`` when the conversation is active, has
            nothing queued, or is unknown.
        """

        state = self._states.get(conversation_id)
        if state is None or state.active or not state.queue:
            return None
        state.active = True
        return state.queue.popleft()

    def mark_done(self, conversation_id: str) -> None:
        """Clear the active flag for ``conversation_id`` and notify the owner.

        Conversations left with an empty queue are pruned.
        """

        state = self._states.get(conversation_id)
        if state is None:
            return
        state.active = False
        if state.queue:
            state.ready_ticket = next(self._tickets)
        else:
            del self._states[conversation_id]
        self._notify()

    def next_eligible(self) -> str | None:
        """Return the idle conversation that has waited longest, if any."""

        best: tuple[int, str] | None = None
        for conversation_id, state in self._states.items():
            if state.active or not state.queue:
                continue
            if best is None or state.ready_ticket < best[0]:
                best = (state.ready_ticket, conversation_id)
        return best[1] if best else None

    def eligible(self) -> list[str]:
        """Return every idle conversation with queued work, oldest first."""

        ready = [
            (state.ready_ticket, conversation_id)
            for conversation_id, state in self._states.items()
            if not state.active and state.queue
        ]
        return [conversation_id for _, conversation_id in sorted(ready)]

    def is_active(self, conversation_id: str) -> bool:
        """Return ``True`` while a task for ``conversation_id`` executes."""

        state = self._states.get(conversation_id)
        return bool(state and state.active)

    def depth(self, conversation_id: str) -> int:
        """Return the number of queued (not executing) entries."""

        state = self._states.get(conversation_id)
        return len(state.queue) if state else 0

    def depths(self) -> dict[str, int]:
        """Return queued entry counts for every tracked conversation."""

        return {cid: len(state.queue) for cid, state in self._states.items()}

    def queued_total(self) -> int:
        """Return the number of queued entries across all conversations."""

        return sum(len(state.queue) for state in self._states.values())

    def __len__(self) -> int:
        return len(self._states)

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._states

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change()


__all__ = [
    "ConversationState",
    "PerConversationQueue",
    "QueueEntry",
    "WorkFactory",
]
