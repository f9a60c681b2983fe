# SPDX-License-Identifier: MIT
"""Global admission gate for conversation work.

:class:`ConcurrencyGate` is a bounded counter shared by every conversation.
Unlike :class:`asyncio.Semaphore` it never blocks: callers ask for a slot and
either receive one immediately or are told to try again once a slot is
released. The scheduling loop in :mod:`coordination.lock_manager` relies on
this to keep admission synchronous.
"""

from __future__ import annotations

from threading import Lock

from .errors import ConfigurationError


class ConcurrencyGate:
    """Admit at most ``capacity`` simultaneously executing tasks."""

    def __init__(self, capacity: int) -> None:
        """Create the gate.

        Args:
            capacity: Maximum number of tasks allowed to execute at once.

        Raises:
            ConfigurationError: If ``capacity`` is not a positive integer.
        """

        if isinstance(capacity, bool) or not isinstance(capacity, int):
            raise ConfigurationError(
                f"capacity must be a positive integer, got {capacity!r}"
            )
        if capacity < 1:
            raise ConfigurationError(f"capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        self._in_use = 0
        # Check-and-increment stays atomic even if a worker thread calls in.
        self._lock = Lock()

    def try_admit(self) -> bool:
        """Reserve a slot when one is free.

        Returns:
            ``True`` when a slot was granted, ``False`` when the gate is full.
        """

        with self._lock:
            if self._in_use >= self._capacity:
                return False
            self._in_use += 1
            return True

    def release(self) -> None:
        """Return a slot to the gate; extra releases are ignored."""

        with self._lock:
            if self._in_use > 0:
                self._in_use -= 1

    @property
    def capacity(self) -> int:
        """Return the fixed number of slots."""

        return self._capacity

    @property
    def in_use(self) -> int:
        """Return the number of slots currently held."""

        return self._in_use

    @property
    def available(self) -> int:
        """Return the number of free slots."""

        return self._capacity - self._in_use


__all__ = ["ConcurrencyGate"]
