# SPDX-License-Identifier: MIT
"""Runtime environment singleton for shared settings and the lock manager."""

from __future__ import annotations

from threading import Lock
from typing import TYPE_CHECKING

import logfire

from coordination import ConversationLockManager

if TYPE_CHECKING:  # pragma: no cover - for type checkers only
    from runtime.settings import Settings


class RuntimeEnv:
    """Thread-safe singleton storing application settings and shared state.

    The process-wide :class:`ConversationLockManager` is built exactly once,
    from ``settings.max_concurrent_conversations``, when the environment is
    initialised. Every inbound message source shares that instance.
    """

    _instance: "RuntimeEnv" | None = None
    _lock = Lock()

    def __init__(self, settings: "Settings") -> None:
        """Initialise the runtime environment."""
        self.settings = settings
        self._lock_manager = ConversationLockManager(
            settings.max_concurrent_conversations
        )
        # Debug logging helps diagnose configuration loading problems.
        logfire.debug("RuntimeEnv created", settings=repr(settings))

    @property
    def lock_manager(self) -> ConversationLockManager:
        """Return the process-wide conversation lock manager."""
        return self._lock_manager

    @classmethod
    def initialize(cls, settings: "Settings") -> "RuntimeEnv":
        """Initialise and return the runtime environment.

        Args:
            settings: Validated application settings.

        Returns:
            The active :class:`RuntimeEnv` instance.

        Raises:
            ConfigurationError: If the configured capacity is not positive.
        """
        with logfire.span("runtime_env.initialize"):
            with cls._lock:
                logfire.info(
                    "Initialising runtime environment",
                    max_concurrent=settings.max_concurrent_conversations,
                )
                cls._instance = cls(settings)
                return cls._instance

    @classmethod
    def instance(cls) -> "RuntimeEnv":
        """Return the current runtime environment.

        Raises:
            RuntimeError: If :meth:`initialize` was not called.
        """
        inst = cls._instance
        if inst is None:
            logfire.error("RuntimeEnv accessed before initialisation")
            raise RuntimeError("RuntimeEnv has not been initialised")
        return inst

    @classmethod
    def reset(cls) -> None:
        """Clear the active runtime environment.

        Useful for tests needing a fresh configuration. Work already running
        on the previous lock manager is unaffected.
        """
        with logfire.span("runtime_env.reset"):
            with cls._lock:
                logfire.info("Resetting runtime environment")
                cls._instance = None


__all__ = ["RuntimeEnv"]
