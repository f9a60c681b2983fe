"""Error reporting for work whose failures have no awaiting caller."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import logfire


class ErrorHandler(ABC):
    """Interface for reporting errors.

    Implementations should avoid raising further exceptions and should emit
    concise diagnostics suitable for production logs.
    """

    @abstractmethod
    def handle(
        self, message: str, exc: BaseException | None = None, **context: Any
    ) -> None:
        """Record ``message`` with optional ``exc`` and structured ``context``."""

    @abstractmethod
    def warn(self, message: str, **context: Any) -> None:
        """Record a non-fatal problem such as abandoned work."""


class LoggingErrorHandler(ErrorHandler):
    """Error handler that logs via ``logfire``."""

    def handle(
        self, message: str, exc: BaseException | None = None, **context: Any
    ) -> None:
        """Log an error message with optional exception context.

        Args:
            message: Description of the error to record.
            exc: Exception instance providing additional context.
            **context: Extra attributes attached to the log record.
        """
        if exc:
            logfire.error(
                "{message}: {error}",
                message=message,
                error=repr(exc),
                _exc_info=exc,
                **context,
            )
        else:
            logfire.error("{message}", message=message, **context)

    def warn(self, message: str, **context: Any) -> None:
        """Log ``message`` at warning level with structured ``context``."""
        logfire.warning("{message}", message=message, **context)
