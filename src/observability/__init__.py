"""Telemetry and monitoring helpers for the conversation gateway.

Exports:
    init_logfire: Configure Pydantic Logfire instrumentation.
    record_submitted: Count a message handed to the lock manager.
    record_finished: Record how a dispatched message ended.
    snapshot: Return per-source dispatch metrics.
    log_summary: Emit a summary of collected metrics.
    reset: Clear stored metrics.
"""

from .monitoring import init_logfire
from .telemetry import (
    log_summary,
    record_finished,
    record_submitted,
    reset,
    snapshot,
)

__all__ = [
    "init_logfire",
    "record_submitted",
    "record_finished",
    "snapshot",
    "log_summary",
    "reset",
]
