# SPDX-License-Identifier: MIT
"""Aggregate dispatch outcomes per inbound message source.

Each platform adapter (``telegram``, ``slack``, ``test`` ...) records how many
messages it submitted and how they ended. The totals back the
``/health/dispatch`` endpoint and the shutdown summary.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import DefaultDict

import logfire


@dataclass
class SourceMetrics:
    """Dispatch counters collected for a single message source."""

    submitted: int = 0
    completed: int = 0
    failed: int = 0
    latency_total: float = 0.0

    def add(self, *, ok: bool, latency: float) -> None:
        """Update counters with a finished dispatch."""

        if ok:
            self.completed += 1
        else:
            self.failed += 1
        self.latency_total += latency

    @property
    def in_flight(self) -> int:
        """Return dispatches submitted but not yet finished."""

        return self.submitted - self.completed - self.failed

    @property
    def average_latency(self) -> float:
        """Return the mean submit-to-finish latency in seconds."""

        finished = self.completed + self.failed
        if not finished:
            return 0.0
        return self.latency_total / finished


_metrics: DefaultDict[str, SourceMetrics] = defaultdict(SourceMetrics)


def record_submitted(source: str) -> None:
    """Count a message handed to the lock manager by ``source``."""

    _metrics[source].submitted += 1


def record_finished(source: str, *, ok: bool, latency: float) -> None:
    """Record the outcome of a dispatch originating from ``source``."""

    _metrics[source].add(ok=ok, latency=latency)


def snapshot() -> dict[str, dict[str, float | int]]:
    """Return a JSON-friendly copy of the collected metrics."""

    return {
        source: {
            "submitted": data.submitted,
            "completed": data.completed,
            "failed": data.failed,
            "inFlight": data.in_flight,
            "avgLatency": round(data.average_latency, 4),
        }
        for source, data in _metrics.items()
    }


def reset() -> None:
    """Clear all recorded metrics."""

    _metrics.clear()


def log_summary() -> None:
    """Emit one log record per source plus totals."""

    if not _metrics:
        return
    for source, data in _metrics.items():
        logfire.info(
            "Dispatch summary for {source}",
            source=source,
            submitted=data.submitted,
            completed=data.completed,
            failed=data.failed,
            avg_latency=round(data.average_latency, 3),
        )
    logfire.info(
        "Dispatch totals",
        submitted=sum(d.submitted for d in _metrics.values()),
        failed=sum(d.failed for d in _metrics.values()),
    )


__all__ = [
    "SourceMetrics",
    "log_summary",
    "record_finished",
    "record_submitted",
    "reset",
    "snapshot",
]
