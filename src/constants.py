"""Project-wide constants and defaults.

This module centralises small constants that are imported across the
application. Keep this file minimal and free of side effects.
"""

from __future__ import annotations

DEFAULT_MAX_CONCURRENT_CONVERSATIONS = 10
"""Global slot count used when ``MAX_CONCURRENT_CONVERSATIONS`` is unset."""

DEFAULT_PORT = 3000

SERVICE_NAME = "conversation-gateway"

__all__ = ["DEFAULT_MAX_CONCURRENT_CONVERSATIONS", "DEFAULT_PORT", "SERVICE_NAME"]
