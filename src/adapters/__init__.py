# SPDX-License-Identifier: MIT
"""Chat platform adapters feeding the conversation lock manager."""

from .base import PlatformAdapter
from .memory import TestAdapter
from .slack import SlackAdapter, SlackApiError, translate_command
from .telegram import TelegramAdapter

__all__ = [
    "PlatformAdapter",
    "SlackAdapter",
    "SlackApiError",
    "TelegramAdapter",
    "TestAdapter",
    "translate_command",
]
