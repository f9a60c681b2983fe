# SPDX-License-Identifier: MIT
"""Conversation coordination: per-conversation serialisation under a global bound."""

from .conversation_queue import (
    ConversationState,
    PerConversationQueue,
    QueueEntry,
    WorkFactory,
)
from .errors import ConfigurationError
from .gate import ConcurrencyGate
from .lock_manager import ConversationLockManager, LockStats

__all__ = [
    "ConcurrencyGate",
    "ConfigurationError",
    "ConversationLockManager",
    "ConversationState",
    "LockStats",
    "PerConversationQueue",
    "QueueEntry",
    "WorkFactory",
]
