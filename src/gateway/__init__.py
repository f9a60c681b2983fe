# SPDX-License-Identifier: MIT
"""HTTP gateway and message dispatch in front of the lock manager."""

from .app import create_app
from .dispatcher import MessageDispatcher
from .orchestrator import MessageHandler, echo_handler, load_handler

__all__ = [
    "MessageDispatcher",
    "MessageHandler",
    "create_app",
    "echo_handler",
    "load_handler",
]
