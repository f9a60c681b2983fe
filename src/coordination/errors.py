# SPDX-License-Identifier: MIT
"""Exceptions raised by the conversation coordination layer."""

from __future__ import annotations


class ConfigurationError(ValueError):
    """Raised when the coordinator is constructed with an unusable capacity.

    A gate that admits nothing would leave every conversation queued forever,
    so the condition is rejected at construction time rather than at first use.
    """


__all__ = ["ConfigurationError"]
