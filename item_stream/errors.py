"""
Exceptions raised by item-stream.
"""

from __future__ import annotations


class ItemStreamError(Exception):
    """Base exception for item-stream errors."""


class UnknownItemTypeError(ItemStreamError, KeyError):
    """Raised when no completeness rule is registered for an item type."""

    def __init__(self, item_type: str) -> None:
        super().__init__(item_type)
        self.item_type = item_type

    def __str__(self) -> str:
        return f"No completeness rule registered for item type: {self.item_type}"


class GenerationError(ItemStreamError):
    """Raised when the upstream generation fails or yields no usable document."""


class StreamTransportError(ItemStreamError):
    """Raised when the event transport fails (bad status, dropped connection, bad record)."""


class StreamTimeoutError(StreamTransportError):
    """Raised when no event arrives within the configured window."""
