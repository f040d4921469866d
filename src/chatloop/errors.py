"""Exceptions surfaced to chatloop callers.

Only transport exhaustion, recursion-limit overruns and cancellation
(native ``asyncio.CancelledError``) escape an orchestration call; every
other anomaly is reported back to the model as a function result.
"""

from __future__ import annotations


class ChatLoopError(Exception):
    """Base class for chatloop errors."""


class TransportError(ChatLoopError):
    """Request failed after exhausting all attempts (or broke mid-stream)."""

    def __init__(
        self, message: str, status_code: int | None = None, body: str = "",
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class RecursionLimitError(ChatLoopError):
    """Model and function loop did not converge within the round-trip ceiling."""

    def __init__(self, limit: int) -> None:
        super().__init__("Recursion limit reached (infinite loop detected).")
        self.limit = limit
