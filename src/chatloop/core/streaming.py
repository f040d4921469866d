"""Reassembly of streamed text and function-call fragments."""

from __future__ import annotations

from chatloop.types import FunctionCall, StreamDelta, TokenUsageTracker


class StreamReconstructor:
    """Accumulate :class:`StreamDelta` frames into text and function calls.

    A frame naming a function starts a new call and finalizes the one in
    progress; argument fragments are appended to the current call in
    arrival order.  Call :meth:`finish` once the stream has ended.
    """

    def __init__(self, usage_tracker: TokenUsageTracker | None = None) -> None:
        self._usage_tracker = usage_tracker
        self._text: list[str] = []
        self._calls: list[FunctionCall] = []
        self._current: FunctionCall | None = None
        self.done = False

    def feed(self, delta: StreamDelta) -> str | None:
        """Process one frame; return the text to yield to the caller, if any."""
        if delta.done:
            self.done = True
            return None

        if delta.usage:
            if self._usage_tracker is not None:
                self._usage_tracker.add(delta.usage)
            return None

        if delta.starts_function_call:
            self._finalize_current()
            self._current = FunctionCall(
                name=delta.function_name or "",
                arguments="",
                tool_call_id=delta.tool_call_id,
            )
        if delta.arguments and self._current is not None:
            self._current.arguments += delta.arguments

        if delta.text:
            self._text.append(delta.text)
            return delta.text
        return None

    def _finalize_current(self) -> None:
        if self._current is None:
            return
        if not self._current.arguments:
            self._current.arguments = "{}"
        self._calls.append(self._current)
        self._current = None

    @property
    def text(self) -> str:
        return "".join(self._text)

    def finish(self) -> tuple[str, list[FunctionCall]]:
        """Finalize any in-progress call; return ``(text, function_calls)``."""
        self._finalize_current()
        return self.text, list(self._calls)
