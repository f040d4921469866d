"""Shared data types for chatloop."""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class ChatRole(enum.Enum):
    """Author role of a message."""

    SYSTEM = "system"
    USER = "user"
    CHATBOT = "chatbot"
    FUNCTION = "function"


class PinLocation(enum.Enum):
    """Where a message is kept when the history is windowed."""

    NONE = "none"
    BEGIN = "begin"
    END = "end"
    AUTOMATIC = "automatic"


# ---------------------------------------------------------------------------
# Function call types
# ---------------------------------------------------------------------------

@dataclass
class FunctionCall:
    """Model-issued request to invoke a registered function.

    ``arguments`` is kept serialized (JSON text) exactly as the provider
    sent it; use :meth:`parsed_arguments` for a dict view.
    """

    name: str
    arguments: str = "{}"
    tool_call_id: str | None = None

    def parsed_arguments(self) -> dict[str, Any]:
        """Decode ``arguments``; malformed or non-object payloads give ``{}``."""
        if not self.arguments or not self.arguments.strip():
            return {}
        try:
            data = json.loads(self.arguments)
        except json.JSONDecodeError:
            return {}
        return data if isinstance(data, dict) else {}


@dataclass
class FunctionResult:
    """Value fed back to the model after a function call."""

    name: str
    value: str
    tool_call_id: str | None = None


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

@dataclass
class ChatMessage:
    """One entry of a conversation.

    A message carries one primary payload: free text, function calls or a
    function result.  ``is_deleted`` / ``is_unsent`` are soft-delete flags;
    flagged messages stay in the conversation but are never sent.
    """

    role: ChatRole
    content: str | None = None
    user_name: str | None = None
    function_calls: list[FunctionCall] = field(default_factory=list)
    function_result: FunctionResult | None = None
    pin_location: PinLocation = PinLocation.NONE
    image_urls: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=_utcnow)
    is_deleted: bool = False
    is_unsent: bool = False

    @property
    def is_soft_deleted(self) -> bool:
        return self.is_deleted or self.is_unsent

    @property
    def has_function_calls(self) -> bool:
        return len(self.function_calls) > 0

    @property
    def content_length(self) -> int:
        """Characters counted against a character limit."""
        length = len(self.content or "")
        if self.function_result is not None:
            length += len(self.function_result.value or "")
        return length


@dataclass
class Conversation:
    """Ordered message history owned by the caller.

    The orchestrator only ever appends to ``messages``.
    """

    messages: list[ChatMessage] = field(default_factory=list)
    user_tracking_id: str | None = None
    created_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def with_system_message(cls, content: str) -> Conversation:
        conversation = cls()
        conversation.from_system(content)
        return conversation

    def add(self, message: ChatMessage) -> ChatMessage:
        self.messages.append(message)
        return message

    def from_system(
        self, content: str, pin_location: PinLocation = PinLocation.NONE,
    ) -> ChatMessage:
        return self.add(ChatMessage(
            role=ChatRole.SYSTEM, content=content, pin_location=pin_location,
        ))

    def from_user(
        self,
        content: str,
        user_name: str | None = None,
        pin_location: PinLocation = PinLocation.NONE,
        image_urls: Iterable[str] = (),
    ) -> ChatMessage:
        return self.add(ChatMessage(
            role=ChatRole.USER,
            content=content,
            user_name=user_name,
            pin_location=pin_location,
            image_urls=list(image_urls),
        ))

    def from_chatbot(
        self, content: str, pin_location: PinLocation = PinLocation.NONE,
    ) -> ChatMessage:
        return self.add(ChatMessage(
            role=ChatRole.CHATBOT, content=content, pin_location=pin_location,
        ))

    def from_function_calls(
        self,
        calls: FunctionCall | Iterable[FunctionCall],
        pin_location: PinLocation = PinLocation.NONE,
    ) -> ChatMessage:
        if isinstance(calls, FunctionCall):
            calls = [calls]
        return self.add(ChatMessage(
            role=ChatRole.CHATBOT,
            function_calls=list(calls),
            pin_location=pin_location,
        ))

    def from_function(
        self, result: FunctionResult, pin_location: PinLocation = PinLocation.NONE,
    ) -> ChatMessage:
        return self.add(ChatMessage(
            role=ChatRole.FUNCTION, function_result=result, pin_location=pin_location,
        ))

    def __len__(self) -> int:
        return len(self.messages)


# ---------------------------------------------------------------------------
# LLM types
# ---------------------------------------------------------------------------

@dataclass
class LLMResponse:
    """Unified buffered response from a provider."""

    content: str | None = None
    function_calls: list[FunctionCall] = field(default_factory=list)
    finish_reason: str = ""
    usage: dict[str, int] = field(default_factory=dict)
    model: str = ""
    raw_response: dict[str, Any] = field(default_factory=dict)
    latency_ms: float = 0

    @property
    def has_function_calls(self) -> bool:
        return len(self.function_calls) > 0


@dataclass
class StreamDelta:
    """One decoded streaming frame.

    Carries at most one of: a text delta, or a fragment (id / name /
    argument text) of exactly one function call.  ``usage`` frames carry
    token counts only.  ``done`` marks the end-of-stream sentinel.
    """

    text: str | None = None
    tool_call_id: str | None = None
    function_name: str | None = None
    arguments: str | None = None
    usage: dict[str, int] | None = None
    done: bool = False

    @property
    def starts_function_call(self) -> bool:
        return bool(self.function_name)


# ---------------------------------------------------------------------------
# Usage accounting
# ---------------------------------------------------------------------------

@dataclass
class TokenUsageTracker:
    """Accumulates token usage across requests.

    Not synchronized; share one tracker per orchestration call chain.
    """

    prompt_tokens: int = 0
    cached_tokens: int = 0
    completion_tokens: int = 0

    def add(self, usage: dict[str, int]) -> None:
        self.prompt_tokens += usage.get("prompt_tokens", 0)
        self.cached_tokens += usage.get("cached_tokens", 0)
        self.completion_tokens += usage.get("completion_tokens", 0)

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens
