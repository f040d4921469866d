"""Message preparation pipeline.

Turns a conversation snapshot into the ordered list of messages sent to a
provider.  Every step returns a new list; stored messages are never
modified in place.
"""

from __future__ import annotations

import dataclasses
from datetime import datetime
from typing import Iterable

from chatloop.options import CompletionOptions
from chatloop.types import ChatMessage, ChatRole, PinLocation


def format_current_time(now: datetime) -> str:
    return f"Current Time: '{now:%A}, {now:%B} {now.day}, {now.year}, {now:%H:%M}'."


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------

def add_dynamic_system_message(
    messages: list[ChatMessage], system_message: str | None,
) -> list[ChatMessage]:
    if not system_message or not system_message.strip():
        return list(messages)
    first = ChatMessage(
        role=ChatRole.SYSTEM, content=system_message, pin_location=PinLocation.BEGIN,
    )
    return [first, *messages]


def add_time_information(
    messages: list[ChatMessage], now: datetime,
) -> list[ChatMessage]:
    last = ChatMessage(
        role=ChatRole.SYSTEM,
        content=format_current_time(now),
        pin_location=PinLocation.END,
    )
    return [*messages, last]


def remove_deleted_messages(messages: list[ChatMessage]) -> list[ChatMessage]:
    return [m for m in messages if not m.is_soft_deleted]


def remove_previous_function_calls(messages: list[ChatMessage]) -> list[ChatMessage]:
    """Drop function calls and results that precede the latest user message."""
    last_user = None
    for i in range(len(messages) - 1, -1, -1):
        if messages[i].role is ChatRole.USER:
            last_user = i
            break
    if last_user is None:
        return list(messages)

    kept = [
        m for m in messages[:last_user]
        if not m.has_function_calls and m.function_result is None
    ]
    return kept + messages[last_user:]


def sort_by_pin(messages: list[ChatMessage]) -> list[ChatMessage]:
    """Begin-pinned first, End-pinned last; relative order kept within each class."""
    begin = [m for m in messages if m.pin_location is PinLocation.BEGIN]
    middle = [
        m for m in messages
        if m.pin_location in (PinLocation.NONE, PinLocation.AUTOMATIC)
    ]
    end = [m for m in messages if m.pin_location is PinLocation.END]
    return begin + middle + end


def _correlated_results(
    message: ChatMessage, messages: Iterable[ChatMessage],
) -> list[ChatMessage]:
    call_ids = {c.tool_call_id for c in message.function_calls if c.tool_call_id}
    if not call_ids:
        return []
    return [
        m for m in messages
        if m.function_result is not None and m.function_result.tool_call_id in call_ids
    ]


def limit_messages(
    messages: list[ChatMessage],
    message_limit: int | None = None,
    character_limit: int | None = None,
) -> list[ChatMessage]:
    """Window the history to the given message and character budgets.

    Only unpinned, non-system messages are removed, oldest first.  A
    function-call message is removed together with its results; pinned
    messages stay even if the budget is still exceeded afterwards.
    """
    if message_limit is None and character_limit is None:
        return list(messages)

    counted = [m for m in messages if m.role is not ChatRole.SYSTEM]
    excess_messages = len(counted) - message_limit if message_limit is not None else 0
    excess_characters = (
        sum(m.content_length for m in counted) - character_limit
        if character_limit is not None else 0
    )

    removed: set[int] = set()
    for message in messages:
        if excess_messages <= 0 and excess_characters <= 0:
            break
        if (
            id(message) in removed
            or message.role is ChatRole.SYSTEM
            or message.pin_location is not PinLocation.NONE
        ):
            continue

        results = [
            m for m in _correlated_results(message, messages) if id(m) not in removed
        ]
        if any(r.pin_location is not PinLocation.NONE for r in results):
            continue

        for m in (message, *results):
            removed.add(id(m))
            excess_messages -= 1
            excess_characters -= m.content_length

    return [m for m in messages if id(m) not in removed]


def replace_system_role(messages: list[ChatMessage]) -> list[ChatMessage]:
    """For providers without a system role: send system messages as user messages."""
    return [
        dataclasses.replace(m, role=ChatRole.USER) if m.role is ChatRole.SYSTEM else m
        for m in messages
    ]


def _join_text(first: str | None, second: str | None) -> str | None:
    parts = [t for t in (first, second) if t]
    if not parts:
        return first if first is not None else second
    return "\n\n".join(parts)


def merge_messages(messages: list[ChatMessage]) -> list[ChatMessage]:
    """Merge consecutive messages with the same role and author.

    Function results are never merged; the provider groups them itself.
    The merged message keeps the first message's pin location.
    """
    merged: list[ChatMessage] = []
    for message in messages:
        previous = merged[-1] if merged else None
        if (
            previous is not None
            and previous.role is message.role
            and previous.user_name == message.user_name
            and previous.function_result is None
            and message.function_result is None
        ):
            merged[-1] = dataclasses.replace(
                previous,
                content=_join_text(previous.content, message.content),
                function_calls=[*previous.function_calls, *message.function_calls],
                image_urls=[*previous.image_urls, *message.image_urls],
            )
        else:
            merged.append(message)
    return merged


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

def prepare_messages(
    messages: Iterable[ChatMessage],
    options: CompletionOptions,
    replace_system: bool = False,
    merge_consecutive: bool = False,
) -> list[ChatMessage]:
    """Run every preparation step, in order, over a copy of *messages*."""
    prepared = list(messages)

    if options.system_message_callback is not None:
        prepared = add_dynamic_system_message(prepared, options.system_message_callback())
    if options.time_aware:
        prepared = add_time_information(prepared, options.time_callback())

    prepared = remove_deleted_messages(prepared)
    if options.ignore_previous_function_calls:
        prepared = remove_previous_function_calls(prepared)

    prepared = sort_by_pin(prepared)
    prepared = limit_messages(prepared, options.message_limit, options.character_limit)

    if replace_system:
        prepared = replace_system_role(prepared)
    if merge_consecutive:
        prepared = merge_messages(prepared)
    return prepared
