"""Completion orchestrator: the multi-turn function-calling loop.

    prepare → send → {text | function calls} → (execute → send)* → text

One call to :meth:`Orchestrator.complete` or
:meth:`Orchestrator.stream_complete` is one logical turn.  Function calls
in a response are executed sequentially, and every appended message is
passed to ``options.on_message_added`` before the loop continues.
"""

from __future__ import annotations

import inspect
import json
import logging
import time
from typing import Any, AsyncIterator

from chatloop.core.pipeline import prepare_messages
from chatloop.core.streaming import StreamReconstructor
from chatloop.errors import RecursionLimitError, TransportError
from chatloop.llm.providers import Provider
from chatloop.llm.transport import RetryingTransport
from chatloop.options import CompletionOptions
from chatloop.tools.base import FunctionContext
from chatloop.tools.invoker import format_result, invoke_function, is_error_result
from chatloop.tools.naming import names_match
from chatloop.types import (
    ChatMessage,
    ChatRole,
    Conversation,
    FunctionCall,
    FunctionResult,
    LLMResponse,
    TokenUsageTracker,
)

_logger = logging.getLogger(__name__)

DOUBLE_CHECK_MESSAGE = (
    "Before executing, are you sure the user wants to run this function? "
    "If yes, call it again to confirm."
)
MALFORMED_RESPONSE_MESSAGE = "Either call a function or respond with text."
NO_CALL_SUCCEEDED_MESSAGE = (
    "No tool call succeeded; provide required parameters or respond directly."
)


class Orchestrator:
    """Drives a conversation against one provider until it ends in text.

    Parameters
    ----------
    provider:
        Dialect used to build requests and decode responses.
    transport:
        Retrying HTTP transport.
    usage_tracker:
        Default token tracker; can be overridden per call.
    """

    def __init__(
        self,
        provider: Provider,
        transport: RetryingTransport,
        usage_tracker: TokenUsageTracker | None = None,
    ) -> None:
        self._provider = provider
        self._transport = transport
        self._usage_tracker = usage_tracker

    # ------------------------------------------------------------------
    # Buffered
    # ------------------------------------------------------------------

    async def complete(
        self,
        conversation: Conversation,
        options: CompletionOptions | None = None,
        usage_tracker: TokenUsageTracker | None = None,
    ) -> str:
        """Run the loop and return the final text.

        Raises
        ------
        RecursionLimitError
            The model kept calling functions for ``options.max_recursion``
            round-trips.
        TransportError
            A request still failed after ``options.max_attempts`` attempts.
        """
        options = options or CompletionOptions()
        tracker = usage_tracker or self._usage_tracker

        recursion = 0
        while True:
            if recursion >= options.max_recursion:
                raise RecursionLimitError(options.max_recursion)

            response = await self._send(conversation, options, tracker)

            if response.has_function_calls:
                any_succeeded = False
                for call in response.function_calls:
                    await self._append(conversation, options, ChatMessage(
                        role=ChatRole.CHATBOT,
                        function_calls=[call],
                    ))
                    if await self._execute_call(conversation, call, options):
                        any_succeeded = True

                if not any_succeeded:
                    return await self._give_up(conversation, options)

            elif response.content:
                await self._append(conversation, options, ChatMessage(
                    role=ChatRole.CHATBOT, content=response.content,
                ))
                return response.content

            else:
                _logger.info("Response had neither text nor function calls")
                await self._append_result(
                    conversation, options,
                    FunctionResult(name="Error", value=MALFORMED_RESPONSE_MESSAGE),
                )

            recursion += 1
            _logger.info("Continuing turn, round-trip %d", recursion + 1)

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def stream_complete(
        self,
        conversation: Conversation,
        options: CompletionOptions | None = None,
        usage_tracker: TokenUsageTracker | None = None,
    ) -> AsyncIterator[str]:
        """Run the loop, yielding text fragments as they arrive.

        Exhausting the iterator coincides with the conversation ending in
        text.  The iterator is not restartable.
        """
        options = options or CompletionOptions()
        tracker = usage_tracker or self._usage_tracker

        recursion = 0
        while True:
            if recursion >= options.max_recursion:
                raise RecursionLimitError(options.max_recursion)

            reconstructor = StreamReconstructor(tracker)
            url, payload, headers = self._request(
                conversation, options, stream=True, include_usage=tracker is not None,
            )
            async with self._transport.stream_json(
                url, payload, headers=headers, max_attempts=options.max_attempts,
            ) as resp:
                async for line in resp.aiter_lines():
                    for delta in self._provider.decode_stream_line(line):
                        fragment = reconstructor.feed(delta)
                        if fragment:
                            yield fragment
                    if reconstructor.done:
                        break

            text, calls = reconstructor.finish()
            _logger.debug("Stream ended: %d chars, %d function calls", len(text), len(calls))

            any_succeeded = False
            if calls:
                await self._append(conversation, options, ChatMessage(
                    role=ChatRole.CHATBOT, function_calls=calls,
                ))
                for call in calls:
                    if await self._execute_call(conversation, call, options):
                        any_succeeded = True

            if text:
                await self._append(conversation, options, ChatMessage(
                    role=ChatRole.CHATBOT, content=text,
                ))

            if calls:
                if not any_succeeded:
                    yield await self._give_up(conversation, options)
                    return
            elif text:
                return
            else:
                _logger.info("Stream had neither text nor function calls")
                await self._append_result(
                    conversation, options,
                    FunctionResult(name="Error", value=MALFORMED_RESPONSE_MESSAGE),
                )

            recursion += 1
            _logger.info("Continuing streamed turn, round-trip %d", recursion + 1)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def _request(
        self,
        conversation: Conversation,
        options: CompletionOptions,
        stream: bool = False,
        include_usage: bool = False,
    ) -> tuple[str, dict[str, Any], dict[str, str]]:
        messages = prepare_messages(
            conversation.messages,
            options,
            replace_system=self._provider.replace_system_role,
            merge_consecutive=self._provider.merge_consecutive,
        )
        payload = self._provider.build_request(
            messages,
            options,
            user_tracking_id=conversation.user_tracking_id,
            stream=stream,
            include_usage=include_usage,
        )
        _log_payload(options, "Request", payload)
        return (
            self._provider.endpoint(options, stream=stream),
            payload,
            self._provider.headers(options),
        )

    async def _send(
        self,
        conversation: Conversation,
        options: CompletionOptions,
        tracker: TokenUsageTracker | None,
    ) -> LLMResponse:
        url, payload, headers = self._request(conversation, options)

        start = time.monotonic()
        resp = await self._transport.post_json(
            url, payload, headers=headers, max_attempts=options.max_attempts,
        )
        try:
            data = resp.json()
        except ValueError as exc:
            raise TransportError(
                "Response is not valid JSON",
                status_code=resp.status_code,
                body=resp.text,
            ) from exc
        _log_payload(options, "Response", data)

        response = self._provider.parse_response(data)
        response.latency_ms = (time.monotonic() - start) * 1000
        if tracker is not None and response.usage:
            tracker.add(response.usage)
        return response

    # ------------------------------------------------------------------
    # Function execution
    # ------------------------------------------------------------------

    async def _execute_call(
        self,
        conversation: Conversation,
        call: FunctionCall,
        options: CompletionOptions,
    ) -> bool:
        """Handle one call and append its result.

        Returns ``False`` when the function was not found or its result is
        an error; a confirmation request counts as progress.
        """
        function = options.functions.get(call.name)
        if function is None:
            _logger.info("Model called unknown function %r", call.name)
            await self._append_result(conversation, options, FunctionResult(
                name=call.name,
                value=f"Function '{call.name}' was not found.",
                tool_call_id=call.tool_call_id,
            ))
            return False

        if function.requires_double_check and _count_calls(conversation, call.name) % 2 != 0:
            await self._append_result(conversation, options, FunctionResult(
                name=call.name, value=DOUBLE_CHECK_MESSAGE, tool_call_id=call.tool_call_id,
            ))
            return True

        if function.callback is not None:
            context = FunctionContext(
                function_call=call,
                conversation=conversation,
                data=options.function_context,
            )
            value = await invoke_function(function, call.arguments, context)
        else:
            result = options.default_function_callback(call.name, call.arguments)
            if inspect.isawaitable(result):
                result = await result
            value = format_result(result)

        await self._append_result(conversation, options, FunctionResult(
            name=call.name, value=value, tool_call_id=call.tool_call_id,
        ))
        return not is_error_result(value)

    async def _give_up(self, conversation: Conversation, options: CompletionOptions) -> str:
        _logger.info("No function call in the batch succeeded, ending turn")
        await self._append(conversation, options, ChatMessage(
            role=ChatRole.CHATBOT, content=NO_CALL_SUCCEEDED_MESSAGE,
        ))
        return NO_CALL_SUCCEEDED_MESSAGE

    # ------------------------------------------------------------------
    # Conversation updates
    # ------------------------------------------------------------------

    async def _append(
        self, conversation: Conversation, options: CompletionOptions, message: ChatMessage,
    ) -> ChatMessage:
        conversation.add(message)
        if options.on_message_added is not None:
            result = options.on_message_added(message)
            if inspect.isawaitable(result):
                await result
        return message

    async def _append_result(
        self, conversation: Conversation, options: CompletionOptions, result: FunctionResult,
    ) -> ChatMessage:
        return await self._append(conversation, options, ChatMessage(
            role=ChatRole.FUNCTION, function_result=result,
        ))


def _count_calls(conversation: Conversation, name: str) -> int:
    """Number of messages holding a call to *name* (current call included)."""
    return sum(
        1 for m in conversation.messages
        if any(names_match(c.name, name) for c in m.function_calls)
    )


def _log_payload(options: CompletionOptions, label: str, payload: dict[str, Any]) -> None:
    level = logging.INFO if options.debug else logging.DEBUG
    if _logger.isEnabledFor(level):
        _logger.log(level, "%s: %s", label, json.dumps(payload, default=str))
