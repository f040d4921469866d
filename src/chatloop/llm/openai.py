"""OpenAI-compatible chat completions dialect."""

from __future__ import annotations

import json
import logging
from typing import Any

from chatloop.llm.providers import Provider
from chatloop.options import CompletionOptions
from chatloop.tools.schema import serialize_response_format
from chatloop.types import (
    ChatMessage,
    ChatRole,
    FunctionCall,
    LLMResponse,
    StreamDelta,
)

_logger = logging.getLogger(__name__)

# Model families that take "developer" instead of "system"
_DEVELOPER_ROLE_PREFIXES = ("o1", "o3")


def role_name(role: ChatRole, model: str) -> str:
    if role is ChatRole.SYSTEM:
        if model.startswith(_DEVELOPER_ROLE_PREFIXES):
            return "developer"
        return "system"
    if role is ChatRole.USER:
        return "user"
    if role is ChatRole.CHATBOT:
        return "assistant"
    return "tool"


def parse_usage(usage: dict[str, Any] | None) -> dict[str, int]:
    """Normalize an OpenAI ``usage`` object into tracker keys."""
    if not usage:
        return {}
    details = usage.get("prompt_tokens_details") or {}
    return {
        "prompt_tokens": usage.get("prompt_tokens", 0) or 0,
        "cached_tokens": details.get("cached_tokens", 0) or 0,
        "completion_tokens": usage.get("completion_tokens", 0) or 0,
    }


def _serialize_message(message: ChatMessage, model: str) -> dict[str, Any]:
    entry: dict[str, Any] = {"role": role_name(message.role, model)}
    if message.user_name is not None:
        entry["name"] = message.user_name

    if message.function_calls:
        entry["tool_calls"] = [
            {
                "id": call.tool_call_id,
                "type": "function",
                "function": {"name": call.name, "arguments": call.arguments},
            }
            for call in message.function_calls
        ]

    result = message.function_result
    if result is not None and result.tool_call_id is None:
        # No tool call to answer; sent as plain user text
        return {"role": "user", "content": result.value}
    if result is not None and result.name.strip():
        entry["tool_call_id"] = result.tool_call_id
        entry["content"] = result.value
        return entry

    parts: list[dict[str, Any]] = []
    if message.content is not None:
        parts.append({"type": "text", "text": message.content})
    for url in message.image_urls:
        parts.append({"type": "image_url", "image_url": {"url": url}})
    entry["content"] = parts or None
    return entry


class OpenAIProvider(Provider):
    """Chat completions API (``/chat/completions``) and compatible servers."""

    name = "openai"

    def endpoint(self, options: CompletionOptions, stream: bool = False) -> str:
        return f"{self.profile.url.rstrip('/')}/chat/completions"

    def headers(self, options: CompletionOptions) -> dict[str, str]:
        api_key = self.api_key_for(options)
        if not api_key:
            return {}
        return {"Authorization": f"Bearer {api_key}"}

    # ------------------------------------------------------------------
    # Request
    # ------------------------------------------------------------------

    def build_request(
        self,
        messages: list[ChatMessage],
        options: CompletionOptions,
        user_tracking_id: str | None = None,
        stream: bool = False,
        include_usage: bool = False,
    ) -> dict[str, Any]:
        model = self.model_for(options)
        payload: dict[str, Any] = {
            "model": model,
            "messages": [_serialize_message(m, model) for m in messages],
        }

        user = user_tracking_id or options.user_tracking_id
        if user is not None:
            payload["user"] = user

        optional = {
            "max_completion_tokens": options.max_output_tokens,
            "seed": options.seed,
            "temperature": options.temperature,
            "top_p": options.top_p,
            "frequency_penalty": options.frequency_penalty,
            "presence_penalty": options.presence_penalty,
        }
        payload.update({k: v for k, v in optional.items() if v is not None})

        if options.reasoning_effort and options.reasoning_effort != "none":
            payload["reasoning_effort"] = options.reasoning_effort
        if options.verbosity and options.verbosity != "medium":
            payload["verbosity"] = options.verbosity

        if options.response_type is not None:
            payload["response_format"] = serialize_response_format(
                options.response_type, use_openai_features=True,
            )
        elif options.json_mode:
            payload["response_format"] = {"type": "json_object"}

        has_functions = len(options.functions) > 0
        if has_functions and (
            not options.parallel_function_calling or options.strict_function_calling
        ):
            payload["parallel_tool_calls"] = False

        if options.store_outputs:
            payload["store"] = True
        if options.stop_words:
            payload["stop"] = list(options.stop_words)

        if has_functions:
            tools = [
                {"type": "function", "function": schema}
                for schema in options.functions.schemas(
                    use_openai_features=True,
                    strict=options.strict_function_calling,
                )
            ]
            if tools:
                payload["tools"] = tools

        if stream:
            payload["stream"] = True
            if include_usage:
                payload["stream_options"] = {"include_usage": True}

        return self._apply_extra_params(payload)

    # ------------------------------------------------------------------
    # Responses
    # ------------------------------------------------------------------

    def parse_response(self, data: dict[str, Any]) -> LLMResponse:
        choices = data.get("choices") or []
        choice = choices[0] if choices else {}
        message = choice.get("message") or {}

        calls: list[FunctionCall] = []
        for tc in message.get("tool_calls") or []:
            if tc.get("type", "function") != "function":
                continue
            func = tc.get("function") or {}
            calls.append(FunctionCall(
                name=func.get("name", ""),
                arguments=func.get("arguments") or "{}",
                tool_call_id=tc.get("id"),
            ))

        return LLMResponse(
            content=message.get("content"),
            function_calls=calls,
            finish_reason=choice.get("finish_reason") or "",
            usage=parse_usage(data.get("usage")),
            model=data.get("model", ""),
            raw_response=data,
        )

    def decode_stream_line(self, line: str) -> list[StreamDelta]:
        line = line.strip()
        if not line.startswith("data:"):
            return []
        data_str = line[5:].strip()
        if data_str == "[DONE]":
            return [StreamDelta(done=True)]

        try:
            data = json.loads(data_str)
        except json.JSONDecodeError:
            _logger.debug("Skipping undecodable stream frame: %s", data_str[:200])
            return []

        deltas: list[StreamDelta] = []
        if data.get("usage"):
            deltas.append(StreamDelta(usage=parse_usage(data["usage"])))

        choices = data.get("choices") or []
        if not choices:
            return deltas
        delta = choices[0].get("delta") or {}

        if delta.get("content"):
            deltas.append(StreamDelta(text=delta["content"]))

        for tc in delta.get("tool_calls") or []:
            func = tc.get("function") or {}
            deltas.append(StreamDelta(
                tool_call_id=tc.get("id"),
                function_name=func.get("name") or None,
                arguments=func.get("arguments") or None,
            ))
        return deltas
