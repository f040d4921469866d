"""Gemini ``generateContent`` dialect.

Gemini has no system role and rejects consecutive turns from the same
author, so the pipeline's role-substitution and merge steps are enabled.
Function calls carry no correlation id; results are matched by name.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from chatloop.llm.providers import Provider
from chatloop.options import CompletionOptions
from chatloop.tools.naming import name_key
from chatloop.tools.schema import serialize_type
from chatloop.types import (
    ChatMessage,
    ChatRole,
    FunctionCall,
    LLMResponse,
    StreamDelta,
)

_logger = logging.getLogger(__name__)


def role_name(role: ChatRole) -> str:
    if role is ChatRole.CHATBOT:
        return "model"
    return "user"


def parse_usage(metadata: dict[str, Any] | None) -> dict[str, int]:
    if not metadata:
        return {}
    return {
        "prompt_tokens": metadata.get("promptTokenCount", 0) or 0,
        "cached_tokens": metadata.get("cachedContentTokenCount", 0) or 0,
        "completion_tokens": metadata.get("candidatesTokenCount", 0) or 0,
    }


def _message_parts(message: ChatMessage) -> list[dict[str, Any]]:
    parts: list[dict[str, Any]] = []
    if message.content:
        parts.append({"text": message.content})
    for call in message.function_calls:
        parts.append({
            "functionCall": {"name": call.name, "args": call.parsed_arguments()},
        })
    if not parts:
        parts.append({"text": message.content or ""})
    return parts


def build_contents(messages: list[ChatMessage]) -> list[dict[str, Any]]:
    """Serialize messages into ``contents``; consecutive results share one turn.

    A result whose name matches no earlier function call is sent as a user
    text part, since Gemini rejects a ``functionResponse`` without one.
    """
    contents: list[dict[str, Any]] = []
    called: set[str] = set()
    previous_was_result = False

    for message in messages:
        result = message.function_result
        if result is not None and result.name.strip():
            if name_key(result.name) not in called:
                text = {"text": result.value}
                if contents and contents[-1]["role"] == "user" and not previous_was_result:
                    contents[-1]["parts"].append(text)
                else:
                    contents.append({"role": "user", "parts": [text]})
                previous_was_result = False
                continue

            part = {
                "functionResponse": {
                    "name": result.name,
                    "response": {"name": result.name, "content": result.value},
                },
            }
            if previous_was_result:
                contents[-1]["parts"].append(part)
            else:
                contents.append({"role": "user", "parts": [part]})
            previous_was_result = True
            continue

        previous_was_result = False
        called.update(name_key(call.name) for call in message.function_calls)
        contents.append({
            "role": role_name(message.role),
            "parts": _message_parts(message),
        })
    return contents


class GeminiProvider(Provider):
    """Google Gemini ``generateContent`` / ``streamGenerateContent`` API."""

    name = "gemini"
    replace_system_role = True
    merge_consecutive = True

    def endpoint(self, options: CompletionOptions, stream: bool = False) -> str:
        base = f"{self.profile.url.rstrip('/')}/models/{self.model_for(options)}"
        if stream:
            return f"{base}:streamGenerateContent?alt=sse"
        return f"{base}:generateContent"

    def headers(self, options: CompletionOptions) -> dict[str, str]:
        api_key = self.api_key_for(options)
        if not api_key:
            return {}
        return {"x-goog-api-key": api_key}

    # ------------------------------------------------------------------
    # Request
    # ------------------------------------------------------------------

    def _generation_config(self, options: CompletionOptions) -> dict[str, Any]:
        optional = {
            "maxOutputTokens": options.max_output_tokens,
            "temperature": options.temperature,
            "topP": options.top_p,
            "seed": options.seed,
            "frequencyPenalty": options.frequency_penalty,
            "presencePenalty": options.presence_penalty,
        }
        config = {k: v for k, v in optional.items() if v is not None}
        if options.stop_words:
            config["stopSequences"] = list(options.stop_words)
        if options.response_type is not None:
            config["responseMimeType"] = "application/json"
            config["responseSchema"] = serialize_type(
                options.response_type, use_openai_features=False,
            )
        elif options.json_mode:
            config["responseMimeType"] = "application/json"
        return config

    def build_request(
        self,
        messages: list[ChatMessage],
        options: CompletionOptions,
        user_tracking_id: str | None = None,
        stream: bool = False,
        include_usage: bool = False,
    ) -> dict[str, Any]:
        if any(m.image_urls for m in messages):
            _logger.debug("Image URLs are not sent to Gemini; only text parts are")

        payload: dict[str, Any] = {"contents": build_contents(messages)}

        if len(options.functions) > 0:
            declarations = options.functions.schemas(
                use_openai_features=False, strict=False,
            )
            if declarations:
                payload["tools"] = [{"function_declarations": declarations}]

        generation_config = self._generation_config(options)
        if generation_config:
            payload["generationConfig"] = generation_config

        return self._apply_extra_params(payload)

    # ------------------------------------------------------------------
    # Responses
    # ------------------------------------------------------------------

    @staticmethod
    def _candidate_parts(data: dict[str, Any]) -> tuple[list[dict[str, Any]], str]:
        candidates = data.get("candidates") or []
        if not candidates:
            return [], ""
        candidate = candidates[0]
        parts = (candidate.get("content") or {}).get("parts") or []
        return parts, candidate.get("finishReason") or ""

    def parse_response(self, data: dict[str, Any]) -> LLMResponse:
        parts, finish_reason = self._candidate_parts(data)

        texts: list[str] = []
        calls: list[FunctionCall] = []
        for part in parts:
            function_call = part.get("functionCall") or {}
            if function_call.get("name"):
                calls.append(FunctionCall(
                    name=function_call["name"],
                    arguments=json.dumps(function_call.get("args") or {}),
                    tool_call_id=function_call.get("id"),
                ))
            elif part.get("text") is not None and not part.get("thought"):
                texts.append(part["text"])

        return LLMResponse(
            content="".join(texts) if texts else None,
            function_calls=calls,
            finish_reason=finish_reason,
            usage=parse_usage(data.get("usageMetadata")),
            model=data.get("modelVersion", ""),
            raw_response=data,
        )

    def decode_stream_line(self, line: str) -> list[StreamDelta]:
        line = line.strip()
        if not line.startswith("data:"):
            return []
        try:
            data = json.loads(line[5:].strip())
        except json.JSONDecodeError:
            _logger.debug("Skipping undecodable stream frame: %s", line[:200])
            return []

        parts, finish_reason = self._candidate_parts(data)
        deltas: list[StreamDelta] = []
        for part in parts:
            function_call = part.get("functionCall") or {}
            if function_call.get("name"):
                deltas.append(StreamDelta(
                    tool_call_id=function_call.get("id"),
                    function_name=function_call["name"],
                    arguments=json.dumps(function_call.get("args") or {}),
                ))
            elif part.get("text") and not part.get("thought"):
                deltas.append(StreamDelta(text=part["text"]))

        # usageMetadata is cumulative; only the final frame is counted
        if finish_reason and data.get("usageMetadata"):
            deltas.append(StreamDelta(usage=parse_usage(data["usageMetadata"])))
        return deltas
