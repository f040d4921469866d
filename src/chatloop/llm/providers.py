"""Provider dialects.

A :class:`Provider` knows how to turn a prepared message list into a wire
request for one vendor API and how to decode that API's buffered and
streamed responses.  It performs no I/O itself.
"""

from __future__ import annotations

import abc
import logging
from typing import Any

from chatloop.config import ProviderProfile
from chatloop.options import CompletionOptions
from chatloop.types import ChatMessage, LLMResponse, StreamDelta

_logger = logging.getLogger(__name__)


class Provider(abc.ABC):
    """Base class for provider dialects."""

    name: str = ""
    # Message pipeline switches
    replace_system_role: bool = False
    merge_consecutive: bool = False

    def __init__(self, profile: ProviderProfile) -> None:
        self.profile = profile

    def model_for(self, options: CompletionOptions) -> str:
        return options.model or self.profile.model

    def api_key_for(self, options: CompletionOptions) -> str:
        return options.api_key or self.profile.api_key

    @abc.abstractmethod
    def endpoint(self, options: CompletionOptions, stream: bool = False) -> str:
        """Absolute URL for a (streamed) completion request."""

    @abc.abstractmethod
    def headers(self, options: CompletionOptions) -> dict[str, str]:
        ...

    @abc.abstractmethod
    def build_request(
        self,
        messages: list[ChatMessage],
        options: CompletionOptions,
        user_tracking_id: str | None = None,
        stream: bool = False,
        include_usage: bool = False,
    ) -> dict[str, Any]:
        """Build the request body from already-prepared *messages*."""

    @abc.abstractmethod
    def parse_response(self, data: dict[str, Any]) -> LLMResponse:
        ...

    @abc.abstractmethod
    def decode_stream_line(self, line: str) -> list[StreamDelta]:
        """Decode one line of a streamed body into zero or more deltas."""

    def _apply_extra_params(self, payload: dict[str, Any]) -> dict[str, Any]:
        if self.profile.extra_params:
            payload.update(self.profile.extra_params)
        return payload


def get_provider(profile: ProviderProfile) -> Provider:
    """Instantiate the dialect named by ``profile.provider``."""
    from chatloop.llm.gemini import GeminiProvider
    from chatloop.llm.openai import OpenAIProvider

    providers: dict[str, type[Provider]] = {
        OpenAIProvider.name: OpenAIProvider,
        GeminiProvider.name: GeminiProvider,
    }
    provider_cls = providers.get(profile.provider.lower())
    if provider_cls is None:
        raise ValueError(
            f"Unknown provider: {profile.provider}. "
            f"Available: {', '.join(sorted(providers))}"
        )
    _logger.debug("Using %s provider at %s", provider_cls.name, profile.url)
    return provider_cls(profile)
