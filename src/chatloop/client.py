"""High-level client bound to one provider profile."""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Iterable

import httpx

from chatloop.config import ProviderProfile, load_config
from chatloop.core.orchestrator import Orchestrator
from chatloop.llm.providers import Provider, get_provider
from chatloop.llm.transport import RetryingTransport
from chatloop.options import CompletionOptions
from chatloop.tools.base import ChatFunction, FunctionParameter
from chatloop.types import Conversation, TokenUsageTracker

_logger = logging.getLogger(__name__)


class ChatClient:
    """Convenience facade over :class:`Orchestrator`.

    Usage::

        async with ChatClient.from_config() as client:
            @client.function
            def get_weather(city: str) -> str: ...

            print(await client.complete("What's the weather in Oslo?"))

    Options passed to :meth:`complete` / :meth:`stream_complete` replace
    the client's ``default_options`` for that call.
    """

    def __init__(
        self,
        profile: ProviderProfile | None = None,
        default_options: CompletionOptions | None = None,
        http_client: httpx.AsyncClient | None = None,
        usage_tracker: TokenUsageTracker | None = None,
    ) -> None:
        self.profile = profile or ProviderProfile()
        self.default_options = default_options or CompletionOptions(
            max_attempts=self.profile.max_attempts,
        )
        self.provider: Provider = get_provider(self.profile)
        self._transport = RetryingTransport(http_client, timeout=self.profile.timeout)
        self._orchestrator = Orchestrator(self.provider, self._transport, usage_tracker)

    @classmethod
    def from_config(
        cls,
        path: str | Path | None = None,
        profile: str | None = None,
        **kwargs: Any,
    ) -> ChatClient:
        """Build a client from the YAML config (active or named *profile*)."""
        config = load_config(path)
        if profile is not None:
            if profile not in config.profiles:
                raise ValueError(
                    f"Unknown profile: {profile}. "
                    f"Available: {', '.join(config.profiles)}"
                )
            config.profile = profile
        _logger.info("Using profile %r (%s)", config.profile, config.active_profile.provider)
        return cls(config.active_profile, **kwargs)

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def _conversation(
        self, prompt: Conversation | str, system_message: str | None,
    ) -> Conversation:
        if isinstance(prompt, Conversation):
            return prompt
        conversation = Conversation()
        if system_message:
            conversation.from_system(system_message)
        conversation.from_user(prompt)
        return conversation

    async def complete(
        self,
        prompt: Conversation | str,
        options: CompletionOptions | None = None,
        system_message: str | None = None,
        usage_tracker: TokenUsageTracker | None = None,
    ) -> str:
        """Buffered completion; a string prompt starts a fresh conversation."""
        return await self._orchestrator.complete(
            self._conversation(prompt, system_message),
            options or self.default_options,
            usage_tracker,
        )

    async def stream_complete(
        self,
        prompt: Conversation | str,
        options: CompletionOptions | None = None,
        system_message: str | None = None,
        usage_tracker: TokenUsageTracker | None = None,
    ) -> AsyncIterator[str]:
        """Streamed completion, yielding text fragments."""
        async for fragment in self._orchestrator.stream_complete(
            self._conversation(prompt, system_message),
            options or self.default_options,
            usage_tracker,
        ):
            yield fragment

    def with_options(self, **changes: Any) -> CompletionOptions:
        """Copy of the default options with *changes* applied (functions shared)."""
        return dataclasses.replace(self.default_options, **changes)

    # ------------------------------------------------------------------
    # Registration (delegates to default_options)
    # ------------------------------------------------------------------

    def add_function(
        self,
        function: ChatFunction | str | Callable[..., Any],
        callback: Callable[..., Any] | None = None,
        *,
        description: str | None = None,
        parameters: Iterable[FunctionParameter] | None = None,
        requires_double_check: bool = False,
    ) -> ChatFunction:
        return self.default_options.add_function(
            function,
            callback,
            description=description,
            parameters=parameters,
            requires_double_check=requires_double_check,
        )

    def function(self, callback: Callable[..., Any] | None = None, **kwargs: Any) -> Any:
        return self.default_options.function(callback, **kwargs)

    def remove_function(self, target: ChatFunction | str | Callable[..., Any]) -> bool:
        return self.default_options.remove_function(target)

    def clear_functions(self) -> None:
        self.default_options.clear_functions()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        await self._transport.close()

    async def __aenter__(self) -> ChatClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
