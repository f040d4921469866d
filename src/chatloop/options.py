"""Per-request completion options and the function registration surface."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Iterable, overload

from chatloop.tools.base import ChatFunction, FunctionParameter
from chatloop.tools.registry import FunctionRegistry
from chatloop.types import ChatMessage

MessageHook = Callable[[ChatMessage], "Awaitable[None] | None"]
DefaultCallback = Callable[[str, str], Any]


def _unimplemented_callback(name: str, arguments: str) -> Any:
    raise NotImplementedError("Function callback has not been implemented.")


@dataclass
class CompletionOptions:
    """Configuration for one orchestration call.

    ``None`` sampling fields are left out of the request so the provider
    applies its own defaults.  ``model`` / ``api_key`` override the
    client's profile when set.
    """

    model: str | None = None
    api_key: str | None = None
    user_tracking_id: str | None = None
    max_attempts: int = 5
    max_output_tokens: int | None = None

    # Windowing
    message_limit: int | None = None
    character_limit: int | None = None

    # Sampling
    seed: int | None = None
    temperature: float | None = None
    top_p: float | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    reasoning_effort: str | None = None  # "minimal" | "low" | "medium" | "high"
    verbosity: str = "medium"  # "low" | "medium" | "high"

    # Output shape
    response_type: type | None = None
    json_mode: bool = False
    stop_words: list[str] = field(default_factory=list)

    # Function calling
    functions: FunctionRegistry = field(default_factory=FunctionRegistry)
    parallel_function_calling: bool = True
    strict_function_calling: bool = False
    ignore_previous_function_calls: bool = False
    default_function_callback: DefaultCallback = _unimplemented_callback
    function_context: Any = None
    max_recursion: int = 5

    store_outputs: bool = False
    time_aware: bool = False
    time_callback: Callable[[], datetime] = datetime.now
    system_message_callback: Callable[[], str | None] | None = None
    on_message_added: MessageHook | None = None

    debug: bool = False

    # ------------------------------------------------------------------
    # Registration
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
        """Register a function the model may call.

        Accepted forms::

            options.add_function(chat_function)
            options.add_function(get_weather)
            options.add_function("get_weather", get_weather, description="...")
            options.add_function("get_weather", parameters=[FunctionParameter("city")])
            options.add_function("get_weather")  # routed to default_function_callback
        """
        if isinstance(function, ChatFunction):
            return self.functions.register(function)

        if callable(function):
            return self.functions.register(ChatFunction.from_callback(
                function,
                description=description,
                requires_double_check=requires_double_check,
            ))

        if callback is not None:
            return self.functions.register(ChatFunction.from_callback(
                callback,
                name=function,
                description=description,
                requires_double_check=requires_double_check,
            ))

        return self.functions.register(ChatFunction(
            name=function,
            description=description,
            parameters=list(parameters) if parameters is not None else None,
            requires_double_check=requires_double_check,
        ))

    @overload
    def function(self, callback: Callable[..., Any]) -> Callable[..., Any]: ...

    @overload
    def function(
        self,
        callback: None = None,
        *,
        name: str | None = None,
        description: str | None = None,
        requires_double_check: bool = False,
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]: ...

    def function(
        self,
        callback: Callable[..., Any] | None = None,
        *,
        name: str | None = None,
        description: str | None = None,
        requires_double_check: bool = False,
    ) -> Any:
        """Decorator form of :meth:`add_function`; returns the callback unchanged."""

        def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
            self.functions.register(ChatFunction.from_callback(
                fn,
                name=name,
                description=description,
                requires_double_check=requires_double_check,
            ))
            return fn

        if callback is not None:
            return decorator(callback)
        return decorator

    def remove_function(self, target: ChatFunction | str | Callable[..., Any]) -> bool:
        return self.functions.remove(target)

    def clear_functions(self) -> None:
        self.functions.clear()
