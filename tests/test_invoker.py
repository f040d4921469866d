"""Tests for callback invocation with model-supplied arguments."""

from __future__ import annotations

import asyncio
import enum
import json
from dataclasses import dataclass
from typing import Optional

import pytest

from chatloop.tools.base import ChatFunction, FunctionContext, FunctionParameter
from chatloop.tools.invoker import (
    SUCCESS_RESULT,
    format_result,
    invoke_function,
    is_error_result,
)


class Unit(enum.Enum):
    CELSIUS = 1
    FAHRENHEIT = 2


@dataclass
class Forecast:
    city: str
    high: int


def _fn(callback) -> ChatFunction:
    return ChatFunction.from_callback(callback)


# ---------------------------------------------------------------------------
# Result formatting
# ---------------------------------------------------------------------------

class TestFormatResult:
    def test_string_passthrough(self):
        assert format_result("4") == "4"

    def test_none_is_success(self):
        assert format_result(None) == SUCCESS_RESULT
        assert json.loads(SUCCESS_RESULT) == {"is_success": True}

    def test_structured_values_serialized(self):
        assert json.loads(format_result(4)) == 4
        assert json.loads(format_result({"a": [1, 2]})) == {"a": [1, 2]}
        assert json.loads(format_result(Forecast("Oslo", 3))) == {"city": "Oslo", "high": 3}

    def test_is_error_result(self):
        assert is_error_result("Error: nope")
        assert is_error_result("error: nope")
        assert not is_error_result("All good")


# ---------------------------------------------------------------------------
# Invocation
# ---------------------------------------------------------------------------

class TestInvokeFunction:
    @pytest.mark.asyncio
    async def test_sync_callback(self):
        def add_numbers(a: int, b: int) -> int:
            return a + b

        assert await invoke_function(_fn(add_numbers), '{"a": 2, "b": 2}') == "4"

    @pytest.mark.asyncio
    async def test_async_callback(self):
        async def greet(name: str) -> str:
            await asyncio.sleep(0)
            return f"Hello {name}"

        assert await invoke_function(_fn(greet), '{"name": "Ada"}') == "Hello Ada"

    @pytest.mark.asyncio
    async def test_arguments_matched_by_normalized_name(self):
        def book(room_code: str, guest_count: int) -> str:
            return f"{room_code}:{guest_count}"

        result = await invoke_function(_fn(book), '{"roomCode": "A1", "GuestCount": "3"}')
        assert result == "A1:3"

    @pytest.mark.asyncio
    async def test_defaults_and_optional(self):
        def search(query: str, limit: int = 5, lang: Optional[str] = None) -> str:
            return f"{query}/{limit}/{lang}"

        assert await invoke_function(_fn(search), '{"query": "x"}') == "x/5/None"

    @pytest.mark.asyncio
    async def test_missing_required(self):
        def add_numbers(a: int, b: int) -> int:
            return a + b

        result = await invoke_function(_fn(add_numbers), '{"a": 1}')
        assert result == "Error: Missing required parameter 'b'."

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        def ping() -> str:
            return "pong"

        result = await invoke_function(_fn(ping), "{not json")
        assert result.startswith("Error: Arguments are not valid JSON")

    @pytest.mark.asyncio
    async def test_empty_arguments(self):
        def ping() -> str:
            return "pong"

        assert await invoke_function(_fn(ping), "") == "pong"

    @pytest.mark.asyncio
    async def test_uncoercible_value(self):
        def square(n: int) -> int:
            return n * n

        result = await invoke_function(_fn(square), '{"n": "many"}')
        assert result.startswith("Error: Invalid value for parameter 'n'")

    @pytest.mark.asyncio
    async def test_enum_by_name_or_value(self):
        def convert(unit: Unit) -> str:
            return unit.name

        assert await invoke_function(_fn(convert), '{"unit": "celsius"}') == "CELSIUS"
        assert await invoke_function(_fn(convert), '{"unit": 2}') == "FAHRENHEIT"
        result = await invoke_function(_fn(convert), '{"unit": "kelvin"}')
        assert is_error_result(result)

    @pytest.mark.asyncio
    async def test_nested_dataclass(self):
        def publish(forecast: Forecast) -> str:
            return f"{forecast.city}={forecast.high}"

        result = await invoke_function(
            _fn(publish), '{"forecast": {"city": "Oslo", "high": 3}}',
        )
        assert result == "Oslo=3"

    @pytest.mark.asyncio
    async def test_callback_exception_becomes_error(self):
        def boom() -> str:
            raise RuntimeError("kaput")

        assert await invoke_function(_fn(boom), "{}") == "Error: RuntimeError: kaput"

    @pytest.mark.asyncio
    async def test_none_result(self):
        def noop() -> None:
            return None

        assert await invoke_function(_fn(noop), "{}") == SUCCESS_RESULT

    @pytest.mark.asyncio
    async def test_context_injected(self):
        seen = {}

        def whoami(ctx: FunctionContext) -> str:
            seen["data"] = ctx.data
            return "ok"

        context = FunctionContext(data={"user": "ada"})
        assert await invoke_function(_fn(whoami), "{}", context) == "ok"
        assert seen["data"] == {"user": "ada"}

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self):
        async def slow() -> str:
            raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await invoke_function(_fn(slow), "{}")


# ---------------------------------------------------------------------------
# Explicit parameters with keyword-collecting callbacks
# ---------------------------------------------------------------------------

class TestKeywordCallbacks:
    @pytest.mark.asyncio
    async def test_kwargs_callback_receives_explicit_parameters(self):
        seen = {}

        def handler(**kwargs):
            seen.update(kwargs)
            return f"weather in {kwargs.get('city')}"

        fn = ChatFunction(
            name="get_weather", callback=handler, parameters=[FunctionParameter("city")],
        )
        assert await invoke_function(fn, '{"city": "Oslo"}') == "weather in Oslo"
        assert seen == {"city": "Oslo"}

    @pytest.mark.asyncio
    async def test_kwargs_keyed_by_declared_name_and_coerced(self):
        seen = {}

        def handler(**kwargs):
            seen.update(kwargs)

        fn = ChatFunction(name="book", callback=handler, parameters=[
            FunctionParameter("roomCode"),
            FunctionParameter("guestCount", int),
        ])
        result = await invoke_function(fn, '{"room_code": "A1", "guest_count": "3"}')
        assert result == SUCCESS_RESULT
        assert seen == {"roomCode": "A1", "guestCount": 3}

    @pytest.mark.asyncio
    async def test_kwargs_missing_required_explicit_parameter(self):
        fn = ChatFunction(
            name="get_weather",
            callback=lambda **kwargs: "never",
            parameters=[FunctionParameter("city")],
        )
        result = await invoke_function(fn, "{}")
        assert result == "Error: Missing required parameter 'city'."

    @pytest.mark.asyncio
    async def test_kwargs_invalid_explicit_value(self):
        fn = ChatFunction(
            name="square",
            callback=lambda **kwargs: kwargs["n"] ** 2,
            parameters=[FunctionParameter("n", int)],
        )
        result = await invoke_function(fn, '{"n": "many"}')
        assert result.startswith("Error: Invalid value for parameter 'n'")

    @pytest.mark.asyncio
    async def test_named_and_extra_arguments(self):
        def handler(city: str, **extra) -> str:
            return f"{city}|{sorted(extra.items())}"

        fn = ChatFunction.from_callback(handler)
        result = await invoke_function(fn, '{"City": "Oslo", "units": "metric"}')
        assert result == "Oslo|[('units', 'metric')]"

    @pytest.mark.asyncio
    async def test_unannotated_parameter_uses_explicit_type(self):
        def square(n):
            return n * n

        fn = ChatFunction(name="square", callback=square, parameters=[FunctionParameter("n", int)])
        assert await invoke_function(fn, '{"n": "4"}') == "16"
