"""Tests for function reflection and schema serialization."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date
from typing import Annotated, Literal, Optional

import pytest
from pydantic import BaseModel, Field

from chatloop.tools.base import ChatFunction, FunctionContext, FunctionParameter, Param
from chatloop.tools.schema import (
    UInt8,
    serialize_function,
    serialize_response_format,
    serialize_type,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class Unit(enum.Enum):
    CELSIUS = 1
    FAHRENHEIT = 2


class Color(enum.Enum):
    RED = "red"
    GREEN = "green"


@dataclass
class Address:
    street: str
    zip_code: int = field(metadata={"description": "Postal code"})


class Person(BaseModel):
    full_name: str = Field(description="Given and family name")
    age: int


def add_numbers(a: int, b: int) -> int:
    """Add two numbers.

    Longer explanation that is not part of the description.
    """
    return a + b


# ---------------------------------------------------------------------------
# Type table
# ---------------------------------------------------------------------------

class TestSerializeType:
    def test_primitives(self):
        assert serialize_type(bool) == {"type": "boolean"}
        assert serialize_type(int) == {"type": "integer"}
        assert serialize_type(float) == {"type": "number"}
        assert serialize_type(str) == {"type": "string"}

    def test_narrow_kind_has_note(self):
        schema = serialize_type(UInt8)
        assert schema["type"] == "integer"
        assert "0 to 255" in schema["description"]

    def test_date_has_format_note(self):
        schema = serialize_type(date)
        assert schema["type"] == "string"
        assert "yyyy-mm-dd" in schema["description"]

    def test_optional_unwrapped(self):
        assert serialize_type(Optional[int]) == {"type": "integer"}
        assert serialize_type(int | None) == {"type": "integer"}

    def test_list(self):
        assert serialize_type(list[str]) == {"type": "array", "items": {"type": "string"}}

    def test_bare_list_items_default_to_string(self):
        assert serialize_type(list) == {"type": "array", "items": {"type": "string"}}

    def test_mapping_as_additional_properties(self):
        assert serialize_type(dict[str, float]) == {
            "type": "object",
            "additionalProperties": {"type": "number"},
        }

    def test_enum_with_int_values_uses_member_names(self):
        assert serialize_type(Unit) == {"type": "string", "enum": ["celsius", "fahrenheit"]}

    def test_enum_with_string_values(self):
        assert serialize_type(Color) == {"type": "string", "enum": ["red", "green"]}

    def test_literal(self):
        assert serialize_type(Literal["a", "b"]) == {"type": "string", "enum": ["a", "b"]}

    def test_dataclass(self):
        schema = serialize_type(Address)
        assert schema["type"] == "object"
        assert schema["properties"]["zip_code"] == {
            "type": "integer", "description": "Postal code",
        }
        assert schema["required"] == ["street", "zip_code"]
        assert schema["additionalProperties"] is False

    def test_dataclass_without_openai_features(self):
        assert "additionalProperties" not in serialize_type(Address, use_openai_features=False)

    def test_pydantic_model(self):
        schema = serialize_type(Person)
        assert schema["properties"]["full_name"]["description"] == "Given and family name"
        assert schema["properties"]["age"] == {"type": "integer"}

    def test_nested_list_of_objects(self):
        schema = serialize_type(list[Address])
        assert schema["items"]["type"] == "object"


# ---------------------------------------------------------------------------
# Reflection
# ---------------------------------------------------------------------------

class TestReflection:
    def test_required_unless_default_or_nullable(self):
        def f(a: int, b: int = 2, c: Optional[str] = None, d: str | None = None): ...

        fn = ChatFunction.from_callback(f)
        required = {p.name: p.required for p in fn.schema_parameters}
        assert required == {"a": True, "b": False, "c": False, "d": False}

    def test_param_marker_forces_optional(self):
        def f(note: Annotated[str, Param("A note", required=False)]): ...

        (param,) = ChatFunction.from_callback(f).schema_parameters
        assert param.required is False
        assert param.description == "A note"

    def test_context_parameter_skipped(self):
        def f(city: str, ctx: FunctionContext): ...

        fn = ChatFunction.from_callback(f)
        assert [p.name for p in fn.schema_parameters] == ["city"]
        assert fn.context_parameters == ["ctx"]

    def test_docstring_summary_as_description(self):
        fn = ChatFunction.from_callback(add_numbers)
        assert fn.effective_description == "Add two numbers."

    def test_explicit_description_wins(self):
        fn = ChatFunction.from_callback(add_numbers, description="Sum.")
        assert fn.effective_description == "Sum."

    def test_lambda_needs_name(self):
        with pytest.raises(ValueError):
            ChatFunction.from_callback(lambda x: x)

    def test_empty_name_rejected(self):
        with pytest.raises(ValueError):
            ChatFunction(name="  ")

    def test_explicit_parameters_take_precedence(self):
        fn = ChatFunction(
            name="f",
            callback=add_numbers,
            parameters=[FunctionParameter("x", int)],
        )
        assert [p.name for p in fn.schema_parameters] == ["x"]


# ---------------------------------------------------------------------------
# Function schemas
# ---------------------------------------------------------------------------

class TestSerializeFunction:
    def test_reflected_callback(self):
        schema = serialize_function(ChatFunction.from_callback(add_numbers, name="addNumbers"))
        assert schema == {
            "name": "add_numbers",
            "description": "Add two numbers.",
            "parameters": {
                "type": "object",
                "properties": {"a": {"type": "integer"}, "b": {"type": "integer"}},
                "additionalProperties": True,
                "required": ["a", "b"],
            },
        }

    def test_required_set_and_strict(self):
        fn = ChatFunction(name="bookRoom", parameters=[
            FunctionParameter("roomCode", str),
            FunctionParameter("guestCount", int),
            FunctionParameter("Note", str, required=False),
        ])
        schema = serialize_function(fn, strict=True)
        assert schema["parameters"]["required"] == ["room_code", "guest_count"]
        assert "strict" not in schema
        assert schema["parameters"]["additionalProperties"] is True

    def test_strict_when_all_required(self):
        fn = ChatFunction(name="f", parameters=[FunctionParameter("a", int)])
        schema = serialize_function(fn, strict=True)
        assert schema["strict"] is True
        assert schema["parameters"]["additionalProperties"] is False

    def test_strict_off_never_sets_flag(self):
        fn = ChatFunction(name="f", parameters=[FunctionParameter("a", int)])
        assert "strict" not in serialize_function(fn, strict=False)

    def test_enum_values_closed_and_normalized(self):
        fn = ChatFunction(name="f", parameters=[
            FunctionParameter("unit", str, enum_values=["Celsius", "Fahrenheit", "celsius"]),
        ])
        prop = serialize_function(fn)["parameters"]["properties"]["unit"]
        assert prop == {"type": "string", "enum": ["celsius", "fahrenheit"]}

    def test_gemini_dialect_omits_additional_properties(self):
        fn = ChatFunction(name="f", parameters=[FunctionParameter("a", int)])
        schema = serialize_function(fn, use_openai_features=False)
        assert "additionalProperties" not in schema["parameters"]

    def test_no_parameters_omits_parameters(self):
        schema = serialize_function(ChatFunction(name="ping"))
        assert schema == {"name": "ping"}

    def test_default_emitted(self):
        def f(unit: Unit = Unit.CELSIUS, limit: int = 10): ...

        props = serialize_function(ChatFunction.from_callback(f))["parameters"]["properties"]
        assert props["unit"]["default"] == "celsius"
        assert props["limit"]["default"] == 10

    def test_structured_defaults_are_json(self):
        fn = ChatFunction(name="f", parameters=[
            FunctionParameter("ids", list[int], required=False, default=[1, 2]),
            FunctionParameter("weights", dict[str, float], required=False, default={"a": 0.5}),
            FunctionParameter("home", Address, required=False, default=Address("Main St", 1234)),
            FunctionParameter("on", date, required=False, default=date(2024, 3, 5)),
        ])
        props = serialize_function(fn)["parameters"]["properties"]
        assert props["ids"]["default"] == [1, 2]
        assert props["weights"]["default"] == {"a": 0.5}
        assert props["home"]["default"] == {"street": "Main St", "zip_code": 1234}
        assert props["on"]["default"] == "2024-03-05"

    def test_parameter_description(self):
        fn = ChatFunction(name="f", parameters=[
            FunctionParameter("city", str, description="City name"),
        ])
        prop = serialize_function(fn)["parameters"]["properties"]["city"]
        assert prop == {"type": "string", "description": "City name"}


class TestResponseFormat:
    def test_strict_json_schema(self):
        fmt = serialize_response_format(Person)
        assert fmt["type"] == "json_schema"
        assert fmt["json_schema"]["name"] == "person"
        assert fmt["json_schema"]["strict"] is True
        assert fmt["json_schema"]["schema"]["required"] == ["full_name", "age"]
