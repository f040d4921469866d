"""Function schema serializer.

Turns a :class:`ChatFunction` into the JSON-schema object providers
expect in their ``tools`` / ``function_declarations`` arrays.

Dialect flags:

``use_openai_features``
    Emit ``additionalProperties`` on object schemas (Gemini rejects it).
``strict``
    Mark functions as ``strict`` when every parameter is required.
"""

from __future__ import annotations

import collections.abc
import dataclasses
import enum
import inspect
import types
import typing
import uuid
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Literal, NewType

from pydantic import BaseModel, TypeAdapter
from pydantic_core import PydanticSerializationError

from chatloop.tools.base import (
    ChatFunction,
    FunctionParameter,
    param_info,
    split_annotated,
    split_optional,
)
from chatloop.tools.naming import to_snake_lower

# ---------------------------------------------------------------------------
# Narrow numeric kinds
# ---------------------------------------------------------------------------

Int8 = NewType("Int8", int)
UInt8 = NewType("UInt8", int)
Int16 = NewType("Int16", int)
UInt16 = NewType("UInt16", int)
UInt = NewType("UInt", int)
Char = NewType("Char", str)

# Python type -> (schema type, descriptive note)
_TYPE_TABLE: dict[Any, tuple[str, str | None]] = {
    bool: ("boolean", None),
    int: ("integer", None),
    float: ("number", None),
    Decimal: ("number", "decimal number"),
    str: ("string", None),
    bytes: ("string", "base64-encoded bytes"),
    Int8: ("integer", "8-bit signed integer from -128 to 127"),
    UInt8: ("integer", "8-bit unsigned integer from 0 to 255"),
    Int16: ("integer", "16-bit signed integer from -32,768 to 32,767"),
    UInt16: ("integer", "16-bit unsigned integer from 0 to 65,535"),
    UInt: ("integer", "unsigned integer, greater than or equal to 0"),
    Char: ("string", "single character"),
    uuid.UUID: ("string", "UUID separated by hyphens xxxxxxxx-xxxx-xxxx-xxxx-xxxxxxxxxxxx"),
    datetime: ("string", "date and time in ISO 8601 format yyyy-mm-ddThh:mm:ss"),
    date: ("string", "date in ISO 8601 format yyyy-mm-dd"),
    time: ("string", "time in ISO 8601 format hh:mm:ss"),
    timedelta: ("string", "time interval in ISO 8601 duration format or seconds"),
}

_SEQUENCE_ORIGINS = {
    list, tuple, set, frozenset,
    collections.abc.Sequence, collections.abc.MutableSequence,
    collections.abc.Set, collections.abc.MutableSet,
    collections.abc.Iterable, collections.abc.Collection,
}
_MAPPING_ORIGINS = {
    dict, collections.abc.Mapping, collections.abc.MutableMapping,
}

_ANY_ADAPTER: TypeAdapter[Any] = TypeAdapter(Any)


def enum_choices(enum_type: type[enum.Enum]) -> list[str]:
    """Closed value set for an Enum: string values, else snake-cased member names."""
    members = list(enum_type)
    if members and all(isinstance(m.value, str) for m in members):
        return [m.value for m in members]
    return [to_snake_lower(m.name) for m in members]


def _lookup(annotation: Any) -> tuple[str, str | None] | None:
    try:
        return _TYPE_TABLE.get(annotation)
    except TypeError:  # unhashable annotation
        return None


def _is_object_type(annotation: Any) -> bool:
    if not inspect.isclass(annotation):
        return False
    return (
        dataclasses.is_dataclass(annotation)
        or issubclass(annotation, BaseModel)
        or typing.is_typeddict(annotation)
    )


# ---------------------------------------------------------------------------
# Type serialization
# ---------------------------------------------------------------------------

def serialize_type(
    annotation: Any,
    use_openai_features: bool = True,
    _seen: frozenset[Any] = frozenset(),
) -> dict[str, Any]:
    """Serialize a Python annotation into a JSON-schema fragment."""
    inner, _ = split_annotated(annotation)
    inner, _ = split_optional(inner)

    if inner is Any or inner is inspect.Parameter.empty:
        return {"type": "string"}

    known = _lookup(inner)
    if known is not None:
        type_name, note = known
        schema: dict[str, Any] = {"type": type_name}
        if note:
            schema["description"] = note
        return schema

    origin = typing.get_origin(inner)
    args = typing.get_args(inner)

    if origin is Literal:
        return _serialize_literal(args)

    if origin is typing.Union or origin is types.UnionType:
        return {
            "anyOf": [serialize_type(a, use_openai_features, _seen) for a in args],
        }

    if inspect.isclass(inner) and issubclass(inner, enum.Enum):
        return {"type": "string", "enum": enum_choices(inner)}

    if origin in _MAPPING_ORIGINS or inner is dict:
        schema = {"type": "object"}
        if len(args) == 2:
            schema["additionalProperties"] = serialize_type(
                args[1], use_openai_features, _seen,
            )
        return schema

    if origin in _SEQUENCE_ORIGINS or inner in (list, tuple, set, frozenset):
        item = args[0] if args else Any
        return {
            "type": "array",
            "items": serialize_type(item, use_openai_features, _seen),
        }

    if _is_object_type(inner):
        if inner in _seen:
            return {"type": "object"}
        return _serialize_object(inner, use_openai_features, _seen | {inner})

    return {"type": "object"}


def _serialize_literal(values: tuple[Any, ...]) -> dict[str, Any]:
    if values and all(isinstance(v, bool) for v in values):
        return {"type": "boolean", "enum": list(values)}
    if values and all(isinstance(v, int) and not isinstance(v, bool) for v in values):
        return {"type": "integer", "enum": list(values)}
    return {"type": "string", "enum": [str(v) for v in values]}


def _object_fields(cls: type) -> list[tuple[str, Any, str | None]]:
    """Return ``(name, annotation, description)`` for each declared field."""
    if issubclass(cls, BaseModel):
        return [
            (name, info.annotation, info.description)
            for name, info in cls.model_fields.items()
        ]

    try:
        hints = typing.get_type_hints(cls, include_extras=True)
    except (NameError, TypeError):
        hints = dict(getattr(cls, "__annotations__", {}))

    if dataclasses.is_dataclass(cls):
        return [
            (f.name, hints.get(f.name, Any), f.metadata.get("description"))
            for f in dataclasses.fields(cls)
            if f.init
        ]
    return [(name, hint, None) for name, hint in hints.items()]


def _serialize_object(
    cls: type, use_openai_features: bool, seen: frozenset[Any],
) -> dict[str, Any]:
    properties: dict[str, Any] = {}
    required: list[str] = []

    for field_name, annotation, description in _object_fields(cls):
        name = to_snake_lower(field_name)
        prop = serialize_type(annotation, use_openai_features, seen)
        if description is None:
            description, _ = param_info(split_annotated(annotation)[1])
        if description:
            prop["description"] = description
        properties[name] = prop
        required.append(name)

    schema: dict[str, Any] = {"type": "object"}
    if not properties:
        return schema
    schema["properties"] = properties
    schema["required"] = required
    if use_openai_features:
        schema["additionalProperties"] = False
    return schema


# ---------------------------------------------------------------------------
# Function serialization
# ---------------------------------------------------------------------------

def _json_default(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        choices = enum_choices(type(value))
        return choices[list(type(value)).index(value)]
    try:
        return _ANY_ADAPTER.dump_python(value, mode="json")
    except PydanticSerializationError:
        return str(value)


def serialize_parameter(
    parameter: FunctionParameter, use_openai_features: bool = True,
) -> dict[str, Any]:
    schema = serialize_type(parameter.type, use_openai_features)

    description = parameter.description
    if description is None:
        description, _ = param_info(split_annotated(parameter.type)[1])

    if parameter.enum_values:
        values: list[str] = []
        for raw in parameter.enum_values:
            value = to_snake_lower(raw)
            if value and value not in values:
                values.append(value)
        schema = {"type": "string", "enum": values}

    if description:
        schema["description"] = description
    if parameter.default is not None:
        schema["default"] = _json_default(parameter.default)
    return schema


def serialize_function(
    function: ChatFunction,
    use_openai_features: bool = True,
    strict: bool = False,
) -> dict[str, Any]:
    """Serialize *function* into ``{"name", "description", "parameters", "strict"}``."""
    properties: dict[str, Any] = {}
    required: list[str] = []
    all_required = True

    for parameter in function.schema_parameters:
        name = to_snake_lower(parameter.name)
        if not name:
            continue
        properties[name] = serialize_parameter(parameter, use_openai_features)
        if parameter.required:
            required.append(name)
        else:
            all_required = False

    is_strict = strict and all_required

    parameters: dict[str, Any] = {"type": "object", "properties": properties}
    if use_openai_features:
        parameters["additionalProperties"] = not is_strict
    if required:
        parameters["required"] = required

    result: dict[str, Any] = {"name": to_snake_lower(function.name)}
    description = function.effective_description
    if description and description.strip():
        result["description"] = description
    if is_strict:
        result["strict"] = True
    if properties:
        result["parameters"] = parameters
    return result


def serialize_response_format(
    response_type: type, use_openai_features: bool = True,
) -> dict[str, Any]:
    """Strict JSON-schema response format for a dataclass / pydantic model."""
    name = to_snake_lower(response_type.__name__)[:64]
    return {
        "type": "json_schema",
        "json_schema": {
            "name": name,
            "schema": serialize_type(response_type, use_openai_features),
            "strict": True,
        },
    }
