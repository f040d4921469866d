"""Function descriptors, schema serialization and invocation."""

from chatloop.tools.base import ChatFunction, FunctionContext, FunctionParameter, Param
from chatloop.tools.invoker import format_result, invoke_function, is_error_result
from chatloop.tools.naming import name_key, names_match, to_snake_lower
from chatloop.tools.registry import FunctionRegistry
from chatloop.tools.schema import (
    Char,
    Int8,
    Int16,
    UInt,
    UInt8,
    UInt16,
    serialize_function,
    serialize_response_format,
)

__all__ = [
    "ChatFunction",
    "Char",
    "FunctionContext",
    "FunctionParameter",
    "FunctionRegistry",
    "Int8",
    "Int16",
    "Param",
    "UInt",
    "UInt8",
    "UInt16",
    "format_result",
    "invoke_function",
    "is_error_result",
    "name_key",
    "names_match",
    "serialize_function",
    "serialize_response_format",
    "to_snake_lower",
]
