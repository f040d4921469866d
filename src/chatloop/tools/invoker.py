"""Invoke bound callbacks with model-supplied JSON arguments.

Arguments are matched to the callback's parameters by normalized name and
coerced with pydantic.  Any problem with the arguments, or any exception
raised by the callback, is returned as an ``"Error: ..."`` string so the
conversation can continue.
"""

from __future__ import annotations

import enum
import inspect
import json
import logging
from typing import Any, Callable

from pydantic import TypeAdapter, ValidationError

from chatloop.tools.base import (
    ChatFunction,
    FunctionContext,
    FunctionParameter,
    callback_signature,
    is_context_annotation,
    split_annotated,
    split_optional,
)
from chatloop.tools.naming import name_key, to_snake_lower

_logger = logging.getLogger(__name__)

SUCCESS_RESULT = '{"is_success":true}'

_ANY_ADAPTER: TypeAdapter[Any] = TypeAdapter(Any)


class ArgumentError(ValueError):
    """Model-supplied arguments cannot be bound to the callback."""


def is_error_result(value: str) -> bool:
    return value.lstrip().lower().startswith("error:")


def format_result(value: Any) -> str:
    """Render a callback return value as function-result text."""
    if value is None:
        return SUCCESS_RESULT
    if isinstance(value, str):
        return value
    return _ANY_ADAPTER.dump_json(value).decode()


# ---------------------------------------------------------------------------
# Argument decoding
# ---------------------------------------------------------------------------

def decode_arguments(arguments: str | None) -> dict[str, Any]:
    if not arguments or not arguments.strip():
        return {}
    try:
        data = json.loads(arguments)
    except json.JSONDecodeError as exc:
        raise ArgumentError(f"Arguments are not valid JSON ({exc.msg}).") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ArgumentError("Arguments must be a JSON object.")
    return data


def _coerce_enum(enum_type: type[enum.Enum], value: Any) -> enum.Enum:
    for member in enum_type:
        if member.value == value:
            return member
    if isinstance(value, str):
        wanted = name_key(value)
        for member in enum_type:
            if member.name.lower() == value.lower() or name_key(member.name) == wanted:
                return member
            if isinstance(member.value, str) and member.value.lower() == value.lower():
                return member
            if to_snake_lower(member.name) == value:
                return member
    raise ArgumentError(f"'{value}' is not a valid {enum_type.__name__}.")


def coerce_value(annotation: Any, value: Any) -> Any:
    """Coerce a decoded JSON value to *annotation*."""
    inner, _ = split_annotated(annotation)
    if inner is Any or inner is inspect.Parameter.empty:
        return value

    base, nullable = split_optional(inner)
    if value is None and nullable:
        return None
    if inspect.isclass(base) and issubclass(base, enum.Enum):
        return _coerce_enum(base, value)

    try:
        return TypeAdapter(inner).validate_python(value)
    except ValidationError as exc:
        errors = exc.errors()
        detail = errors[0]["msg"] if errors else str(exc)
        raise ArgumentError(detail) from exc


def _coerce_argument(name: str, annotation: Any, value: Any) -> Any:
    try:
        return coerce_value(annotation, value)
    except ArgumentError as exc:
        raise ArgumentError(
            f"Invalid value for parameter '{to_snake_lower(name)}': {exc}"
        ) from exc


def bind_arguments(
    callback: Callable[..., Any],
    arguments: str | None,
    context: FunctionContext | None = None,
    parameters: list[FunctionParameter] | None = None,
) -> tuple[list[Any], dict[str, Any]]:
    """Build ``(args, kwargs)`` for *callback* from serialized *arguments*.

    *parameters* is the function's explicit parameter list, if any.  Its
    types apply to unannotated callback parameters, and a callback taking
    ``**kwargs`` receives every argument no named parameter consumed, keyed
    by the explicit parameter's name where one matches.
    """
    decoded = decode_arguments(arguments)
    provided = {name_key(k): v for k, v in decoded.items()}
    raw_names = {name_key(k): k for k in decoded}
    explicit = {name_key(p.name): p for p in parameters or []}

    args: list[Any] = []
    kwargs: dict[str, Any] = {}
    consumed: set[str] = set()
    accepts_kwargs = False
    for p in callback_signature(callback).parameters.values():
        if p.kind is p.VAR_KEYWORD:
            accepts_kwargs = True
            continue
        if p.kind is p.VAR_POSITIONAL:
            continue

        if is_context_annotation(p.annotation):
            value = context if context is not None else FunctionContext()
        else:
            key = name_key(p.name)
            annotation = p.annotation
            if annotation is p.empty and key in explicit:
                annotation = explicit[key].type
            if key in provided:
                consumed.add(key)
                value = _coerce_argument(p.name, annotation, provided[key])
            elif p.default is not p.empty:
                if p.kind is p.POSITIONAL_ONLY:
                    args.append(p.default)
                continue
            elif split_optional(split_annotated(annotation)[0])[1]:
                value = None
            else:
                raise ArgumentError(
                    f"Missing required parameter '{to_snake_lower(p.name)}'."
                )

        if p.kind is p.POSITIONAL_ONLY:
            args.append(value)
        else:
            kwargs[p.name] = value
            consumed.add(name_key(p.name))

    if not accepts_kwargs:
        return args, kwargs

    for key, value in provided.items():
        if key in consumed:
            continue
        spec = explicit.get(key)
        if spec is None:
            kwargs[raw_names[key]] = value
        else:
            kwargs[spec.name] = _coerce_argument(spec.name, spec.type, value)
    for key, spec in explicit.items():
        if spec.required and key not in consumed and key not in provided:
            raise ArgumentError(
                f"Missing required parameter '{to_snake_lower(spec.name)}'."
            )
    return args, kwargs


# ---------------------------------------------------------------------------
# Invocation
# ---------------------------------------------------------------------------

async def invoke_function(
    function: ChatFunction,
    arguments: str | None,
    context: FunctionContext | None = None,
) -> str:
    """Run *function*'s bound callback and return the function-result text."""
    if function.callback is None:
        raise ValueError(f"Function '{function.name}' has no bound callback.")

    try:
        args, kwargs = bind_arguments(
            function.callback, arguments, context, function.parameters,
        )
    except ArgumentError as exc:
        _logger.info("Rejected arguments for %r: %s", function.name, exc)
        return f"Error: {exc}"

    try:
        result = function.callback(*args, **kwargs)
        if inspect.isawaitable(result):
            result = await result
    except Exception as exc:
        _logger.exception("Function %r raised", function.name)
        return f"Error: {type(exc).__name__}: {exc}"

    return format_result(result)
