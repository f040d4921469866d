"""Function descriptors exposed to the model.

A :class:`ChatFunction` is described either by an explicit list of
:class:`FunctionParameter` objects or by a bound callback.  Callbacks are
reflected once, at registration time, into the same parameter objects so
that the schema serializer only ever deals with data.
"""

from __future__ import annotations

import inspect
import types
import typing
from dataclasses import dataclass, field
from typing import Any, Callable

from chatloop.tools.naming import to_snake_lower

_NO_DEFAULT = inspect.Parameter.empty


# ---------------------------------------------------------------------------
# Parameter metadata
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Param:
    """Per-parameter metadata for reflected callbacks.

    Usage::

        async def book(room: Annotated[str, Param("Room code")],
                       note: Annotated[str, Param(required=False)] = ""): ...

    ``required=False`` marks a parameter optional even without a default;
    ``required=True`` forces it required even with one.
    """

    description: str | None = None
    required: bool | None = None


@dataclass
class FunctionParameter:
    """Explicit description of one function parameter.

    ``type`` is a Python annotation (``int``, ``list[str]``, a dataclass,
    an ``Enum`` subclass, ...).  ``enum_values`` closes the value space to a
    fixed set of strings.
    """

    name: str
    type: Any = str
    description: str | None = None
    required: bool = True
    enum_values: list[str] = field(default_factory=list)
    default: Any = None


@dataclass
class FunctionContext:
    """Injected into callback parameters annotated with this type.

    Such parameters are never part of the function schema.
    """

    function_call: Any = None
    conversation: Any = None
    data: Any = None


# ---------------------------------------------------------------------------
# Annotation helpers
# ---------------------------------------------------------------------------

def split_annotated(annotation: Any) -> tuple[Any, list[Any]]:
    """Return ``(inner_type, metadata)`` for ``Annotated[...]``, else ``(annotation, [])``."""
    if typing.get_origin(annotation) is typing.Annotated:
        inner, *metadata = typing.get_args(annotation)
        return inner, list(metadata)
    return annotation, []


def split_optional(annotation: Any) -> tuple[Any, bool]:
    """Strip ``None`` from ``X | None`` / ``Optional[X]``; report whether it was nullable."""
    origin = typing.get_origin(annotation)
    if origin is typing.Union or origin is types.UnionType:
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        nullable = len(args) != len(typing.get_args(annotation))
        if not nullable:
            return annotation, False
        if len(args) == 1:
            return args[0], True
        return typing.Union[tuple(args)], True
    return annotation, False


def param_info(metadata: list[Any]) -> tuple[str | None, bool | None]:
    """Extract ``(description, required)`` from ``Annotated`` metadata."""
    description: str | None = None
    required: bool | None = None
    for item in metadata:
        if isinstance(item, Param):
            if item.description is not None:
                description = item.description
            if item.required is not None:
                required = item.required
        elif isinstance(item, str):
            description = item
        elif getattr(item, "description", None):
            # pydantic.Field(description=...) and similar
            description = item.description
    return description, required


def is_context_annotation(annotation: Any) -> bool:
    inner, _ = split_annotated(annotation)
    inner, _ = split_optional(inner)
    return inspect.isclass(inner) and issubclass(inner, FunctionContext)


def callback_signature(callback: Callable[..., Any]) -> inspect.Signature:
    try:
        return inspect.signature(callback, eval_str=True)
    except (NameError, TypeError, SyntaxError):
        # Unresolvable forward references: fall back to raw annotations.
        return inspect.signature(callback)


def _docstring_summary(callback: Callable[..., Any]) -> str | None:
    doc = inspect.getdoc(callback)
    if not doc:
        return None
    return doc.split("\n\n", 1)[0].strip() or None


def reflect_parameters(
    callback: Callable[..., Any],
) -> tuple[list[FunctionParameter], list[str]]:
    """Reflect *callback* into ``(schema_parameters, context_parameter_names)``."""
    parameters: list[FunctionParameter] = []
    context_names: list[str] = []

    for p in callback_signature(callback).parameters.values():
        if p.kind in (p.VAR_POSITIONAL, p.VAR_KEYWORD):
            continue
        annotation = Any if p.annotation is _NO_DEFAULT else p.annotation
        if is_context_annotation(annotation):
            context_names.append(p.name)
            continue

        inner, metadata = split_annotated(annotation)
        _, nullable = split_optional(inner)
        description, forced = param_info(metadata)
        has_default = p.default is not _NO_DEFAULT

        if forced is not None:
            required = forced
        else:
            required = not has_default and not nullable

        parameters.append(FunctionParameter(
            name=p.name,
            type=annotation,
            description=description,
            required=required,
            default=p.default if has_default else None,
        ))
    return parameters, context_names


# ---------------------------------------------------------------------------
# Function descriptor
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class ChatFunction:
    """A function the model may call.

    Explicit ``parameters`` take precedence over the callback's reflected
    signature when both are present.  Without a callback, calls are routed
    to ``CompletionOptions.default_function_callback``.
    """

    name: str
    description: str | None = None
    callback: Callable[..., Any] | None = None
    parameters: list[FunctionParameter] | None = None
    requires_double_check: bool = False

    reflected_parameters: list[FunctionParameter] = field(
        default_factory=list, init=False, repr=False,
    )
    context_parameters: list[str] = field(
        default_factory=list, init=False, repr=False,
    )
    callback_description: str | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        if not to_snake_lower(self.name):
            raise ValueError("Function name must not be empty.")
        if self.parameters is not None:
            self.parameters = list(self.parameters)
        if self.callback is not None:
            self.reflected_parameters, self.context_parameters = reflect_parameters(
                self.callback,
            )
            self.callback_description = _docstring_summary(self.callback)

    @classmethod
    def from_callback(
        cls,
        callback: Callable[..., Any],
        name: str | None = None,
        description: str | None = None,
        requires_double_check: bool = False,
    ) -> ChatFunction:
        name = name or getattr(callback, "__name__", "")
        if name == "<lambda>":
            raise ValueError("Lambda callbacks need an explicit function name.")
        return cls(
            name=name,
            description=description,
            callback=callback,
            requires_double_check=requires_double_check,
        )

    @property
    def schema_parameters(self) -> list[FunctionParameter]:
        if self.parameters is not None:
            return self.parameters
        return self.reflected_parameters

    @property
    def effective_description(self) -> str | None:
        if self.description is not None:
            return self.description
        return self.callback_description
