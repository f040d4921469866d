"""Function registry keyed by normalized name."""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterator

from chatloop.tools.base import ChatFunction
from chatloop.tools.naming import name_key
from chatloop.tools.schema import serialize_function

_logger = logging.getLogger(__name__)


class FunctionRegistry:
    """Registered :class:`ChatFunction` objects.

    Lookup is case- and separator-insensitive (``AddNumbers`` finds
    ``add_numbers``); registering a colliding name replaces the earlier
    function.
    """

    def __init__(self) -> None:
        self._functions: dict[str, ChatFunction] = {}

    def register(self, function: ChatFunction) -> ChatFunction:
        key = name_key(function.name)
        if key in self._functions:
            _logger.debug("Replacing registered function %r", function.name)
        self._functions[key] = function
        return function

    def get(self, name: str) -> ChatFunction | None:
        """Look up a function by name."""
        return self._functions.get(name_key(name))

    def remove(self, target: ChatFunction | str | Callable[..., Any]) -> bool:
        """Remove by function object, name or bound callback.

        Returns ``True`` when something was removed.
        """
        if isinstance(target, ChatFunction):
            key = name_key(target.name)
            if self._functions.get(key) is target:
                del self._functions[key]
                return True
            return False

        if isinstance(target, str):
            return self._functions.pop(name_key(target), None) is not None

        keys = [k for k, f in self._functions.items() if f.callback == target]
        for key in keys:
            del self._functions[key]
        return bool(keys)

    def clear(self) -> None:
        self._functions.clear()

    def list_functions(self) -> list[ChatFunction]:
        """Return all registered functions, in registration order."""
        return list(self._functions.values())

    def function_names(self) -> list[str]:
        return [f.name for f in self._functions.values()]

    def schemas(
        self, use_openai_features: bool = True, strict: bool = False,
    ) -> list[dict[str, Any]]:
        """Serialized schemas for every registered function."""
        return [
            serialize_function(f, use_openai_features, strict)
            for f in self._functions.values()
        ]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name_key(name) in self._functions

    def __iter__(self) -> Iterator[ChatFunction]:
        return iter(list(self._functions.values()))

    def __len__(self) -> int:
        return len(self._functions)
