"""Name normalization for functions, parameters and enum members."""

from __future__ import annotations

import re

_WHITESPACE = re.compile(r"[\s\-]+")
_NON_ALNUM = re.compile(r"[\W_]+")


def to_snake_lower(name: str) -> str:
    """Convert ``addNumbers`` / ``Add Numbers`` / ``add-numbers`` to ``add_numbers``.

    Runs of capitals are kept together (``HTTPRequest`` -> ``httprequest``)
    and repeated underscores collapse to one.
    """
    if not name or not name.strip():
        return ""
    text = _WHITESPACE.sub("_", name.strip())

    out: list[str] = []
    prev_upper = False
    prev_underscore = False
    for i, ch in enumerate(text):
        if ch.isupper():
            if i > 0 and not prev_upper and not prev_underscore:
                out.append("_")
            out.append(ch.lower())
            prev_upper = True
            prev_underscore = False
        elif ch == "_":
            if not prev_underscore:
                out.append(ch)
            prev_underscore = True
            prev_upper = False
        else:
            out.append(ch)
            prev_underscore = False
            prev_upper = False
    return "".join(out)


def name_key(name: str) -> str:
    """Case- and separator-insensitive lookup key (``add_numbers`` == ``AddNumbers``)."""
    return _NON_ALNUM.sub("", name or "").lower()


def names_match(a: str, b: str) -> bool:
    return name_key(a) == name_key(b)
