"""
Expression helpers shared by the variable resolver and condition evaluation.

Covers splitting expressions on top-level separators, literal parsing,
dotted/indexed path lookup and rendering of resolved values as text.
"""

import json
import re
from collections.abc import Mapping, Sequence
from typing import Any


_PATH_TOKEN = re.compile(r"\[(\d+)\]|([^.\[\]]+)")
_INT_LITERAL = re.compile(r"-?\d+")
_FLOAT_LITERAL = re.compile(r"-?\d+\.\d+")

_KEYWORD_LITERALS = {
    "true": True,
    "false": False,
    "null": None,
    "undefined": None,
}


class _NotALiteral:
    """Sentinel type returned by parse_literal for non-literal text."""

    def __repr__(self) -> str:
        return "NOT_A_LITERAL"


NOT_A_LITERAL = _NotALiteral()


def split_top_level(text: str, separator: str) -> list[str]:
    """Split text on a single-character separator outside quotes and brackets.

    Example:
        >>> split_top_level('join(items, ", ") | upper', "|")
        ['join(items, ", ") ', ' upper']
    """
    parts: list[str] = []
    current: list[str] = []
    quote = ""
    depth = 0

    for char in text:
        if quote:
            current.append(char)
            if char == quote:
                quote = ""
            continue

        if char in ("'", '"'):
            quote = char
        elif char in "([":
            depth += 1
        elif char in ")]" and depth > 0:
            depth -= 1
        elif char == separator and depth == 0:
            parts.append("".join(current))
            current = []
            continue

        current.append(char)

    parts.append("".join(current))
    return parts


def is_quoted(text: str) -> bool:
    """Check whether text is wrapped in matching single or double quotes."""
    return len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"')


def parse_literal(text: str) -> Any:
    """Parse a literal token.

    Recognizes quoted strings, integers, floats and the keywords
    true/false/null/undefined.

    Returns:
        The literal value, or NOT_A_LITERAL when text is an expression.
    """
    token = text.strip()
    if is_quoted(token):
        return token[1:-1]
    if token in _KEYWORD_LITERALS:
        return _KEYWORD_LITERALS[token]
    if _INT_LITERAL.fullmatch(token):
        return int(token)
    if _FLOAT_LITERAL.fullmatch(token):
        return float(token)
    return NOT_A_LITERAL


def get_path(context: Any, path: str) -> Any:
    """Look up a dotted path with optional array indices.

    Supports ``a.b.c``, ``items[0]``, ``users[1].name`` and numeric
    segments on sequences (``items.0``).

    Returns:
        The value found, or None when any segment is missing.
    """
    current = context
    for index, name in _PATH_TOKEN.findall(path.strip()):
        if current is None:
            return None

        if index:
            if isinstance(current, Sequence) and not isinstance(current, str):
                position = int(index)
                current = current[position] if position < len(current) else None
            else:
                return None
        elif isinstance(current, Mapping):
            current = current.get(name.strip())
        elif isinstance(current, Sequence) and not isinstance(current, str) and name.isdigit():
            position = int(name)
            current = current[position] if position < len(current) else None
        else:
            return None

    return current


def stringify(value: Any) -> str:
    """Render a resolved value as template text.

    None renders as an empty string, booleans as ``true``/``false``,
    sequences are comma-joined and mappings are emitted as JSON.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping):
        return json.dumps(value, default=str)
    if isinstance(value, (list, tuple)):
        return ",".join(stringify(item) for item in value)
    return str(value)


def is_blank(value: Any) -> bool:
    """True for None and the empty string."""
    return value is None or value == ""
