"""
Pipe transformations for the variable resolver.

Each built-in transformation is a member of the Transformation enum and is
bound to its implementation in TRANSFORMATIONS. Aliases such as
``uppercase`` or ``kebab-case`` map onto the canonical member.
"""

import base64
import hashlib
import json
import re
from enum import Enum
from typing import Any, Callable, Optional

from .expressions import is_blank, stringify


class Transformation(str, Enum):
    """Built-in transformations usable as ``${value | name(args)}``."""
    UPPER = "upper"
    LOWER = "lower"
    CAPITALIZE = "capitalize"
    CAMEL_CASE = "camelCase"
    PASCAL_CASE = "pascalCase"
    SNAKE_CASE = "snakeCase"
    KEBAB_CASE = "kebabCase"
    TRIM = "trim"
    TRUNCATE = "truncate"
    REPLACE = "replace"
    PREFIX = "prefix"
    SUFFIX = "suffix"
    INDENT = "indent"
    JSON = "json"
    BASE64 = "base64"
    MD5 = "md5"
    ESCAPE = "escape"
    DEFAULT = "default"

    @classmethod
    def lookup(cls, name: str) -> Optional["Transformation"]:
        """Find a transformation by name or alias."""
        if name in _ALIASES:
            return _ALIASES[name]
        try:
            return cls(name)
        except ValueError:
            return None


_ALIASES = {
    "uppercase": Transformation.UPPER,
    "lowercase": Transformation.LOWER,
    "snake_case": Transformation.SNAKE_CASE,
    "kebab-case": Transformation.KEBAB_CASE,
}


def capitalize_words(text: str) -> str:
    """Uppercase the first letter of each space-separated word."""
    if not text:
        return ""
    return " ".join(word[:1].upper() + word[1:].lower() for word in text.split(" "))


def to_camel_case(text: str) -> str:
    return re.sub(
        r"[-_\s]+(.)?",
        lambda m: m.group(1).upper() if m.group(1) else "",
        text,
    )


def to_pascal_case(text: str) -> str:
    camel = to_camel_case(text)
    return camel[:1].upper() + camel[1:]


def to_snake_case(text: str) -> str:
    result = re.sub(r"[A-Z]", lambda m: f"_{m.group(0).lower()}", text)
    result = re.sub(r"[-\s]+", "_", result)
    return re.sub(r"^_", "", result).lower()


def to_kebab_case(text: str) -> str:
    result = re.sub(r"[A-Z]", lambda m: f"-{m.group(0).lower()}", text)
    result = re.sub(r"[_\s]+", "-", result)
    return re.sub(r"^-", "", result).lower()


def escape_string(text: str) -> str:
    """Escape backslash, double quote, newline, CR and tab."""
    return (
        text.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )


def _int_arg(args: list[Any], default: int) -> int:
    if not args or is_blank(args[0]):
        return default
    try:
        return int(args[0])
    except (TypeError, ValueError):
        return default


def _truncate(value: Any, args: list[Any]) -> str:
    text = stringify(value)
    length = _int_arg(args, 50)
    return text[:length] + "..." if len(text) > length else text


def _replace(value: Any, args: list[Any]) -> Any:
    if len(args) < 2:
        return value
    pattern, replacement = stringify(args[0]), stringify(args[1])
    return re.sub(pattern, lambda _: replacement, stringify(value))


def _prefix(value: Any, args: list[Any]) -> Any:
    return stringify(args[0]) + stringify(value) if args else value


def _suffix(value: Any, args: list[Any]) -> Any:
    return stringify(value) + stringify(args[0]) if args else value


def _indent(value: Any, args: list[Any]) -> str:
    pad = " " * _int_arg(args, 2)
    return "\n".join(pad + line for line in stringify(value).split("\n"))


def _json(value: Any, args: list[Any]) -> str:
    try:
        return json.dumps(value, indent=_int_arg(args, 2), default=str)
    except (TypeError, ValueError):
        return stringify(value)


def _md5(value: Any, args: list[Any]) -> str:
    # Fingerprint only, never used for security.
    return hashlib.md5(stringify(value).encode("utf-8"), usedforsecurity=False).hexdigest()


def _default(value: Any, args: list[Any]) -> Any:
    if not is_blank(value):
        return value
    return args[0] if args else ""


TransformFunc = Callable[[Any, list[Any]], Any]

TRANSFORMATIONS: dict[Transformation, TransformFunc] = {
    Transformation.UPPER: lambda v, a: stringify(v).upper(),
    Transformation.LOWER: lambda v, a: stringify(v).lower(),
    Transformation.CAPITALIZE: lambda v, a: capitalize_words(stringify(v)),
    Transformation.CAMEL_CASE: lambda v, a: to_camel_case(stringify(v)),
    Transformation.PASCAL_CASE: lambda v, a: to_pascal_case(stringify(v)),
    Transformation.SNAKE_CASE: lambda v, a: to_snake_case(stringify(v)),
    Transformation.KEBAB_CASE: lambda v, a: to_kebab_case(stringify(v)),
    Transformation.TRIM: lambda v, a: stringify(v).strip(),
    Transformation.TRUNCATE: _truncate,
    Transformation.REPLACE: _replace,
    Transformation.PREFIX: _prefix,
    Transformation.SUFFIX: _suffix,
    Transformation.INDENT: _indent,
    Transformation.JSON: _json,
    Transformation.BASE64: lambda v, a: base64.b64encode(stringify(v).encode("utf-8")).decode("ascii"),
    Transformation.MD5: _md5,
    Transformation.ESCAPE: lambda v, a: escape_string(stringify(v)),
    Transformation.DEFAULT: _default,
}


def apply_builtin(transformation: Transformation, value: Any, args: list[Any]) -> Any:
    """Apply a built-in transformation to a value."""
    return TRANSFORMATIONS[transformation](value, args)
