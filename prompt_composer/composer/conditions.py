"""
Condition expressions for conditional component inclusion.

Grammar::

    condition  := "!" condition | comparison | path
    comparison := path op literal
    op         := "==" | "!=" | ">=" | "<=" | ">" | "<"

Paths are dotted lookups into the context (``options.cicd``,
``project.languages[0]``). Right-hand sides are literals: ``true``,
``false``, ``null``, ``undefined``, numbers, or quoted strings; anything
else is taken as a bare string.

A bare path is true when its value is truthy in Python, so empty lists and
empty mappings count as false.
"""

import re
from collections.abc import Mapping
from typing import Any

from ..resolver.expressions import get_path


# Two-character operators first so ">=" never parses as ">".
_COMPARISON = re.compile(r"^(.+?)\s*(==|!=|>=|<=|>|<)\s*(.+)$", re.DOTALL)
_NUMERIC = re.compile(r"^-?\d+(\.\d+)?$")


def parse_value(text: str) -> Any:
    """Parse the right-hand side of a comparison."""
    text = text.strip()
    if text == "true":
        return True
    if text == "false":
        return False
    if text in ("null", "undefined"):
        return None
    if re.fullmatch(r"-?\d+", text):
        return int(text)
    if re.fullmatch(r"-?\d+\.\d+", text):
        return float(text)
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
        return text[1:-1]
    return text


def _as_number(value: Any) -> Any:
    """Numeric view of a value, or None when it has none."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str) and _NUMERIC.match(value.strip()):
        return float(value)
    return None


def loose_equals(left: Any, right: Any) -> bool:
    """Equality where numeric strings equal numbers and null equals undefined."""
    if left is None or right is None:
        return left is None and right is None
    if isinstance(left, str) and isinstance(right, str):
        return left == right
    left_number, right_number = _as_number(left), _as_number(right)
    if left_number is not None and right_number is not None:
        return left_number == right_number
    return left == right


def compare(left: Any, operator: str, right: Any) -> bool:
    """Apply a comparison operator.

    Relational operators compare numbers numerically and strings
    lexically; any other pairing evaluates False.
    """
    if operator == "==":
        return loose_equals(left, right)
    if operator == "!=":
        return not loose_equals(left, right)

    if isinstance(left, str) and isinstance(right, str):
        pair = (left, right)
    else:
        pair = (_as_number(left), _as_number(right))
        if pair[0] is None or pair[1] is None:
            return False

    if operator == ">":
        return pair[0] > pair[1]
    if operator == "<":
        return pair[0] < pair[1]
    if operator == ">=":
        return pair[0] >= pair[1]
    if operator == "<=":
        return pair[0] <= pair[1]
    return False


def evaluate_condition(expression: str, context: Mapping) -> bool:
    """Evaluate a condition expression against a context.

    Args:
        expression: e.g. ``options.cicd``, ``!options.docs``, ``count > 3``.
        context: The merged composition context.

    Returns:
        The boolean result. Empty expressions are False.

    Example:
        evaluate_condition("count > 3", {"count": 5})  # True
        evaluate_condition("!options.cicd", {"options": {}})  # True
    """
    expression = expression.strip()
    if not expression:
        return False

    if expression.startswith("!"):
        return not evaluate_condition(expression[1:], context)

    match = _COMPARISON.match(expression)
    if match:
        left = get_path(context, match.group(1).strip())
        right = parse_value(match.group(3))
        return compare(left, match.group(2), right)

    return bool(get_path(context, expression))
