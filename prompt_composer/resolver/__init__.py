"""
Variable resolution for prompt templates.

Provides placeholder substitution with nested lookups, pipe
transformations and built-in functions.
"""

from .engine import (
    BUILTIN_RESOLVERS,
    PLACEHOLDER_PATTERN,
    ResolutionResult,
    VariableResolver,
)
from .expressions import get_path, parse_literal, split_top_level, stringify
from .transforms import TRANSFORMATIONS, Transformation

__all__ = [
    "BUILTIN_RESOLVERS",
    "PLACEHOLDER_PATTERN",
    "ResolutionResult",
    "VariableResolver",
    "TRANSFORMATIONS",
    "Transformation",
    "get_path",
    "parse_literal",
    "split_top_level",
    "stringify",
]
