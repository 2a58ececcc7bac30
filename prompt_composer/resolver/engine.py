"""
VariableResolver - substitutes placeholders in prompt templates.

Three interchangeable placeholder syntaxes are supported::

    ${project.name | upper}
    {{ join(items, ", ") }}
    <%= default(version, "1.0.0") %>

Resolution is repeated until the text stops changing so that values may
themselves contain placeholders. A pass cap guards self-referential
variables; hitting it is reported, never raised.
"""

import getpass
import logging
import os
import platform
import re
import socket
import sys
import time
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from ..constants import DEFAULT_MAX_ITERATIONS
from .expressions import (
    NOT_A_LITERAL,
    get_path,
    is_blank,
    parse_literal,
    split_top_level,
    stringify,
)
from .transforms import Transformation, apply_builtin


logger = logging.getLogger(__name__)


PLACEHOLDER_PATTERN = re.compile(r"\$\{([^}]+)\}|\{\{([^}]+)\}\}|<%=\s*([^%]+?)\s*%>")

_FUNCTION_CALL = re.compile(r"(\w+)\((.*)\)", re.DOTALL)
_INDEXED = re.compile(r"(.+?)\[(\d+)\]", re.DOTALL)
_TRANSFORM_CALL = re.compile(r"([\w-]+)(?:\((.*)\))?", re.DOTALL)

# Exceptions treated as a malformed expression rather than a crash.
_EVALUATION_ERRORS = (ValueError, TypeError, KeyError, IndexError, AttributeError, re.error)

Resolver = Callable[[Mapping], Any]
CustomTransformation = Callable[[Any, list[Any], Mapping], Any]
CustomFunction = Callable[[list[Any], Mapping], Any]


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return os.environ.get("USER", os.environ.get("USERNAME", ""))


BUILTIN_RESOLVERS: dict[str, Callable[[], Any]] = {
    "date": lambda: datetime.now().strftime("%Y-%m-%d"),
    "time": lambda: datetime.now().strftime("%H%M%S"),
    "timestamp": lambda: str(int(time.time() * 1000)),
    "datetime": lambda: datetime.now(timezone.utc).isoformat(),
    "year": lambda: datetime.now().strftime("%Y"),
    "month": lambda: datetime.now().strftime("%m"),
    "day": lambda: datetime.now().strftime("%d"),
    "random": lambda: uuid.uuid4().hex[:8],
    "uuid": lambda: str(uuid.uuid4()),
    "hostname": socket.gethostname,
    "platform": lambda: sys.platform,
    "user": _current_user,
    "cwd": os.getcwd,
}

PROCESS_PROPERTIES: dict[str, Callable[[], Any]] = {
    "cwd()": os.getcwd,
    "pid": os.getpid,
    "version": platform.python_version,
    "platform": lambda: sys.platform,
    "arch": platform.machine,
}


@dataclass
class ResolutionResult:
    """Outcome of resolving a template.

    Attributes:
        text: The resolved (possibly partially resolved) text.
        complete: False when the pass cap was hit while text was still
            changing, or when placeholders could not be evaluated.
        iterations: Number of substitution passes performed.
    """
    text: str
    complete: bool
    iterations: int


class VariableResolver:
    """Resolves template placeholders against a context mapping.

    Example:
        resolver = VariableResolver()
        resolver.resolve("Hello ${name | capitalize}", {"name": "ada"})
        # 'Hello Ada'

        resolver.add_transformation("reverse", lambda value, args, ctx: str(value)[::-1])
        resolver.resolve("${word | reverse}", {"word": "abc"})
        # 'cba'
    """

    def __init__(
        self,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        custom_resolvers: Optional[dict[str, Resolver]] = None,
        custom_transformations: Optional[dict[str, CustomTransformation]] = None,
        custom_functions: Optional[dict[str, CustomFunction]] = None,
    ) -> None:
        """Initialize the resolver.

        Args:
            max_iterations: Maximum number of substitution passes.
            custom_resolvers: Named zero-argument values, called with the
                context, e.g. ``{"greeting": lambda ctx: "hi"}``.
            custom_transformations: Pipe transformations called as
                ``fn(value, args, context)``.
            custom_functions: Functions called as ``fn(args, context)``
                with already evaluated arguments.
        """
        self._max_iterations = max_iterations
        self._custom_resolvers: dict[str, Resolver] = dict(custom_resolvers or {})
        self._custom_transformations: dict[str, CustomTransformation] = dict(custom_transformations or {})
        self._custom_functions: dict[str, CustomFunction] = dict(custom_functions or {})

    @property
    def max_iterations(self) -> int:
        """Get the pass cap."""
        return self._max_iterations

    def add_resolver(self, name: str, resolver: Resolver) -> None:
        self._custom_resolvers[name] = resolver

    def add_transformation(self, name: str, transformation: CustomTransformation) -> None:
        self._custom_transformations[name] = transformation

    def add_function(self, name: str, func: CustomFunction) -> None:
        self._custom_functions[name] = func

    def resolve(self, template: str, context: Optional[Mapping] = None) -> str:
        """Resolve all placeholders in a template.

        Unknown variables render as empty strings.

        Args:
            template: Template text.
            context: Values available to expressions.

        Returns:
            The resolved text.
        """
        return self.resolve_with_status(template, context).text

    def resolve_with_status(
        self,
        template: str,
        context: Optional[Mapping] = None,
    ) -> ResolutionResult:
        """Resolve a template and report whether resolution completed.

        Args:
            template: Template text.
            context: Values available to expressions.

        Returns:
            A ResolutionResult with the text and completion flag.
        """
        ctx: Mapping = context if context is not None else {}
        result = template
        iterations = 0
        changed = True

        while changed and iterations < self._max_iterations:
            before = result
            result = PLACEHOLDER_PATTERN.sub(lambda m: self._replace(m, ctx), result)
            changed = result != before
            iterations += 1

        if changed:
            logger.warning(
                f"Maximum variable resolution iterations ({self._max_iterations}) reached. "
                "Some variables may be unresolved."
            )

        complete = not changed and PLACEHOLDER_PATTERN.search(result) is None
        return ResolutionResult(text=result, complete=complete, iterations=iterations)

    def _replace(self, match: re.Match, context: Mapping) -> str:
        expression = next((group for group in match.groups() if group is not None), None)
        if not expression:
            return match.group(0)
        try:
            return self.evaluate_expression(expression.strip(), context)
        except _EVALUATION_ERRORS as e:
            logger.warning(f"Failed to resolve variable '{match.group(0)}': {e}")
            return match.group(0)

    def evaluate_expression(self, expression: str, context: Mapping) -> str:
        """Evaluate an expression including any pipe transformations."""
        parts = [part.strip() for part in split_top_level(expression, "|")]
        value = self.get_value(parts[0], context)

        for transformation in parts[1:]:
            value = self.apply_transformation(value, transformation, context)

        return stringify(value)

    def get_value(self, expression: str, context: Mapping) -> Any:
        """Evaluate a single expression (no pipes) to a raw value."""
        expression = expression.strip()
        if not expression:
            return None

        call = _FUNCTION_CALL.fullmatch(expression)
        if call:
            return self.call_function(call.group(1), call.group(2), context)

        indexed = _INDEXED.fullmatch(expression)
        if indexed:
            base = self.get_value(indexed.group(1), context)
            position = int(indexed.group(2))
            if isinstance(base, (list, tuple)) and position < len(base):
                return base[position]
            return None

        if "." in expression:
            value = get_path(context, expression)
            if value is not None:
                return value
            if expression.startswith("env."):
                return os.environ.get(expression[len("env."):])
            if expression.startswith("process."):
                prop = PROCESS_PROPERTIES.get(expression[len("process."):])
                return prop() if prop else None
            return None

        if expression in BUILTIN_RESOLVERS:
            return BUILTIN_RESOLVERS[expression]()

        if expression in self._custom_resolvers:
            return self._custom_resolvers[expression](context)

        if isinstance(context, Mapping):
            return context.get(expression)

        return None

    def _evaluate_argument(self, argument: str, context: Mapping) -> Any:
        literal = parse_literal(argument)
        if literal is not NOT_A_LITERAL:
            return literal
        return self.get_value(argument, context)

    def _evaluate_arguments(self, raw_args: str, context: Mapping) -> list[Any]:
        if not raw_args.strip():
            return []
        return [self._evaluate_argument(arg, context) for arg in split_top_level(raw_args, ",")]

    def call_function(self, name: str, raw_args: str, context: Mapping) -> Any:
        """Call a built-in or custom function.

        Built-ins: upper, lower, capitalize, trim, length, join, default,
        exists, empty, not, if.

        Returns:
            The function result, or None for unknown functions.
        """
        args = self._evaluate_arguments(raw_args, context)
        first = args[0] if args else None

        if name in ("upper", "lower", "capitalize", "trim"):
            if first is None:
                return None
            return apply_builtin(Transformation(name), first, [])

        if name == "length":
            return len(first) if isinstance(first, (str, list, tuple, dict)) else 0

        if name == "join":
            separator = stringify(args[1]) if len(args) > 1 and args[1] is not None else ","
            if isinstance(first, (list, tuple)):
                return separator.join(stringify(item) for item in first)
            return ""

        if name == "default":
            fallback = args[1] if len(args) > 1 else None
            return fallback if is_blank(first) else first

        if name == "exists":
            return first is not None

        if name == "empty":
            return not first

        if name == "not":
            return not first

        if name == "if":
            then_value = args[1] if len(args) > 1 else None
            else_value = args[2] if len(args) > 2 else None
            return then_value if first else else_value

        if name in self._custom_functions:
            return self._custom_functions[name](args, context)

        return None

    def _transformation_arguments(self, raw_args: Optional[str]) -> list[Any]:
        if raw_args is None or not raw_args.strip():
            return []
        values: list[Any] = []
        for arg in split_top_level(raw_args, ","):
            literal = parse_literal(arg)
            values.append(arg.strip() if literal is NOT_A_LITERAL else literal)
        return values

    def apply_transformation(self, value: Any, transformation: str, context: Mapping) -> Any:
        """Apply one pipe stage such as ``truncate(20)`` to a value.

        Arguments are literals; unquoted non-literal arguments are taken as
        raw text, except for ``default`` which evaluates its fallback as an
        expression. Unknown transformations leave the value unchanged.
        """
        match = _TRANSFORM_CALL.fullmatch(transformation.strip())
        if not match:
            return value

        name, raw_args = match.group(1), match.group(2)
        builtin = Transformation.lookup(name)

        if builtin is Transformation.DEFAULT:
            if not is_blank(value):
                return value
            if raw_args is None or not raw_args.strip():
                return ""
            return self._evaluate_argument(split_top_level(raw_args, ",")[0], context)

        args = self._transformation_arguments(raw_args)

        if builtin is not None:
            return apply_builtin(builtin, value, args)

        if name in self._custom_transformations:
            return self._custom_transformations[name](value, args, context)

        logger.debug(f"Unknown transformation '{name}' ignored")
        return value
