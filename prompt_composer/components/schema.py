"""
Component document schema.

A component is a small reusable YAML document addressed by a slash
separated path such as ``core/session-context``.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Optional


class ComponentError(Exception):
    """Raised when a component document cannot be loaded or is malformed."""

    def __init__(self, message: str, component_path: Optional[str] = None):
        super().__init__(message)
        self.component_path = component_path


class ComponentNotFoundError(ComponentError):
    """Raised when a component document does not exist."""


def _reference_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value]
    return [str(value)]


@dataclass
class Component:
    """A parsed component document.

    Attributes:
        path: The reference the component was loaded by.
        name: Optional display name.
        version: Optional version string, checked against the engine version.
        variables: Bindings merged over the incoming context.
        dependencies: Components loaded before this one resolves.
        includes: Components whose output is prepended to this one.
        content: Template text containing placeholders.
    """
    path: str
    name: Optional[str] = None
    version: Optional[str] = None
    variables: dict[str, Any] = field(default_factory=dict)
    dependencies: list[str] = field(default_factory=list)
    includes: list[str] = field(default_factory=list)
    content: str = ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.name is not None:
            data["name"] = self.name
        if self.version is not None:
            data["version"] = self.version
        if self.variables:
            data["variables"] = dict(self.variables)
        if self.dependencies:
            data["dependencies"] = list(self.dependencies)
        if self.includes:
            data["includes"] = list(self.includes)
        data["content"] = self.content
        return data

    @classmethod
    def from_dict(cls, path: str, data: Any) -> "Component":
        """Build a Component from a parsed document.

        Raises:
            ComponentError: If any field has the wrong shape.
        """
        if data is None:
            data = {}
        if not isinstance(data, Mapping):
            raise ComponentError(f"Component '{path}' must be a mapping", path)

        errors: list[str] = []
        variables = data.get("variables")
        if variables is not None and not isinstance(variables, Mapping):
            errors.append("variables must be a mapping")
        for key in ("dependencies", "includes"):
            value = data.get(key)
            if value is not None and not isinstance(value, (str, list)):
                errors.append(f"{key} must be a component reference or list")
        content = data.get("content")
        if content is not None and not isinstance(content, str):
            errors.append("content must be a string")

        if errors:
            raise ComponentError(f"Invalid component '{path}': {'; '.join(errors)}", path)

        version = data.get("version")
        return cls(
            path=path,
            name=str(data["name"]) if data.get("name") is not None else None,
            version=str(version) if version is not None else None,
            variables=dict(variables or {}),
            dependencies=_reference_list(data.get("dependencies")),
            includes=_reference_list(data.get("includes")),
            content=content or "",
        )

    def references(self) -> list[str]:
        """Dependencies then includes, deduplicated in order."""
        return list(dict.fromkeys(self.dependencies + self.includes))
