"""
Workflow definition schema and validation.

Provides the WorkflowDefinition dataclass and structural validation for
workflow documents loaded from YAML.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Optional


REQUIRED_METADATA = ("name", "version", "description")


class WorkflowError(Exception):
    """Base class for workflow loading failures."""

    def __init__(self, message: str, workflow_name: Optional[str] = None):
        super().__init__(message)
        self.workflow_name = workflow_name


class WorkflowNotFoundError(WorkflowError):
    """Raised when a workflow document does not exist."""


class WorkflowValidationError(WorkflowError):
    """Raised when a workflow document fails validation."""

    def __init__(
        self,
        message: str,
        errors: Optional[list[str]] = None,
        workflow_name: Optional[str] = None,
    ):
        super().__init__(message, workflow_name)
        self.errors = errors or []


def as_reference_list(value: Any) -> list[str]:
    """Normalize a component reference or list of references to a list."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value]
    return [str(value)]


@dataclass
class ConditionalRule:
    """A conditional component inclusion rule.

    Attributes:
        condition: Expression evaluated against the composition context.
        then: Components included when the condition is true.
        otherwise: Components included when the condition is false.
    """
    condition: str
    then: list[str] = field(default_factory=list)
    otherwise: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"if": self.condition}
        if self.then:
            data["then"] = list(self.then)
        if self.otherwise:
            data["else"] = list(self.otherwise)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ConditionalRule":
        return cls(
            condition=str(data["if"]),
            then=as_reference_list(data.get("then")),
            otherwise=as_reference_list(data.get("else")),
        )


@dataclass
class WorkflowDefinition:
    """A fully resolved workflow (inheritance and imports applied).

    Attributes:
        name: Workflow identifier.
        version: Workflow version string.
        description: Human-readable summary.
        required: Components always included, in order.
        conditional: Conditional inclusion rules, in declaration order.
        optional: Option name to components included when
            ``context["options"][name]`` is truthy.
        post_processing: Post-processor names applied after assembly.
        variables: Values exposed as ``workflow.*`` during resolution.
        tags: Free-form labels used by listings.
        category: Listing category.

    Example:
        workflow = WorkflowDefinition.from_dict({
            "name": "init-memory",
            "version": "1.0.0",
            "description": "Initialize the memory system",
            "required": ["core/session-context"],
            "conditional": [{"if": "options.cicd", "then": "templates/cicd-setup"}],
        })
    """
    name: str
    version: str
    description: str
    required: list[str] = field(default_factory=list)
    conditional: list[ConditionalRule] = field(default_factory=list)
    optional: dict[str, list[str]] = field(default_factory=dict)
    post_processing: list[str] = field(default_factory=list)
    variables: dict[str, Any] = field(default_factory=dict)
    tags: list[str] = field(default_factory=list)
    category: str = "general"

    def to_dict(self) -> dict[str, Any]:
        """Convert the workflow to a plain document."""
        return {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "required": list(self.required),
            "conditional": [rule.to_dict() for rule in self.conditional],
            "optional": {key: list(refs) for key, refs in self.optional.items()},
            "post_processing": list(self.post_processing),
            "variables": dict(self.variables),
            "tags": list(self.tags),
            "category": self.category,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "WorkflowDefinition":
        """Create a WorkflowDefinition from a resolved document.

        Raises:
            KeyError: If a required metadata field is missing.
        """
        return cls(
            name=str(data["name"]),
            version=str(data["version"]),
            description=str(data["description"]),
            required=as_reference_list(data.get("required")),
            conditional=[ConditionalRule.from_dict(rule) for rule in data.get("conditional") or []],
            optional={
                str(key): as_reference_list(value)
                for key, value in (data.get("optional") or {}).items()
            },
            post_processing=[str(name) for name in data.get("post_processing") or []],
            variables=dict(data.get("variables") or {}),
            tags=[str(tag) for tag in data.get("tags") or []],
            category=str(data.get("category") or "general"),
        )

    def component_references(self) -> list[str]:
        """All components the workflow can reference, deduplicated in order."""
        references: list[str] = list(self.required)
        for rule in self.conditional:
            references.extend(rule.then)
            references.extend(rule.otherwise)
        for refs in self.optional.values():
            references.extend(refs)
        return list(dict.fromkeys(references))


def _is_reference(value: Any) -> bool:
    if isinstance(value, str):
        return bool(value.strip())
    return isinstance(value, list) and all(isinstance(item, str) for item in value)


def validate_workflow_document(data: Any) -> tuple[bool, list[str]]:
    """Validate the structure of a raw workflow document.

    Checks shapes only; metadata presence is checked after inheritance
    resolution by validate_metadata.

    Args:
        data: Parsed YAML document.

    Returns:
        A tuple of (is_valid, errors).
    """
    errors: list[str] = []

    if not isinstance(data, Mapping):
        return False, ["Workflow must be a mapping"]

    required = data.get("required")
    if required is not None and not isinstance(required, list):
        errors.append("Required components must be an array")

    conditional = data.get("conditional")
    if conditional is not None:
        if not isinstance(conditional, list):
            errors.append("Conditional must be an array")
        else:
            for index, rule in enumerate(conditional):
                if not isinstance(rule, Mapping):
                    errors.append(f"Conditional {index} must be a mapping")
                    continue
                if not rule.get("if"):
                    errors.append(f"Conditional {index} missing 'if' clause")
                if not rule.get("then") and not rule.get("else"):
                    errors.append(f"Conditional {index} must have 'then' or 'else' clause")
                for clause in ("then", "else"):
                    if rule.get(clause) and not _is_reference(rule[clause]):
                        errors.append(f"Conditional {index} '{clause}' must be a component reference or list")

    optional = data.get("optional")
    if optional is not None:
        if not isinstance(optional, Mapping):
            errors.append("Optional must be a mapping")
        else:
            for key, value in optional.items():
                if not _is_reference(value):
                    errors.append(f"Optional '{key}' must be a component reference or list")

    post_processing = data.get("post_processing")
    if post_processing is not None and not isinstance(post_processing, list):
        errors.append("Post-processing must be an array")

    variables = data.get("variables")
    if variables is not None and not isinstance(variables, Mapping):
        errors.append("Variables must be a mapping")

    extends = data.get("extends")
    if extends is not None and not isinstance(extends, str):
        errors.append("Extends must be a workflow name")

    imports = data.get("imports")
    if imports is not None and not (
        isinstance(imports, list) and all(isinstance(item, str) for item in imports)
    ):
        errors.append("Imports must be an array of document paths")

    return len(errors) == 0, errors


def validate_metadata(data: Mapping[str, Any]) -> list[str]:
    """Return errors for missing name/version/description fields."""
    return [
        f"Workflow must have a {field_name}"
        for field_name in REQUIRED_METADATA
        if data.get(field_name) in (None, "")
    ]
