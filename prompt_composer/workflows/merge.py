"""
Workflow document merging.

Inheritance (``extends``) and ``imports`` combine documents with merge
semantics declared per field instead of inferred from value shapes.
All functions are pure: inputs are never mutated.
"""

import copy
from collections.abc import Mapping
from enum import Enum
from typing import Any, Iterable


class MergeStrategy(Enum):
    """How a child value combines with its parent's value."""
    OVERRIDE = "override"
    CONCAT_UNIQUE = "concat_unique"
    MERGE_MAPPING = "merge_mapping"
    DEEP_MERGE = "deep_merge"


FIELD_STRATEGIES: dict[str, MergeStrategy] = {
    "required": MergeStrategy.CONCAT_UNIQUE,
    "conditional": MergeStrategy.CONCAT_UNIQUE,
    "post_processing": MergeStrategy.CONCAT_UNIQUE,
    "tags": MergeStrategy.CONCAT_UNIQUE,
    "optional": MergeStrategy.MERGE_MAPPING,
    "variables": MergeStrategy.DEEP_MERGE,
}

DEFAULT_STRATEGY = MergeStrategy.OVERRIDE


def concat_unique(first: Iterable[Any], second: Iterable[Any]) -> list[Any]:
    """Concatenate two sequences, keeping the first occurrence of each item.

    Works for unhashable items such as conditional rule mappings.
    """
    result: list[Any] = []
    for item in list(first) + list(second):
        if item not in result:
            result.append(copy.deepcopy(item))
    return result


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively merge two mappings.

    Nested mappings merge key by key, lists concatenate without duplicates
    and any other override value replaces the base value.
    """
    result: dict[str, Any] = copy.deepcopy(dict(base))
    for key, value in override.items():
        current = result.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            result[key] = deep_merge(current, value)
        elif isinstance(value, list) and isinstance(current, list):
            result[key] = concat_unique(current, value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def _merge_field(strategy: MergeStrategy, parent_value: Any, child_value: Any) -> Any:
    if parent_value is None:
        return copy.deepcopy(child_value)
    if child_value is None:
        return copy.deepcopy(parent_value)

    if strategy is MergeStrategy.CONCAT_UNIQUE:
        return concat_unique(_as_list(parent_value), _as_list(child_value))
    if strategy is MergeStrategy.MERGE_MAPPING and isinstance(parent_value, Mapping) and isinstance(child_value, Mapping):
        return {**copy.deepcopy(dict(parent_value)), **copy.deepcopy(dict(child_value))}
    if strategy is MergeStrategy.DEEP_MERGE and isinstance(parent_value, Mapping) and isinstance(child_value, Mapping):
        return deep_merge(parent_value, child_value)
    return copy.deepcopy(child_value)


def _as_list(value: Any) -> list[Any]:
    return list(value) if isinstance(value, (list, tuple)) else [value]


def merge_documents(parent: Mapping[str, Any], child: Mapping[str, Any]) -> dict[str, Any]:
    """Merge a child workflow document over its parent.

    Args:
        parent: The fully resolved parent document.
        child: The child document declaring ``extends``.

    Returns:
        A new document; the ``extends`` key is dropped.
    """
    merged: dict[str, Any] = {}
    for key in list(parent.keys()) + [k for k in child.keys() if k not in parent]:
        if key == "extends":
            continue
        strategy = FIELD_STRATEGIES.get(key, DEFAULT_STRATEGY)
        merged[key] = _merge_field(strategy, parent.get(key), child.get(key))
    return merged


def merge_imports(document: Mapping[str, Any], imported: Iterable[Mapping[str, Any]]) -> dict[str, Any]:
    """Apply imported partial documents to a workflow document.

    Imported ``variables`` act as defaults the workflow can override, and
    imported ``required`` entries come before the workflow's own.
    """
    import_variables: dict[str, Any] = {}
    import_required: list[Any] = []
    for partial in imported:
        if isinstance(partial.get("variables"), Mapping):
            import_variables = deep_merge(import_variables, partial["variables"])
        import_required = concat_unique(import_required, _as_list(partial.get("required") or []))

    result = copy.deepcopy(dict(document))
    result.pop("imports", None)
    if import_variables:
        result["variables"] = deep_merge(import_variables, result.get("variables") or {})
    if import_required:
        result["required"] = concat_unique(import_required, result.get("required") or [])
    return result
