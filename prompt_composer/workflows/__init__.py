"""
Workflow definitions for prompt composition.

Provides loading, validation and inheritance resolution of workflow
documents.
"""

from .loader import WorkflowCheck, WorkflowLoader, WorkflowSummary, default_manifest
from .merge import FIELD_STRATEGIES, MergeStrategy, deep_merge, merge_documents, merge_imports
from .schema import (
    ConditionalRule,
    WorkflowDefinition,
    WorkflowError,
    WorkflowNotFoundError,
    WorkflowValidationError,
    validate_metadata,
    validate_workflow_document,
)

__all__ = [
    "ConditionalRule",
    "FIELD_STRATEGIES",
    "MergeStrategy",
    "WorkflowCheck",
    "WorkflowDefinition",
    "WorkflowError",
    "WorkflowLoader",
    "WorkflowNotFoundError",
    "WorkflowSummary",
    "WorkflowValidationError",
    "deep_merge",
    "default_manifest",
    "merge_documents",
    "merge_imports",
    "validate_metadata",
    "validate_workflow_document",
]
