"""
Prompt composition.

Provides the PromptComposer orchestrator, condition evaluation and the
post-processing pipeline.
"""

from .composer import (
    ComponentCycleError,
    CompositionDepthError,
    CompositionError,
    CompositionState,
    PromptComposer,
    ValidationReport,
)
from .conditions import evaluate_condition, parse_value
from .postprocess import (
    PROCESSORS,
    PostProcessor,
    ProcessorRegistry,
    check_required_sections,
    format_code_blocks,
    optimize_length,
    remove_duplicates,
    validate_markdown,
)

__all__ = [
    "ComponentCycleError",
    "CompositionDepthError",
    "CompositionError",
    "CompositionState",
    "PROCESSORS",
    "PostProcessor",
    "ProcessorRegistry",
    "PromptComposer",
    "ValidationReport",
    "check_required_sections",
    "evaluate_condition",
    "format_code_blocks",
    "optimize_length",
    "parse_value",
    "remove_duplicates",
    "validate_markdown",
]
