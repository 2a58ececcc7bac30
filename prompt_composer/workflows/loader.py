"""
Workflow loader.

Provides the WorkflowLoader class which reads workflow documents from
``<base_dir>/workflows/``, validates them and resolves ``extends`` and
``imports`` into fully merged WorkflowDefinition objects.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Union

import yaml

from ..components import ComponentError, ComponentLoader
from ..constants import (
    APP_VERSION,
    DOCUMENT_SUFFIXES,
    MANIFEST_FILE_NAME,
    WORKFLOWS_DIR_NAME,
)
from .merge import merge_documents, merge_imports
from .schema import (
    WorkflowDefinition,
    WorkflowError,
    WorkflowNotFoundError,
    WorkflowValidationError,
    validate_metadata,
    validate_workflow_document,
)


logger = logging.getLogger(__name__)


def default_manifest() -> dict[str, Any]:
    """Manifest used when ``manifest.json`` is absent or unreadable."""
    return {"version": "1.0.0", "components": {}, "workflows": {}, "templates": {}}


@dataclass
class WorkflowSummary:
    """Listing entry for a loadable workflow."""
    name: str
    description: str
    version: str
    tags: list[str] = field(default_factory=list)
    category: str = "general"

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "version": self.version,
            "tags": list(self.tags),
            "category": self.category,
        }


@dataclass
class WorkflowCheck:
    """Result of loading one workflow during validate_all()."""
    valid: bool
    error: Optional[str] = None


class WorkflowLoader:
    """Loads and caches workflow definitions.

    Workflows are cached by name once resolved. Inheritance is resolved
    through the same load path, so a parent is cached as well.

    Example:
        loader = WorkflowLoader(Path("templates"))
        workflow = loader.load("init-memory")
        print(workflow.required)

        for summary in loader.list_workflows():
            print(f"{summary.name}: {summary.description}")
    """

    def __init__(
        self,
        base_dir: Union[str, Path],
        component_loader: Optional[ComponentLoader] = None,
    ) -> None:
        """Initialize the loader.

        Args:
            base_dir: Root of the prompt library.
            component_loader: Loader used by export_workflow. Defaults to
                one rooted at ``base_dir``.
        """
        self._base_dir = Path(base_dir)
        self._components = component_loader or ComponentLoader(self._base_dir)
        self._documents: dict[str, dict[str, Any]] = {}
        self._workflows: dict[str, WorkflowDefinition] = {}
        self._loading: list[str] = []
        self._manifest: Optional[dict[str, Any]] = None

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    @property
    def workflows_dir(self) -> Path:
        return self._base_dir / WORKFLOWS_DIR_NAME

    def workflow_path(self, name: str) -> Path:
        """Path of the document for a workflow name."""
        for suffix in DOCUMENT_SUFFIXES:
            path = self.workflows_dir / f"{name}{suffix}"
            if path.exists():
                return path
        return self.workflows_dir / f"{name}{DOCUMENT_SUFFIXES[0]}"

    def workflow_names(self) -> list[str]:
        """Names of all workflow documents, sorted."""
        if not self.workflows_dir.is_dir():
            return []
        names = {
            path.stem
            for path in self.workflows_dir.iterdir()
            if path.is_file() and path.suffix in DOCUMENT_SUFFIXES
        }
        return sorted(names)

    def load(self, name: str) -> WorkflowDefinition:
        """Load a fully resolved workflow.

        Args:
            name: Workflow name (file stem under ``workflows/``).

        Returns:
            The resolved WorkflowDefinition.

        Raises:
            WorkflowNotFoundError: If the workflow or its parent is missing.
            WorkflowValidationError: If the document is malformed or lacks
                metadata after inheritance.
            WorkflowError: For circular inheritance and unreadable files.
        """
        if name in self._workflows:
            return self._workflows[name]

        document = self._load_document(name)

        errors = validate_metadata(document)
        if errors:
            raise WorkflowValidationError(
                f"Invalid workflow '{name}': {'; '.join(errors)}", errors, name
            )

        workflow = WorkflowDefinition.from_dict(document)
        self._workflows[name] = workflow
        logger.debug(f"Loaded workflow: {name}")
        return workflow

    def _load_document(self, name: str) -> dict[str, Any]:
        """Resolve a workflow document with inheritance and imports applied."""
        if name in self._documents:
            return self._documents[name]

        if name in self._loading:
            chain = " -> ".join(self._loading[self._loading.index(name):] + [name])
            raise WorkflowError(f"Circular workflow inheritance: {chain}", name)

        self._loading.append(name)
        try:
            document = self._read_workflow(name, standalone=len(self._loading) == 1)

            parent_name = document.get("extends")
            if parent_name:
                try:
                    parent = self._load_document(parent_name)
                except WorkflowNotFoundError as e:
                    raise WorkflowNotFoundError(
                        f"Parent workflow '{parent_name}' of '{name}' not found: {e}", name
                    ) from e
                document = merge_documents(parent, document)

            imports = document.get("imports")
            if imports:
                document = merge_imports(document, [self._read_import(name, ref) for ref in imports])
        finally:
            self._loading.pop()

        self._documents[name] = document
        return document

    def _read_workflow(self, name: str, standalone: bool = False) -> dict[str, Any]:
        path = self.workflow_path(name)
        if not path.is_file():
            raise WorkflowNotFoundError(f"Workflow '{name}' not found at {path}", name)

        data = self._parse_yaml(path, name)
        _, errors = validate_workflow_document(data)
        # Parents may omit metadata; a requested workflow without a parent
        # reports all of its errors together.
        if standalone and isinstance(data, dict) and not data.get("extends"):
            errors = errors + [error for error in validate_metadata(data) if error not in errors]
        if errors:
            raise WorkflowValidationError(
                f"Invalid workflow '{name}': {'; '.join(errors)}", errors, name
            )
        return dict(data)

    def _read_import(self, name: str, reference: str) -> dict[str, Any]:
        try:
            path = self._components.resolve_path(reference)
        except ComponentError as e:
            raise WorkflowError(f"Invalid import '{reference}' in workflow '{name}': {e}", name) from e
        if not path.is_file():
            raise WorkflowNotFoundError(
                f"Import '{reference}' of workflow '{name}' not found at {path}", name
            )

        data = self._parse_yaml(path, name)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise WorkflowValidationError(
                f"Import '{reference}' of workflow '{name}' must be a mapping",
                [f"Import '{reference}' must be a mapping"],
                name,
            )
        return data

    @staticmethod
    def _parse_yaml(path: Path, name: str) -> Any:
        try:
            return yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            raise WorkflowError(f"Failed to parse workflow '{name}': {e}", name) from e
        except (OSError, UnicodeDecodeError) as e:
            raise WorkflowError(f"Failed to read workflow '{name}': {e}", name) from e

    def list_workflows(self) -> list[WorkflowSummary]:
        """List loadable workflows.

        Workflows that fail to load are skipped with a warning.
        """
        summaries: list[WorkflowSummary] = []
        for name in self.workflow_names():
            try:
                workflow = self.load(name)
            except WorkflowError as e:
                logger.warning(f"Failed to load workflow {name}: {e}")
                continue
            summaries.append(
                WorkflowSummary(
                    name=workflow.name or name,
                    description=workflow.description or "No description",
                    version=workflow.version or "1.0.0",
                    tags=list(workflow.tags),
                    category=workflow.category,
                )
            )
        return summaries

    def get_workflow_dependencies(self, name: str) -> list[str]:
        """All component references of a workflow, deduplicated."""
        return self.load(name).component_references()

    def validate_all(self) -> dict[str, WorkflowCheck]:
        """Load every workflow document and report pass/fail per name."""
        results: dict[str, WorkflowCheck] = {}
        for name in self.workflow_names():
            try:
                self.load(name)
                results[name] = WorkflowCheck(valid=True)
            except WorkflowError as e:
                results[name] = WorkflowCheck(valid=False, error=str(e))
        return results

    def export_workflow(self, name: str) -> dict[str, Any]:
        """Bundle a workflow with every component it transitively references.

        Component ``dependencies`` and ``includes`` are followed. Missing or
        malformed components are skipped with a warning.

        Returns:
            A mapping with ``workflow``, ``components`` and ``metadata``.
        """
        workflow = self.load(name)
        components: dict[str, Any] = {}
        pending = list(workflow.component_references())
        seen: set[str] = set()

        while pending:
            reference = pending.pop(0)
            if reference in seen:
                continue
            seen.add(reference)
            try:
                component = self._components.load(reference)
            except ComponentError as e:
                logger.warning(f"Failed to load component {reference}: {e}")
                continue
            components[reference] = component.to_dict()
            pending.extend(ref for ref in component.references() if ref not in seen)

        return {
            "workflow": workflow.to_dict(),
            "components": components,
            "metadata": {
                "exported": datetime.now(timezone.utc).isoformat(),
                "version": APP_VERSION,
            },
        }

    def load_manifest(self) -> dict[str, Any]:
        """Load ``manifest.json``, returning a default manifest if absent."""
        if self._manifest is not None:
            return self._manifest

        path = self._base_dir / MANIFEST_FILE_NAME
        if not path.is_file():
            return default_manifest()

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to read manifest {path}: {e}")
            return default_manifest()

        if not isinstance(data, dict):
            logger.warning(f"Ignoring manifest {path}: expected an object")
            return default_manifest()

        manifest = default_manifest()
        manifest.update(data)
        self._manifest = manifest
        return manifest

    def get_workflow_metadata(self, name: str) -> Optional[dict[str, Any]]:
        """Manifest entry for a workflow, or None."""
        workflows = self.load_manifest().get("workflows") or {}
        return workflows.get(name)

    def clear_cache(self) -> None:
        """Forget loaded workflows and the manifest."""
        self._documents.clear()
        self._workflows.clear()
        self._manifest = None
