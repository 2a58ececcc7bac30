"""
PromptComposer - builds prompts from workflows and components.

A composition loads a workflow, selects its components against the
caller's context, resolves each component's template and joins the
results before running the workflow's post-processing pipeline. Composed
prompts are cached by workflow name, context and template tree state.
"""

import hashlib
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Optional

from packaging.version import InvalidVersion, Version

from ..cache import ComponentCache
from ..components import Component, ComponentError, ComponentLoader
from ..config import ComposerConfig
from ..constants import DOCUMENT_SUFFIXES, MANIFEST_FILE_NAME, SECTION_SEPARATOR
from ..resolver import VariableResolver
from ..workflows import WorkflowDefinition, WorkflowError, WorkflowLoader, WorkflowSummary
from .conditions import evaluate_condition
from .postprocess import ProcessorFunc, ProcessorRegistry


logger = logging.getLogger(__name__)


def _canonical(value: Any) -> Any:
    """Make a context JSON-sortable; non-string keys keep their type in the key."""
    if isinstance(value, Mapping):
        return {
            key if isinstance(key, str) else f"{type(key).__name__}:{key!r}": _canonical(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_canonical(item) for item in value]
    return value


class CompositionError(Exception):
    """Raised when a prompt cannot be composed."""

    def __init__(self, message: str, workflow_name: Optional[str] = None):
        super().__init__(message)
        self.workflow_name = workflow_name


class CompositionDepthError(CompositionError):
    """Raised when component nesting exceeds the configured maximum depth."""

    def __init__(self, component_path: str):
        super().__init__(f"Maximum composition depth exceeded at {component_path}")
        self.component_path = component_path


class ComponentCycleError(CompositionError):
    """Raised when a component depends on or includes itself."""

    def __init__(self, cycle: list[str]):
        super().__init__(f"Component cycle detected: {' -> '.join(cycle)}")
        self.cycle = cycle


@dataclass
class CompositionState:
    """Per-call bookkeeping threaded through component loading.

    Attributes:
        loaded: Resolved content by component path.
        stack: Paths currently being loaded, outermost first.
    """
    loaded: dict[str, str] = field(default_factory=dict)
    stack: list[str] = field(default_factory=list)


@dataclass
class ValidationReport:
    """Result of PromptComposer.validate_workflow()."""
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    valid: bool = field(init=False)

    def __post_init__(self) -> None:
        self.valid = not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {"errors": list(self.errors), "warnings": list(self.warnings), "valid": self.valid}


class PromptComposer:
    """Composes prompts from YAML workflows and components.

    Example:
        composer = PromptComposer(ComposerConfig(base_dir=Path("templates")))
        prompt = composer.compose("init-memory", {
            "project": {"name": "TestProject", "path": "/tmp/test"},
            "options": {"cicd": True},
        })
    """

    def __init__(
        self,
        config: Optional[ComposerConfig] = None,
        *,
        resolver: Optional[VariableResolver] = None,
        workflow_loader: Optional[WorkflowLoader] = None,
        component_loader: Optional[ComponentLoader] = None,
        cache: Optional[ComponentCache] = None,
        custom_processors: Optional[Mapping[str, ProcessorFunc]] = None,
        post_processors: Optional[list[ProcessorFunc]] = None,
    ) -> None:
        """Initialize the composer.

        Args:
            config: Engine settings. Defaults to ComposerConfig().
            resolver: Variable resolver. Defaults to one honouring
                ``config.max_iterations``.
            workflow_loader: Workflow loader rooted at ``config.base_dir``.
            component_loader: Component loader rooted at ``config.base_dir``.
            cache: Result cache in ``config.cache_dir``.
            custom_processors: Named processors usable in
                ``post_processing`` lists.
            post_processors: Processors applied to every composition after
                the workflow's own pipeline.
        """
        self._config = config or ComposerConfig()
        self._resolver = resolver or VariableResolver(max_iterations=self._config.max_iterations)
        self._components = component_loader or ComponentLoader(self._config.base_dir)
        self._workflows = workflow_loader or WorkflowLoader(self._config.base_dir, self._components)
        self._cache = cache or ComponentCache(
            self._config.cache_dir,
            max_items=self._config.cache_max_items,
            max_age=self._config.cache_max_age,
        )
        self._processors = ProcessorRegistry(custom_processors)
        self._post_processors: list[ProcessorFunc] = list(post_processors or [])
        self._fingerprint: Optional[str] = None

    @property
    def config(self) -> ComposerConfig:
        return self._config

    @property
    def resolver(self) -> VariableResolver:
        return self._resolver

    @property
    def workflow_loader(self) -> WorkflowLoader:
        return self._workflows

    @property
    def cache(self) -> ComponentCache:
        return self._cache

    @property
    def processors(self) -> ProcessorRegistry:
        return self._processors

    def register_processor(self, name: str, func: ProcessorFunc) -> None:
        self._processors.register(name, func)

    def reload(self) -> None:
        """Pick up library edits made since the first composition."""
        self._workflows.clear_cache()
        self._fingerprint = None

    def compose(self, workflow_name: str, context: Optional[Mapping] = None) -> str:
        """Compose the prompt for a workflow.

        Args:
            workflow_name: Name of the workflow to compose.
            context: Caller values (``options``, ``project``, ...).

        Returns:
            The composed prompt text.

        Raises:
            CompositionError: On any failure; the message names the workflow
                and the original error is chained.
        """
        context = dict(context or {})
        try:
            cache_key = self.get_cache_key(workflow_name, context)
            if not self._config.skip_cache:
                cached = self._cache.get(cache_key)
                if cached is not None:
                    logger.debug(f"Cache hit for workflow '{workflow_name}'")
                    return cached

            workflow = self._workflows.load(workflow_name)
            merged = self.merge_context(workflow, context)
            state = CompositionState()

            sections: list[str] = []
            for component_path in self.build_component_list(workflow, merged):
                content = self.load_component(component_path, merged, state=state)
                if content:
                    sections.append(content)

            result = self.apply_post_processing(SECTION_SEPARATOR.join(sections), workflow, merged)
            self._cache.set(cache_key, result)
            return result
        except Exception as e:
            raise CompositionError(
                f"Failed to compose prompt '{workflow_name}': {e}", workflow_name
            ) from e

    def get_cache_key(self, workflow_name: str, context: Mapping) -> str:
        """Key for a composition; independent of context key order."""
        payload = json.dumps(
            {
                "workflow": workflow_name,
                "context": _canonical(context),
                "templates": self.template_fingerprint(),
            },
            sort_keys=True,
            default=str,
        )
        return f"{workflow_name}-{hashlib.sha256(payload.encode('utf-8')).hexdigest()}"

    def template_fingerprint(self) -> str:
        """Digest of the relative path, size and mtime of every library document.

        Computed once per composer, since it walks the whole of ``base_dir``.
        Editing a workflow or component changes the fingerprint, and with it
        every cache key, for new processes or after reload().
        """
        if self._fingerprint is None:
            self._fingerprint = self._scan_templates()
        return self._fingerprint

    def _scan_templates(self) -> str:
        base_dir = self._config.base_dir
        digest = hashlib.sha256()
        if not base_dir.is_dir():
            return digest.hexdigest()

        suffixes = set(DOCUMENT_SUFFIXES)
        for path in sorted(base_dir.rglob("*")):
            if not (path.suffix in suffixes or path.name == MANIFEST_FILE_NAME):
                continue
            try:
                stat = path.stat()
            except OSError:
                continue
            digest.update(f"{path.relative_to(base_dir).as_posix()}:{stat.st_size}:{stat.st_mtime_ns}\n".encode("utf-8"))
        return digest.hexdigest()

    def merge_context(self, workflow: WorkflowDefinition, context: Mapping) -> dict[str, Any]:
        """Expose workflow name, version and variables as ``workflow.*``."""
        return {
            **context,
            "workflow": {
                "name": workflow.name,
                "version": workflow.version,
                **workflow.variables,
            },
        }

    def build_component_list(self, workflow: WorkflowDefinition, context: Mapping) -> list[str]:
        """Select components: required, then conditionals in order, then options."""
        components: list[str] = list(workflow.required)

        for rule in workflow.conditional:
            if self.evaluate_condition(rule.condition, context):
                components.extend(rule.then)
            else:
                components.extend(rule.otherwise)

        options = context.get("options")
        if isinstance(options, Mapping):
            for option, references in workflow.optional.items():
                if options.get(option):
                    components.extend(references)

        return components

    def evaluate_condition(self, expression: str, context: Mapping) -> bool:
        return evaluate_condition(expression, context)

    def load_component(
        self,
        path: str,
        context: Mapping,
        *,
        depth: int = 0,
        state: Optional[CompositionState] = None,
    ) -> str:
        """Load a component and return its resolved content.

        Dependencies load first, then the component's own variables are
        merged over the context and its content resolved. Included
        components are resolved against that local context and prepended.

        Args:
            path: Component reference, e.g. ``core/session-context``.
            context: Context the component resolves against.
            depth: Current nesting depth.
            state: Per-composition memo and in-progress stack. A fresh one
                is used when omitted.

        Raises:
            CompositionDepthError: If ``depth`` exceeds ``max_depth``.
            ComponentCycleError: If the component is already being loaded.
            ComponentError: If the document is missing or malformed.
        """
        if depth > self._config.max_depth:
            raise CompositionDepthError(path)

        state = state if state is not None else CompositionState()
        if path in state.loaded:
            return state.loaded[path]
        if path in state.stack:
            raise ComponentCycleError(state.stack[state.stack.index(path):] + [path])

        state.stack.append(path)
        try:
            component = self._components.load(path)
            self._check_version(component)

            for dependency in component.dependencies:
                self.load_component(dependency, context, depth=depth + 1, state=state)

            local_context = {
                **context,
                **component.variables,
                "component": {
                    "name": component.name,
                    "version": component.version,
                    "path": path,
                },
            }
            content = self._resolver.resolve(component.content, local_context)

            if component.includes:
                included = [
                    self.load_component(include, local_context, depth=depth + 1, state=state)
                    for include in component.includes
                ]
                content = SECTION_SEPARATOR.join(part for part in included + [content] if part)
        finally:
            state.stack.pop()

        state.loaded[path] = content
        return content

    def _check_version(self, component: Component) -> None:
        if not component.version:
            return
        try:
            compatible = Version(component.version).major == Version(self._config.version).major
        except InvalidVersion:
            logger.warning(f"Component {component.path} has an unparseable version {component.version!r}")
            return
        if not compatible:
            logger.warning(
                f"Component {component.path} version {component.version} may not be compatible "
                f"with engine version {self._config.version}"
            )

    def apply_post_processing(self, content: str, workflow: WorkflowDefinition, context: Mapping) -> str:
        """Run the workflow's processors in order, then the global ones."""
        result = content
        for name in workflow.post_processing:
            result = self.run_processor(name, result, context)
        for processor in self._post_processors:
            result = processor(result, context)
        return result

    def run_processor(self, name: str, content: str, context: Mapping) -> str:
        return self._processors.run(name, content, context)

    def list_workflows(self) -> list[WorkflowSummary]:
        return self._workflows.list_workflows()

    def validate_workflow(self, workflow_name: str) -> ValidationReport:
        """Check that a workflow loads and every component it references resolves.

        All conditional branches and optional components are checked, not
        only those selected by an empty context.
        """
        errors: list[str] = []
        warnings: list[str] = []

        try:
            workflow = self._workflows.load(workflow_name)
        except WorkflowError as e:
            return ValidationReport(errors=[f"Failed to load workflow: {e}"])

        references = workflow.component_references()
        if not references:
            warnings.append("Workflow references no components")

        state = CompositionState()
        for reference in references:
            try:
                self.load_component(reference, {}, state=state)
            except (ComponentError, CompositionError) as e:
                errors.append(f"Component '{reference}' not found or invalid: {e}")

        for name in workflow.post_processing:
            if name not in self._processors:
                warnings.append(f"Unknown post-processor '{name}'")

        return ValidationReport(errors=errors, warnings=warnings)
