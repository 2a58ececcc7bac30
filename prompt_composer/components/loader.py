"""
Component document loading.

Resolves component references against a base directory and parses the
YAML documents they point at.
"""

import logging
from pathlib import Path
from typing import Union

import yaml

from ..constants import DOCUMENT_SUFFIXES
from .schema import Component, ComponentError, ComponentNotFoundError


logger = logging.getLogger(__name__)


class ComponentLoader:
    """Loads component documents from ``<base_dir>/<reference>.yml``.

    Example:
        loader = ComponentLoader(Path("templates"))
        component = loader.load("core/session-context")
        print(component.content)
    """

    def __init__(self, base_dir: Union[str, Path]) -> None:
        self._base_dir = Path(base_dir)

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def resolve_path(self, reference: str) -> Path:
        """Map a component reference to a file path.

        A reference without a suffix gets the first existing document
        suffix, falling back to ``.yml``.

        Raises:
            ComponentNotFoundError: If the reference escapes the base
                directory.
        """
        base = self._base_dir.resolve()
        candidate = (base / reference).resolve()
        if candidate != base and base not in candidate.parents:
            raise ComponentNotFoundError(
                f"Component '{reference}' resolves outside of {self._base_dir}", reference
            )

        if candidate.suffix in DOCUMENT_SUFFIXES:
            return candidate

        for suffix in DOCUMENT_SUFFIXES:
            path = candidate.with_name(candidate.name + suffix)
            if path.exists():
                return path
        return candidate.with_name(candidate.name + DOCUMENT_SUFFIXES[0])

    def exists(self, reference: str) -> bool:
        try:
            return self.resolve_path(reference).is_file()
        except ComponentNotFoundError:
            return False

    def load(self, reference: str) -> Component:
        """Read and parse a component.

        Args:
            reference: Slash separated component path, e.g. ``core/rules``.

        Returns:
            The parsed Component.

        Raises:
            ComponentNotFoundError: If the document does not exist.
            ComponentError: If the document cannot be read or parsed.
        """
        path = self.resolve_path(reference)
        if not path.is_file():
            raise ComponentNotFoundError(f"Component '{reference}' not found at {path}", reference)

        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ComponentError(f"Failed to read component '{reference}': {e}", reference) from e

        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ComponentError(f"Failed to parse component '{reference}': {e}", reference) from e

        logger.debug(f"Loaded component: {reference}")
        return Component.from_dict(reference, data)
