"""
Shared fixtures for building throwaway prompt libraries.
"""

from pathlib import Path
from typing import Any

import pytest
import yaml

from prompt_composer.cache import ComponentCache
from prompt_composer.composer import PromptComposer
from prompt_composer.config import ComposerConfig


def write_document(base_dir: Path, reference: str, data: Any) -> Path:
    """Write ``data`` as YAML to ``<base_dir>/<reference>.yml``."""
    path = base_dir / f"{reference}.yml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
    return path


def write_workflow(base_dir: Path, name: str, data: Any) -> Path:
    return write_document(base_dir, f"workflows/{name}", data)


def workflow_doc(name: str, **fields: Any) -> dict[str, Any]:
    """A minimal valid workflow document."""
    doc: dict[str, Any] = {
        "name": name,
        "version": "1.0.0",
        "description": f"{name} workflow",
    }
    doc.update(fields)
    return doc


@pytest.fixture
def library(tmp_path: Path) -> Path:
    """A small prompt library with one conditional workflow."""
    base = tmp_path / "prompts"
    write_document(base, "core/a", {
        "name": "A",
        "version": "1.0.0",
        "content": "# Core A\n\nProject: ${project.name}",
    })
    write_document(base, "templates/cicd", {
        "name": "CICD",
        "content": "# CI Pipeline\n\nDeploy ${project.name | upper}",
    })
    write_workflow(base, "demo", workflow_doc(
        "demo",
        required=["core/a"],
        conditional=[{"if": "options.cicd", "then": "templates/cicd"}],
    ))
    return base


@pytest.fixture
def make_composer(tmp_path: Path):
    """Factory for composers over a library with an isolated cache."""

    def factory(base_dir: Path, skip_cache: bool = True, **config: Any) -> PromptComposer:
        cfg = ComposerConfig(
            base_dir=base_dir,
            cache_dir=tmp_path / "cache",
            skip_cache=skip_cache,
            **config,
        )
        return PromptComposer(cfg)

    return factory


@pytest.fixture
def cache(tmp_path: Path) -> ComponentCache:
    return ComponentCache(tmp_path / "cache", max_items=3, max_age=60)
