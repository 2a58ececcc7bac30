"""
Tests for component documents and the component loader.
"""

from pathlib import Path

import allure
import pytest
from hypothesis import given, settings, strategies as st

from prompt_composer.components import (
    Component,
    ComponentError,
    ComponentLoader,
    ComponentNotFoundError,
)

from conftest import write_document


reference_strategy = st.from_regex(r"^[a-z]{1,8}(/[a-z][a-z-]{0,8}){0,2}$", fullmatch=True)


@allure.feature("Components")
@allure.story("References stay inside the library")
@allure.severity(allure.severity_level.CRITICAL)
@settings(max_examples=100)
@given(reference=reference_strategy)
def test_references_resolve_under_base_dir(tmp_path_factory, reference: str):
    base = tmp_path_factory.mktemp("lib")
    path = ComponentLoader(base).resolve_path(reference)
    assert base.resolve() in path.parents
    assert path.name == f"{reference.rsplit('/', 1)[-1]}.yml"


@allure.feature("Components")
@allure.story("References stay inside the library")
@allure.severity(allure.severity_level.CRITICAL)
@pytest.mark.parametrize("reference", ["../secret", "core/../../secret", "/etc/passwd"])
def test_escaping_reference_is_rejected(tmp_path: Path, reference: str):
    loader = ComponentLoader(tmp_path / "lib")
    with pytest.raises(ComponentNotFoundError, match="resolves outside"):
        loader.resolve_path(reference)
    assert not loader.exists(reference)


@allure.feature("Components")
@allure.story("Document suffixes")
@allure.severity(allure.severity_level.NORMAL)
def test_yaml_suffix_is_found(tmp_path: Path):
    path = tmp_path / "core" / "alt.yaml"
    path.parent.mkdir()
    path.write_text("content: alt\n", encoding="utf-8")
    loader = ComponentLoader(tmp_path)

    assert loader.resolve_path("core/alt") == path.resolve()
    assert loader.exists("core/alt")
    assert loader.load("core/alt").content == "alt"
    assert loader.load("core/alt.yaml").content == "alt"


@allure.feature("Components")
@allure.story("Loading")
@allure.severity(allure.severity_level.CRITICAL)
def test_load_component(tmp_path: Path):
    write_document(tmp_path, "core/full", {
        "name": "Full",
        "version": 2,
        "variables": {"tone": "calm"},
        "dependencies": "core/dep",
        "includes": ["core/inc", "core/dep"],
        "content": "Hello ${tone}",
    })
    component = ComponentLoader(tmp_path).load("core/full")

    assert component == Component(
        path="core/full",
        name="Full",
        version="2",
        variables={"tone": "calm"},
        dependencies=["core/dep"],
        includes=["core/inc", "core/dep"],
        content="Hello ${tone}",
    )
    assert component.references() == ["core/dep", "core/inc"]
    assert component.to_dict()["version"] == "2"


@allure.feature("Components")
@allure.story("Errors")
@allure.severity(allure.severity_level.NORMAL)
def test_missing_component(tmp_path: Path):
    with pytest.raises(ComponentNotFoundError, match="Component 'core/none' not found"):
        ComponentLoader(tmp_path).load("core/none")


@allure.feature("Components")
@allure.story("Errors")
@allure.severity(allure.severity_level.NORMAL)
def test_malformed_components(tmp_path: Path):
    write_document(tmp_path, "core/list", ["not", "a", "mapping"])
    write_document(tmp_path, "core/fields", {"variables": [1], "includes": 3, "content": 7})
    broken = tmp_path / "core" / "broken.yml"
    broken.write_text("content: [unclosed\n", encoding="utf-8")
    loader = ComponentLoader(tmp_path)

    with pytest.raises(ComponentError, match="must be a mapping"):
        loader.load("core/list")
    with pytest.raises(ComponentError) as exc_info:
        loader.load("core/fields")
    message = str(exc_info.value)
    assert "variables must be a mapping" in message
    assert "includes must be a component reference or list" in message
    assert "content must be a string" in message
    with pytest.raises(ComponentError, match="Failed to parse component 'core/broken'"):
        loader.load("core/broken")


@allure.feature("Components")
@allure.story("Loading")
@allure.severity(allure.severity_level.MINOR)
def test_empty_document_is_an_empty_component():
    component = Component.from_dict("core/empty", None)
    assert component.content == ""
    assert component.to_dict() == {"content": ""}
