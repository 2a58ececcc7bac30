"""
Tests for the command line interface.
"""

import json
from pathlib import Path

import allure
import pytest

from prompt_composer.main import main, parse_args, parse_variables

from conftest import write_workflow


@pytest.fixture
def run(library: Path, tmp_path: Path):
    """Run the CLI against the test library with an isolated cache."""

    def runner(*argv: str) -> int:
        return main(["--base-dir", str(library), "--cache-dir", str(tmp_path / "cli-cache"), *argv])

    return runner


@allure.feature("CLI")
@allure.story("Compose")
@allure.severity(allure.severity_level.CRITICAL)
def test_compose_prints_prompt(run, capsys):
    assert run("compose", "demo", "--project-name", "acme", "--cicd") == 0
    out = capsys.readouterr().out
    assert "Project: acme" in out
    assert "Deploy ACME" in out


@allure.feature("CLI")
@allure.story("Compose")
@allure.severity(allure.severity_level.NORMAL)
def test_compose_with_variables_and_output(run, tmp_path: Path, capsys):
    output = tmp_path / "out" / "prompt.md"
    assert run("compose", "demo", "--var", "project.name=zeta", "--output", str(output)) == 0
    assert output.read_text(encoding="utf-8") == "# Core A\n\nProject: zeta"
    assert "Output saved to" in capsys.readouterr().out


@allure.feature("CLI")
@allure.story("Compose")
@allure.severity(allure.severity_level.MINOR)
def test_compose_preview(run, capsys):
    assert run("compose", "demo", "--project-name", "acme", "--preview") == 0
    out = capsys.readouterr().out
    assert "Composition successful" in out
    assert "Preview" in out


@allure.feature("CLI")
@allure.story("Errors")
@allure.severity(allure.severity_level.CRITICAL)
def test_unknown_workflow_returns_error(run, capsys):
    assert run("compose", "ghost") == 1
    assert "Failed to compose prompt 'ghost'" in capsys.readouterr().err


@allure.feature("CLI")
@allure.story("Errors")
@allure.severity(allure.severity_level.NORMAL)
def test_bad_variable_returns_error(run, capsys):
    assert run("compose", "demo", "--var", "novalue") == 1
    assert "expected KEY=VALUE" in capsys.readouterr().err


@allure.feature("CLI")
@allure.story("Errors")
@allure.severity(allure.severity_level.NORMAL)
@pytest.mark.parametrize("pair,key", [("options=1", "options"), ("project=acme", "project")])
def test_scalar_context_section_returns_error(run, capsys, pair: str, key: str):
    assert run("compose", "demo", "--var", pair) == 1
    assert f"'{key}' must be a mapping" in capsys.readouterr().err


@allure.feature("CLI")
@allure.story("List")
@allure.severity(allure.severity_level.NORMAL)
def test_list(run, capsys):
    assert run("list") == 0
    out = capsys.readouterr().out
    assert "Available Workflows" in out
    assert "demo" in out


@allure.feature("CLI")
@allure.story("Show")
@allure.severity(allure.severity_level.MINOR)
def test_show(run, capsys):
    assert run("show", "demo") == 0
    out = capsys.readouterr().out
    assert "Workflow: demo" in out
    assert "options.cicd" in out


@allure.feature("CLI")
@allure.story("Validate")
@allure.severity(allure.severity_level.NORMAL)
def test_validate(run, library: Path, capsys):
    assert run("validate") == 0
    assert "All workflows are valid" in capsys.readouterr().out

    write_workflow(library, "broken", {"name": "broken", "version": "1", "description": "x", "required": ["core/nope"]})
    assert run("validate") == 1
    out = capsys.readouterr().out
    assert "core/nope" in out
    assert "Some workflows have errors" in out


@allure.feature("CLI")
@allure.story("Export")
@allure.severity(allure.severity_level.NORMAL)
def test_export(run, tmp_path: Path):
    output = tmp_path / "demo.json"
    assert run("export", "demo", str(output)) == 0
    exported = json.loads(output.read_text(encoding="utf-8"))
    assert exported["workflow"]["name"] == "demo"
    assert set(exported["components"]) == {"core/a", "templates/cicd"}


@allure.feature("CLI")
@allure.story("Cache maintenance")
@allure.severity(allure.severity_level.MINOR)
def test_cache_commands(run, tmp_path: Path, capsys):
    assert run("compose", "demo") == 0
    assert list((tmp_path / "cli-cache").glob("*.cache"))

    assert run("cache", "stats") == 0
    assert "Cache Statistics" in capsys.readouterr().out

    assert run("cache", "prune") == 0
    assert "Pruned 0 expired entries" in capsys.readouterr().out

    assert run("cache", "clear") == 0
    assert not list((tmp_path / "cli-cache").glob("*.cache"))


@allure.feature("CLI")
@allure.story("Configuration file")
@allure.severity(allure.severity_level.NORMAL)
def test_config_file_supplies_base_dir(library: Path, tmp_path: Path, capsys):
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps({
        "base_dir": str(library),
        "cache_dir": str(tmp_path / "cfg-cache"),
    }), encoding="utf-8")
    assert main(["--config", str(config_file), "compose", "demo", "--project-name", "cfg"]) == 0
    assert "Project: cfg" in capsys.readouterr().out

    config_file.write_text('{"max_depth": "deep"}', encoding="utf-8")
    assert main(["--config", str(config_file), "list"]) == 1
    assert "must be an integer" in capsys.readouterr().err


@allure.feature("CLI")
@allure.story("Argument parsing")
@allure.severity(allure.severity_level.MINOR)
def test_parse_args_and_variables():
    args = parse_args(["--no-cache", "compose", "demo", "--var", "a=1", "--var", "b.c=true", "--docs"])
    assert args.command == "compose"
    assert args.no_cache
    assert args.docs
    assert parse_variables(args.var) == {"a": 1, "b": {"c": True}}

    with pytest.raises(ValueError):
        parse_variables(["a=1", "a.b=2"])

    with pytest.raises(SystemExit):
        parse_args([])
