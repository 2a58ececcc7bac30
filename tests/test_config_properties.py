"""
Tests for composer configuration loading and validation.
"""

import json
from pathlib import Path

import allure
import pytest
from hypothesis import given, settings, strategies as st

from prompt_composer.config import (
    ComposerConfig,
    ConfigError,
    load_config,
    parse_config,
    validate_config,
)
from prompt_composer.constants import DEFAULT_BASE_DIR, DEFAULT_MAX_DEPTH


@st.composite
def valid_config_strategy(draw):
    """Generate valid configuration dictionaries."""
    data = {}
    if draw(st.booleans()):
        data["base_dir"] = draw(st.from_regex(r"^/[a-z]{1,10}(/[a-z]{1,10}){0,2}$", fullmatch=True))
    if draw(st.booleans()):
        data["cache_dir"] = draw(st.from_regex(r"^/[a-z]{1,10}$", fullmatch=True))
    for name in ("max_depth", "max_iterations", "cache_max_items"):
        if draw(st.booleans()):
            data[name] = draw(st.integers(min_value=1, max_value=1000))
    if draw(st.booleans()):
        data["skip_cache"] = draw(st.booleans())
    if draw(st.booleans()):
        data["cache_max_age"] = draw(st.floats(min_value=0.5, max_value=86400, allow_nan=False))
    return data


@allure.feature("Configuration")
@allure.story("Valid configurations parse")
@allure.severity(allure.severity_level.CRITICAL)
@settings(max_examples=100)
@given(data=valid_config_strategy())
def test_valid_config_parses(data):
    is_valid, errors = validate_config(data)
    assert is_valid, errors

    config = parse_config(json.dumps(data))
    for key, value in data.items():
        if key in ("base_dir", "cache_dir"):
            assert str(getattr(config, key)) == value
        else:
            assert getattr(config, key) == value
    assert ComposerConfig.from_dict(config.to_dict()) == config


@allure.feature("Configuration")
@allure.story("Defaults")
@allure.severity(allure.severity_level.NORMAL)
def test_defaults():
    config = ComposerConfig()
    assert config.base_dir == DEFAULT_BASE_DIR
    assert config.max_depth == DEFAULT_MAX_DEPTH
    assert config.skip_cache is False
    assert isinstance(ComposerConfig(base_dir="prompts").base_dir, Path)


@allure.feature("Configuration")
@allure.story("Validation errors")
@allure.severity(allure.severity_level.NORMAL)
@pytest.mark.parametrize(
    "data,expected",
    [
        ({"base_dir": 3}, "Field 'base_dir' must be a string"),
        ({"max_depth": "10"}, "Field 'max_depth' must be an integer"),
        ({"max_depth": True}, "Field 'max_depth' must be an integer"),
        ({"max_iterations": 0}, "Field 'max_iterations' must be at least 1"),
        ({"skip_cache": "yes"}, "Field 'skip_cache' must be a boolean"),
        ({"cache_max_age": -1}, "Field 'cache_max_age' must be positive"),
        ({"cache_max_age": "1h"}, "Field 'cache_max_age' must be a number"),
        ({"colour": "blue", "answer": 42}, "Unknown fields: answer, colour"),
        ([], "Configuration must be an object"),
    ],
)
def test_validation_errors(data, expected):
    is_valid, errors = validate_config(data)
    assert not is_valid
    assert expected in errors


@allure.feature("Configuration")
@allure.story("Parse errors carry a position")
@allure.severity(allure.severity_level.NORMAL)
def test_invalid_json_reports_position():
    with pytest.raises(ConfigError) as exc_info:
        parse_config('{\n  "max_depth": ,\n}')
    assert exc_info.value.line == 2
    assert exc_info.value.column is not None
    assert "(line 2, column" in str(exc_info.value)


@allure.feature("Configuration")
@allure.story("Parse errors carry a position")
@allure.severity(allure.severity_level.MINOR)
def test_invalid_fields_raise():
    with pytest.raises(ConfigError, match="Configuration validation failed"):
        parse_config('{"max_depth": 0}')


@allure.feature("Configuration")
@allure.story("Loading from file")
@allure.severity(allure.severity_level.CRITICAL)
def test_load_config_resolves_relative_dirs(tmp_path: Path):
    config_file = tmp_path / "project" / ".prompt-composer.json"
    config_file.parent.mkdir()
    config_file.write_text(json.dumps({
        "base_dir": "prompts",
        "cache_dir": "/var/cache/prompts",
        "max_depth": 4,
    }), encoding="utf-8")

    config = load_config(config_file, environ={})
    assert config.base_dir == tmp_path / "project" / "prompts"
    assert config.cache_dir == Path("/var/cache/prompts")
    assert config.max_depth == 4


@allure.feature("Configuration")
@allure.story("Loading from file")
@allure.severity(allure.severity_level.NORMAL)
def test_missing_config_file_raises(tmp_path: Path):
    with pytest.raises(ConfigError, match="Cannot read config file"):
        load_config(tmp_path / "absent.json", environ={})


@allure.feature("Configuration")
@allure.story("Environment overrides")
@allure.severity(allure.severity_level.NORMAL)
@pytest.mark.parametrize("flag,expected", [("1", True), ("TRUE", True), ("on", True), ("0", False), ("", False)])
def test_env_overrides(tmp_path: Path, flag: str, expected: bool):
    config = load_config(environ={
        "PROMPT_COMPOSER_BASE_DIR": str(tmp_path / "lib"),
        "PROMPT_COMPOSER_CACHE_DIR": str(tmp_path / "cache"),
        "PROMPT_COMPOSER_NO_CACHE": flag,
    })
    assert config.base_dir == tmp_path / "lib"
    assert config.cache_dir == tmp_path / "cache"
    assert config.skip_cache is expected


@allure.feature("Configuration")
@allure.story("Environment overrides")
@allure.severity(allure.severity_level.MINOR)
def test_env_overrides_do_not_mutate(tmp_path: Path):
    original = ComposerConfig(base_dir=tmp_path)
    updated = original.with_env_overrides({"PROMPT_COMPOSER_NO_CACHE": "yes"})
    assert updated.skip_cache is True
    assert original.skip_cache is False
    assert updated.base_dir == tmp_path
