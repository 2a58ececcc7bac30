"""
Composer configuration module.

Provides the ComposerConfig dataclass used to wire the composition engine,
plus JSON loading/validation and environment variable overrides.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

from .constants import (
    DEFAULT_BASE_DIR,
    DEFAULT_CACHE_DIR,
    DEFAULT_CACHE_MAX_AGE,
    DEFAULT_CACHE_MAX_ITEMS,
    DEFAULT_ENGINE_VERSION,
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_ITERATIONS,
    ENV_BASE_DIR,
    ENV_CACHE_DIR,
    ENV_NO_CACHE,
)


class ConfigError(Exception):
    """Raised when configuration parsing or validation fails."""

    def __init__(
        self,
        message: str,
        line: Optional[int] = None,
        column: Optional[int] = None,
    ):
        self.line = line
        self.column = column

        if line is not None and column is not None:
            full_message = f"{message} (line {line}, column {column})"
        elif line is not None:
            full_message = f"{message} (line {line})"
        else:
            full_message = message

        super().__init__(full_message)


_TRUTHY_ENV_VALUES = ("1", "true", "yes", "on")


@dataclass
class ComposerConfig:
    """Settings for a PromptComposer and the collaborators it creates.

    Attributes:
        base_dir: Root of the prompt library (holds ``workflows/`` and
            component documents).
        cache_dir: Directory for the on-disk cache tier.
        max_depth: Maximum component nesting before composition aborts.
        max_iterations: Cap on variable resolution passes.
        skip_cache: Skip cache lookups; composed prompts are still stored.
        version: Engine version components are checked against.
        cache_max_items: Memory tier capacity.
        cache_max_age: Entry lifetime in seconds.

    Example:
        config = ComposerConfig(base_dir=Path("prompts"), skip_cache=True)
        composer = PromptComposer(config)
    """
    base_dir: Path = field(default_factory=lambda: DEFAULT_BASE_DIR)
    cache_dir: Path = field(default_factory=lambda: DEFAULT_CACHE_DIR)
    max_depth: int = DEFAULT_MAX_DEPTH
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    skip_cache: bool = False
    version: str = DEFAULT_ENGINE_VERSION
    cache_max_items: int = DEFAULT_CACHE_MAX_ITEMS
    cache_max_age: float = DEFAULT_CACHE_MAX_AGE

    def __post_init__(self) -> None:
        self.base_dir = Path(self.base_dir)
        self.cache_dir = Path(self.cache_dir)

    def to_dict(self) -> dict[str, Any]:
        """Convert the config to a JSON-serializable dictionary."""
        return {
            "base_dir": str(self.base_dir),
            "cache_dir": str(self.cache_dir),
            "max_depth": self.max_depth,
            "max_iterations": self.max_iterations,
            "skip_cache": self.skip_cache,
            "version": self.version,
            "cache_max_items": self.cache_max_items,
            "cache_max_age": self.cache_max_age,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ComposerConfig":
        """Create a ComposerConfig from a dictionary.

        Missing keys fall back to defaults. Call validate_config first
        when the data comes from an untrusted file.
        """
        defaults = cls()
        return cls(
            base_dir=Path(data.get("base_dir", defaults.base_dir)),
            cache_dir=Path(data.get("cache_dir", defaults.cache_dir)),
            max_depth=data.get("max_depth", defaults.max_depth),
            max_iterations=data.get("max_iterations", defaults.max_iterations),
            skip_cache=data.get("skip_cache", defaults.skip_cache),
            version=data.get("version", defaults.version),
            cache_max_items=data.get("cache_max_items", defaults.cache_max_items),
            cache_max_age=data.get("cache_max_age", defaults.cache_max_age),
        )

    def with_env_overrides(self, environ: Optional[dict[str, str]] = None) -> "ComposerConfig":
        """Return a copy with environment variable overrides applied.

        Recognized variables:
        - PROMPT_COMPOSER_BASE_DIR: prompt library location
        - PROMPT_COMPOSER_CACHE_DIR: cache directory
        - PROMPT_COMPOSER_NO_CACHE: any of 1/true/yes/on disables caching
        """
        env = os.environ if environ is None else environ
        data = self.to_dict()

        if env.get(ENV_BASE_DIR):
            data["base_dir"] = env[ENV_BASE_DIR]
        if env.get(ENV_CACHE_DIR):
            data["cache_dir"] = env[ENV_CACHE_DIR]
        if env.get(ENV_NO_CACHE, "").strip().lower() in _TRUTHY_ENV_VALUES:
            data["skip_cache"] = True

        return ComposerConfig.from_dict(data)


_INT_FIELDS = ("max_depth", "max_iterations", "cache_max_items")
_STR_FIELDS = ("base_dir", "cache_dir", "version")


def validate_config(data: dict[str, Any]) -> tuple[bool, list[str]]:
    """Validate a composer configuration dictionary.

    Args:
        data: Dictionary containing configuration to validate.

    Returns:
        A tuple of (is_valid, errors) where is_valid is True if validation
        passed and errors is a list of error messages (empty if valid).
    """
    errors: list[str] = []

    if not isinstance(data, dict):
        return False, ["Configuration must be an object"]

    for name in _STR_FIELDS:
        if name in data and not isinstance(data[name], str):
            errors.append(f"Field '{name}' must be a string")

    for name in _INT_FIELDS:
        if name in data:
            value = data[name]
            if isinstance(value, bool) or not isinstance(value, int):
                errors.append(f"Field '{name}' must be an integer")
            elif value < 1:
                errors.append(f"Field '{name}' must be at least 1")

    if "skip_cache" in data and not isinstance(data["skip_cache"], bool):
        errors.append("Field 'skip_cache' must be a boolean")

    if "cache_max_age" in data:
        max_age = data["cache_max_age"]
        if isinstance(max_age, bool) or not isinstance(max_age, (int, float)):
            errors.append("Field 'cache_max_age' must be a number")
        elif max_age <= 0:
            errors.append("Field 'cache_max_age' must be positive")

    known_fields = set(_INT_FIELDS) | set(_STR_FIELDS) | {"skip_cache", "cache_max_age"}
    unknown_fields = set(data.keys()) - known_fields
    if unknown_fields:
        errors.append(f"Unknown fields: {', '.join(sorted(unknown_fields))}")

    return len(errors) == 0, errors


def parse_config(json_str: str) -> ComposerConfig:
    """Deserialize a ComposerConfig from a JSON string.

    Raises:
        ConfigError: If the JSON is malformed or validation fails.
    """
    try:
        data = json.loads(json_str)
    except json.JSONDecodeError as e:
        raise ConfigError(
            f"Invalid JSON: {e.msg}",
            line=e.lineno,
            column=e.colno,
        ) from e

    is_valid, errors = validate_config(data)
    if not is_valid:
        raise ConfigError(f"Configuration validation failed: {'; '.join(errors)}")

    return ComposerConfig.from_dict(data)


def load_config(
    path: Optional[Union[str, Path]] = None,
    environ: Optional[dict[str, str]] = None,
) -> ComposerConfig:
    """Load configuration from an optional JSON file plus the environment.

    Relative ``base_dir``/``cache_dir`` values in the file are resolved
    against the file's directory.

    Args:
        path: Path to a JSON config file, or None for defaults.
        environ: Environment mapping (defaults to os.environ).

    Raises:
        ConfigError: If the file cannot be read or is invalid.
    """
    if path is None:
        return ComposerConfig().with_env_overrides(environ)

    config_path = Path(path)
    try:
        text = config_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read config file {config_path}: {e}") from e

    config = parse_config(text)
    root = config_path.parent
    if not config.base_dir.is_absolute():
        config.base_dir = root / config.base_dir
    if not config.cache_dir.is_absolute():
        config.cache_dir = root / config.cache_dir

    return config.with_env_overrides(environ)
