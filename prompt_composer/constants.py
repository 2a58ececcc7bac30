"""
Constants and configuration defaults for prompt_composer.
"""
from pathlib import Path
from typing import Final

APP_NAME: Final[str] = "prompt-composer"
APP_VERSION: Final[str] = "1.0.0"
APP_DESCRIPTION: Final[str] = "Compose AI assistant prompts from YAML workflows and components"

PACKAGE_DIR: Final[Path] = Path(__file__).resolve().parent
DEFAULT_BASE_DIR: Final[Path] = PACKAGE_DIR / "templates"
DEFAULT_CACHE_DIR: Final[Path] = Path(".cache") / "prompts"
CONFIG_FILE_NAME: Final[str] = ".prompt-composer.json"

WORKFLOWS_DIR_NAME: Final[str] = "workflows"
MANIFEST_FILE_NAME: Final[str] = "manifest.json"
DOCUMENT_SUFFIXES: Final[tuple[str, ...]] = (".yml", ".yaml")
CACHE_FILE_SUFFIX: Final[str] = ".cache"

DEFAULT_MAX_DEPTH: Final[int] = 10
DEFAULT_MAX_ITERATIONS: Final[int] = 10
DEFAULT_CACHE_MAX_ITEMS: Final[int] = 100
DEFAULT_CACHE_MAX_AGE: Final[float] = 3600.0  # seconds
DEFAULT_MAX_LENGTH: Final[int] = 50000
DEFAULT_ENGINE_VERSION: Final[str] = "1.0.0"

TRUNCATION_MARKER: Final[str] = "\n[... truncated ...]"
SECTION_SEPARATOR: Final[str] = "\n\n"

ENV_BASE_DIR: Final[str] = "PROMPT_COMPOSER_BASE_DIR"
ENV_CACHE_DIR: Final[str] = "PROMPT_COMPOSER_CACHE_DIR"
ENV_NO_CACHE: Final[str] = "PROMPT_COMPOSER_NO_CACHE"
