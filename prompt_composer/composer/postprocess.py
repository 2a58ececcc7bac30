"""
Post-processors applied to an assembled prompt.

Each built-in processor is a plain function ``fn(content, context) -> str``
bound to a PostProcessor member. ProcessorRegistry adds caller-supplied
processors on top of the built-ins.
"""

import logging
import re
from collections.abc import Mapping
from enum import Enum
from typing import Any, Callable, Optional

from ..constants import DEFAULT_MAX_LENGTH, TRUNCATION_MARKER


logger = logging.getLogger(__name__)


ProcessorFunc = Callable[[str, Mapping], str]

_HEADING = re.compile(r"^#{1,6}\s")
_SECTION_HEADING = re.compile(r"^#{1,3}\s")
_FENCE_LINE = re.compile(r"^(\s*)```[ \t]*([^\s`]*)[ \t]*$")


class PostProcessor(str, Enum):
    """Names usable in a workflow's ``post_processing`` list."""
    VALIDATE_MARKDOWN = "validate_markdown"
    CHECK_REQUIRED_SECTIONS = "check_required_sections"
    OPTIMIZE_LENGTH = "optimize_length"
    REMOVE_DUPLICATES = "remove_duplicates"
    FORMAT_CODE_BLOCKS = "format_code_blocks"


def context_option(context: Optional[Mapping], name: str, alias: str, default: Any = None) -> Any:
    """Read an option by its snake_case name or its camelCase alias."""
    if not isinstance(context, Mapping):
        return default
    if context.get(name) is not None:
        return context[name]
    if context.get(alias) is not None:
        return context[alias]
    return default


def _is_fence(line: str) -> bool:
    return line.lstrip().startswith("```")


def validate_markdown(content: str, context: Optional[Mapping] = None) -> str:
    """Close an unclosed code fence and put a blank line before headings.

    Lines inside code fences are never touched.
    """
    processed: list[str] = []
    in_code_block = False

    for line in content.split("\n"):
        if _is_fence(line):
            in_code_block = not in_code_block
        elif not in_code_block and _HEADING.match(line):
            if processed and processed[-1].strip():
                processed.append("")
        processed.append(line)

    if in_code_block:
        logger.debug("Closing unclosed code block")
        processed.append("```")

    return "\n".join(processed)


def check_required_sections(content: str, context: Optional[Mapping] = None) -> str:
    """Warn about headings listed in ``required_sections`` that are absent."""
    required = context_option(context, "required_sections", "requiredSections", [])
    if isinstance(required, str):
        required = [required]

    missing = [
        section for section in required
        if not re.search(rf"^#+\s+{re.escape(str(section))}", content, re.MULTILINE | re.IGNORECASE)
    ]
    if missing:
        logger.warning(f"Missing required sections: {', '.join(missing)}")
    return content


def optimize_length(content: str, context: Optional[Mapping] = None) -> str:
    """Collapse blank-line runs, strip trailing whitespace and cap the length.

    When the text is still longer than ``max_length`` it is cut and the
    truncation marker appended.
    """
    max_length = context_option(context, "max_length", "maxLength", DEFAULT_MAX_LENGTH)
    try:
        max_length = int(max_length)
    except (TypeError, ValueError):
        logger.warning(f"Invalid max_length {max_length!r}, using {DEFAULT_MAX_LENGTH}")
        max_length = DEFAULT_MAX_LENGTH
    if max_length <= 0:
        logger.warning(f"Non-positive max_length {max_length}, using {DEFAULT_MAX_LENGTH}")
        max_length = DEFAULT_MAX_LENGTH

    result = "\n".join(line.rstrip() for line in content.split("\n"))
    result = re.sub(r"\n{3,}", "\n\n", result)

    if len(result) > max_length:
        logger.warning(f"Prompt truncated from {len(result)} to {max_length} characters")
        result = result[:max_length] + TRUNCATION_MARKER

    return result


def _split_sections(content: str) -> list[str]:
    """Split text before each level 1-3 heading outside code fences."""
    sections: list[str] = []
    current: list[str] = []
    in_code_block = False

    for line in content.splitlines(keepends=True):
        if _is_fence(line):
            in_code_block = not in_code_block
        elif not in_code_block and _SECTION_HEADING.match(line) and current:
            sections.append("".join(current))
            current = []
        current.append(line)

    if current:
        sections.append("".join(current))
    return sections


def remove_duplicates(content: str, context: Optional[Mapping] = None) -> str:
    """Drop sections whose normalized text already appeared earlier."""
    seen: set[str] = set()
    unique: list[str] = []

    for section in _split_sections(content):
        normalized = " ".join(section.split()).lower()
        if not normalized:
            unique.append(section)
            continue
        if normalized in seen:
            logger.debug(f"Removed duplicate section: {normalized[:40]}")
            continue
        seen.add(normalized)
        unique.append(section)

    result = "".join(unique).rstrip()
    return result + "\n" if content.endswith("\n") else result


def format_code_blocks(content: str, context: Optional[Mapping] = None) -> str:
    """Normalize fence lines, e.g. ``"```  python  "`` becomes ``"```python"``."""
    return "\n".join(
        _FENCE_LINE.sub(lambda m: f"{m.group(1)}```{m.group(2)}", line)
        for line in content.split("\n")
    )


PROCESSORS: dict[PostProcessor, ProcessorFunc] = {
    PostProcessor.VALIDATE_MARKDOWN: validate_markdown,
    PostProcessor.CHECK_REQUIRED_SECTIONS: check_required_sections,
    PostProcessor.OPTIMIZE_LENGTH: optimize_length,
    PostProcessor.REMOVE_DUPLICATES: remove_duplicates,
    PostProcessor.FORMAT_CODE_BLOCKS: format_code_blocks,
}


class ProcessorRegistry:
    """Resolves post-processor names to functions.

    Built-in processors always win over custom ones with the same name.

    Example:
        registry = ProcessorRegistry()
        registry.register("add_footer", lambda content, ctx: content + "\\n---")
        registry.run("add_footer", "# Prompt", {})
    """

    def __init__(self, custom: Optional[Mapping[str, ProcessorFunc]] = None) -> None:
        self._custom: dict[str, ProcessorFunc] = {}
        for name, func in (custom or {}).items():
            self.register(name, func)

    def register(self, name: str, func: ProcessorFunc) -> None:
        """Register a custom processor.

        Raises:
            ValueError: If the name is already taken.
        """
        if name in self:
            raise ValueError(f"Post-processor '{name}' is already registered")
        self._custom[name] = func

    def unregister(self, name: str) -> None:
        """Remove a custom processor.

        Raises:
            KeyError: If no custom processor has that name.
        """
        if name not in self._custom:
            raise KeyError(f"Post-processor '{name}' is not registered")
        del self._custom[name]

    def get(self, name: str) -> Optional[ProcessorFunc]:
        try:
            return PROCESSORS[PostProcessor(name)]
        except ValueError:
            return self._custom.get(name)

    def list_processors(self) -> list[str]:
        return [member.value for member in PostProcessor] + list(self._custom)

    def run(self, name: str, content: str, context: Mapping) -> str:
        """Run a processor by name; unknown names leave the content unchanged."""
        func = self.get(name)
        if func is None:
            logger.warning(f"Unknown post-processor: {name}")
            return content
        return func(content, context)

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None

    def __len__(self) -> int:
        return len(PostProcessor) + len(self._custom)
