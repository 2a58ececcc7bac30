"""
Main entry point for prompt_composer.
"""
import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any, Callable, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from .config import ComposerConfig, ConfigError, load_config
from .constants import APP_DESCRIPTION, APP_NAME, APP_VERSION, CONFIG_FILE_NAME
from .composer import CompositionError, PromptComposer
from .composer.conditions import parse_value
from .workflows import WorkflowError


PREVIEW_LENGTH = 500

console = Console()
err_console = Console(stderr=True)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description=APP_DESCRIPTION
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"{APP_NAME} {APP_VERSION}"
    )
    parser.add_argument(
        "--config",
        type=str,
        help=f"Path to config file (default: ./{CONFIG_FILE_NAME} if present)"
    )
    parser.add_argument(
        "--base-dir",
        type=str,
        help="Prompt library directory"
    )
    parser.add_argument(
        "--cache-dir",
        type=str,
        help="Directory for cached prompts"
    )
    parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Do not read composed prompts from the cache"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", metavar="command")
    subparsers.required = True

    subparsers.add_parser("list", help="List available workflows")

    show = subparsers.add_parser("show", help="Show a workflow definition")
    show.add_argument("workflow")

    subparsers.add_parser("validate", help="Validate all workflows and their components")

    compose = subparsers.add_parser("compose", help="Compose the prompt for a workflow")
    compose.add_argument("workflow")
    compose.add_argument("--cicd", action="store_true", help="Enable the cicd option")
    compose.add_argument("--testing", action="store_true", help="Enable the testing option")
    compose.add_argument("--docs", action="store_true", help="Enable the docs option")
    compose.add_argument("--project-name", type=str, help="Value for project.name")
    compose.add_argument(
        "--var",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Extra context value; dotted keys nest (repeatable)"
    )
    compose.add_argument("--output", "-o", type=str, help="Write the prompt to a file")
    compose.add_argument("--preview", action="store_true", help="Show statistics and a short preview")

    export = subparsers.add_parser("export", help="Export a workflow with its components as JSON")
    export.add_argument("workflow")
    export.add_argument("output", nargs="?", help="Output file (default: <workflow>-export.json)")

    cache = subparsers.add_parser("cache", help="Inspect or maintain the prompt cache")
    cache.add_argument("action", choices=["stats", "clear", "prune"])

    return parser.parse_args(argv)


def setup_logging(verbose: bool = False) -> None:
    """Route engine diagnostics to stderr through rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=verbose, markup=False)],
        force=True,
    )


def parse_variables(pairs: list[str]) -> dict[str, Any]:
    """Turn ``key=value`` pairs into a nested context mapping.

    Values are parsed like condition literals, so ``count=3`` yields an int
    and ``flag=true`` a bool.

    Raises:
        ValueError: If a pair has no ``=``.
    """
    variables: dict[str, Any] = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Invalid variable '{pair}', expected KEY=VALUE")
        target = variables
        parts = key.strip().split(".")
        for part in parts[:-1]:
            target = target.setdefault(part, {})
            if not isinstance(target, dict):
                raise ValueError(f"Variable '{key}' conflicts with an earlier value")
        target[parts[-1]] = parse_value(raw)
    return variables


def build_context(args: argparse.Namespace) -> dict[str, Any]:
    """Build the composition context for ``compose``."""
    context = parse_variables(args.var)
    for key in ("options", "project"):
        if not isinstance(context.setdefault(key, {}), dict):
            raise ValueError(f"'{key}' must be a mapping")

    options = context["options"]
    options.update({"cicd": args.cicd, "testing": args.testing, "docs": args.docs})

    project = context["project"]
    project.setdefault("path", str(Path.cwd()))
    if args.project_name:
        project["name"] = args.project_name
    project.setdefault("name", Path.cwd().name)
    return context


def build_config(args: argparse.Namespace) -> ComposerConfig:
    config_path = args.config
    if config_path is None and Path(CONFIG_FILE_NAME).is_file():
        config_path = CONFIG_FILE_NAME

    config = load_config(config_path)
    if args.base_dir:
        config.base_dir = Path(args.base_dir)
    if args.cache_dir:
        config.cache_dir = Path(args.cache_dir)
    if args.no_cache:
        config.skip_cache = True
    return config


def cmd_list(composer: PromptComposer, args: argparse.Namespace) -> int:
    workflows = composer.list_workflows()
    if not workflows:
        console.print("[yellow]No workflows found[/yellow]")
        return 0

    table = Table(title="Available Workflows")
    table.add_column("Name", style="cyan")
    table.add_column("Description")
    table.add_column("Version", style="green")
    table.add_column("Category", style="magenta")
    table.add_column("Tags", style="dim")
    for workflow in workflows:
        table.add_row(
            workflow.name,
            workflow.description,
            workflow.version,
            workflow.category,
            ", ".join(workflow.tags),
        )
    console.print(table)
    return 0


def cmd_show(composer: PromptComposer, args: argparse.Namespace) -> int:
    loader = composer.workflow_loader
    workflow = loader.load(args.workflow)
    text = loader.workflow_path(args.workflow).read_text(encoding="utf-8")

    components = ", ".join(workflow.component_references()) or "-"
    console.print(Panel(
        escape(f"{workflow.description}\n\nVersion: {workflow.version}\nComponents: {components}"),
        title=escape(f"Workflow: {workflow.name}"),
        border_style="blue",
    ))
    console.print(Syntax(text, "yaml"))
    return 0


def cmd_validate(composer: PromptComposer, args: argparse.Namespace) -> int:
    names = composer.workflow_loader.workflow_names()
    if not names:
        console.print("[yellow]No workflows found[/yellow]")
        return 0

    has_errors = False
    for name in names:
        report = composer.validate_workflow(name)
        if report.valid:
            console.print(f"[green]✓ {name}[/green]")
        else:
            has_errors = True
            console.print(f"[red]✗ {name}[/red]")
            for error in report.errors:
                console.print(f"  [red]- {escape(error)}[/red]", highlight=False)
        for warning in report.warnings:
            console.print(f"  [yellow]⚠ {escape(warning)}[/yellow]", highlight=False)

    if has_errors:
        console.print("\n[red]Some workflows have errors[/red]")
        return 1
    console.print("\n[green]All workflows are valid[/green]")
    return 0


def cmd_compose(composer: PromptComposer, args: argparse.Namespace) -> int:
    context = build_context(args)

    started = time.perf_counter()
    result = composer.compose(args.workflow, context)
    duration_ms = (time.perf_counter() - started) * 1000

    if not args.output and not args.preview:
        print(result)
        return 0

    console.print(f"[green]✓ Composition successful ({duration_ms:.0f}ms)[/green]")
    console.print(f"[dim]  Length: {len(result)} characters[/dim]")
    console.print(f"[dim]  Lines: {len(result.splitlines())}[/dim]")

    if args.output:
        output = Path(args.output)
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(result, encoding="utf-8")
        console.print(f"[green]✓ Output saved to: {escape(str(output))}[/green]")

    if args.preview:
        preview = result[:PREVIEW_LENGTH] + ("..." if len(result) > PREVIEW_LENGTH else "")
        console.print(Panel(preview, title=f"Preview (first {PREVIEW_LENGTH} chars)", border_style="dim"))
    return 0


def cmd_export(composer: PromptComposer, args: argparse.Namespace) -> int:
    exported = composer.workflow_loader.export_workflow(args.workflow)
    output = Path(args.output or f"{args.workflow}-export.json")
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(exported, indent=2, default=str), encoding="utf-8")

    console.print(f"[green]✓ Exported to: {escape(str(output))}[/green]")
    console.print(f"[dim]  Components: {len(exported['components'])}[/dim]")
    return 0


def cmd_cache(composer: PromptComposer, args: argparse.Namespace) -> int:
    cache = composer.cache

    if args.action == "clear":
        cache.clear()
        console.print("[green]✓ Cache cleared successfully[/green]")
        return 0

    if args.action == "prune":
        pruned = cache.prune()
        console.print(f"[green]✓ Pruned {pruned} expired entries[/green]")
        return 0

    stats = cache.get_stats()
    size = cache.get_size()
    table = Table(title="Cache Statistics", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value")
    table.add_row("Directory", str(cache.cache_dir))
    table.add_row("Disk files", str(size["disk_files"]))
    table.add_row("Disk size", size["disk_size"])
    table.add_row("Memory items", str(size["memory_items"]))
    table.add_row("Memory size", size["memory_size"])
    table.add_row("Hit rate", stats["hit_rate"])
    console.print(table)
    return 0


COMMANDS: dict[str, Callable[[PromptComposer, argparse.Namespace], int]] = {
    "list": cmd_list,
    "show": cmd_show,
    "validate": cmd_validate,
    "compose": cmd_compose,
    "export": cmd_export,
    "cache": cmd_cache,
}


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        composer = PromptComposer(build_config(args))
        return COMMANDS[args.command](composer, args)
    except (ConfigError, WorkflowError, CompositionError, ValueError, OSError) as e:
        err_console.print(f"[red]Error:[/red] {escape(str(e))}", highlight=False, soft_wrap=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
