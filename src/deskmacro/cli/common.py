"""Helpers shared by the CLI commands."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel

from deskmacro.config import DeskMacroConfig, DeskMacroConfigError, find_project_dir
from deskmacro.models import PROJECT_DIR_NAME

console = Console(stderr=True)


def resolve_project_dir(dir: Path | None = None) -> Path:
    """The .deskmacro/ directory under *dir*, or the nearest one above cwd."""
    if dir is None:
        return find_project_dir()
    resolved = dir.resolve()
    if resolved.name == PROJECT_DIR_NAME:
        return resolved
    return resolved / PROJECT_DIR_NAME


def load_config_or_exit(project_dir: Path) -> DeskMacroConfig:
    try:
        return DeskMacroConfig.for_project(project_dir)
    except DeskMacroConfigError as exc:
        console.print(Panel(f"[red]{exc}[/red]", title="[red]Config Error[/red]", border_style="red"))
        raise typer.Exit(code=2)
