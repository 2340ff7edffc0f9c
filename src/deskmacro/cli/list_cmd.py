"""deskmacro list -- Show the loaded macro library."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from deskmacro.cli.common import load_config_or_exit, resolve_project_dir
from deskmacro.engine.registry import MacroRegistry

console = Console(stderr=True)
output_console = Console()


def list_macros(
    dir: Path | None = typer.Option(
        None,
        "--dir",
        "-d",
        help="deskmacro project directory. Defaults to auto-detected .deskmacro/ from cwd.",
    ),
    as_json: bool = typer.Option(
        False,
        "--json",
        help="Print the macro list as JSON on stdout.",
    ),
) -> None:
    """List loaded macros with their parameters, then any files that failed to load."""
    config = load_config_or_exit(resolve_project_dir(dir))
    registry = MacroRegistry(config.macros_dir)
    macros = registry.list()
    errors = registry.load_errors

    if as_json:
        payload = {
            "macros_path": str(registry.macros_path),
            "macros": [
                {
                    "name": info.name,
                    "display_name": info.display_name,
                    "description": info.description,
                    "steps": info.step_count,
                    "parameters": [
                        {"name": p.name, "description": p.description, "required": p.required, "default": p.default}
                        for p in info.parameters
                    ],
                }
                for info in macros
            ],
            "load_errors": [{"file": e.file_path, "macro": e.macro_name, "error": e.error} for e in errors],
        }
        output_console.print_json(data=payload)
        return

    if not macros and not errors:
        console.print(f"[yellow]No macros found in {registry.macros_path}[/yellow]")
        return

    table = Table(title=f"Macros ({len(macros)})", border_style="cyan")
    table.add_column("Name", style="bold")
    table.add_column("Description")
    table.add_column("Steps", justify="right")
    table.add_column("Parameters")
    for info in macros:
        params = ", ".join(f"{p.name}*" if p.required else p.name for p in info.parameters)
        table.add_row(info.name, info.description or info.display_name, str(info.step_count), params or "[dim]-[/dim]")
    output_console.print(table)

    if errors:
        console.print()
        console.print(f"[bold red]{len(errors)} file(s) failed to load:[/bold red]")
        for err in errors:
            console.print(f"  [red]✗[/red] [bold]{err.file_path}[/bold]  {err.error}")
