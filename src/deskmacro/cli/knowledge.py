"""deskmacro knowledge -- Show product knowledge base summaries."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from deskmacro.cli.common import load_config_or_exit, resolve_project_dir
from deskmacro.engine.registry import MacroRegistry

console = Console()


def knowledge(
    product: str | None = typer.Argument(None, help="Only show this product's knowledge base."),
    dir: Path | None = typer.Option(
        None,
        "--dir",
        "-d",
        help="deskmacro project directory. Defaults to auto-detected .deskmacro/ from cwd.",
    ),
    raw: bool = typer.Option(False, "--raw", help="Print the knowledge base YAML instead of the summary."),
) -> None:
    """Print the summary of every knowledge base in the macro library."""
    config = load_config_or_exit(resolve_project_dir(dir))
    registry = MacroRegistry(config.macros_dir)

    if product is not None:
        kb = registry.get_knowledge_base(product)
        if kb is None:
            console.print(f"[red]No knowledge base for product '{product}'[/red]")
            raise typer.Exit(code=1)
        bases = [kb]
    else:
        bases = registry.knowledge_bases

    if not bases:
        console.print(
            Panel(
                f"No knowledge bases found in {registry.macros_path}\n\n"
                "Add a [cyan]_knowledge.yaml[/cyan] with [cyan]kind: knowledge-base[/cyan] to a product folder.",
                border_style="yellow",
            )
        )
        return

    for kb in bases:
        body = kb.raw_yaml.rstrip() if raw else kb.summary
        console.print(Panel(Text(body), title=f"[bold]{kb.product_name}[/bold]", subtitle=f"[dim]{kb.file_path}[/dim]", border_style="cyan"))
