"""deskmacro CLI -- Main Typer entry point.

Registers all subcommands and provides --version / --verbose global options.
"""

from __future__ import annotations

import typer
from rich.console import Console

from deskmacro import __version__

TAGLINE = "Record, replay and share desktop UI macros."

console = Console()

# ── Version callback ──────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"deskmacro v{__version__}", style="bold cyan")
        console.print(f"  {TAGLINE}", style="dim")
        raise typer.Exit()


# ── Main app ──────────────────────────────────────────────────────────────

app = typer.Typer(
    name="deskmacro",
    help=TAGLINE,
    rich_markup_mode="rich",
    no_args_is_help=True,
    add_completion=False,
)


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show deskmacro version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output.",
    ),
) -> None:
    """deskmacro -- YAML macros for desktop applications.

    Macros are plain YAML files: find elements, click, type, send keys.
    """
    if verbose:
        import logging

        logging.basicConfig(level=logging.DEBUG, format="%(name)s  %(message)s")


# ── Register subcommands ──────────────────────────────────────────────────

from deskmacro.cli.init_cmd import init  # noqa: E402
from deskmacro.cli.knowledge import knowledge  # noqa: E402
from deskmacro.cli.list_cmd import list_macros  # noqa: E402
from deskmacro.cli.record import record  # noqa: E402
from deskmacro.cli.run import run  # noqa: E402
from deskmacro.cli.validate import validate  # noqa: E402

app.command(name="init", help="Initialize a .deskmacro/ project directory.")(init)
app.command(name="list", help="List loaded macros and load errors.")(list_macros)
app.command(name="validate", help="Validate macro YAML files without running them.")(validate)
app.command(name="run", help="Run a macro against the configured automation backend.")(run)
app.command(name="record", help="Record a new macro from live mouse and keyboard input.")(record)
app.command(name="knowledge", help="Show product knowledge base summaries.")(knowledge)
