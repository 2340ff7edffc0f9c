"""deskmacro record -- Record a macro from live mouse and keyboard input.

Needs the ``record`` extra (pynput) and a configured backend that can map
screen points to UI elements.
"""

from __future__ import annotations

import threading
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from deskmacro.cli.common import load_config_or_exit, resolve_project_dir
from deskmacro.config import DeskMacroConfigError
from deskmacro.engine.recorder import InputRecorder, RecordingResult
from deskmacro.engine.registry import MacroRegistry
from deskmacro.engine.definition import MacroDefinition
from deskmacro.engine.serializer import macro_to_yaml, parameter_to_dict, step_to_dict

console = Console(stderr=True)
output_console = Console()

_POLL_SECONDS = 0.25


def record(
    name: str = typer.Argument(..., help="Macro name, e.g. 'notepad/save-as' or just 'save-as'."),
    attach: str | None = typer.Option(
        None,
        "--attach",
        "-a",
        help="Process name to attach to before recording.",
    ),
    description: str = typer.Option("", "--description", help="Description stored in the macro."),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing macro."),
    dir: Path | None = typer.Option(
        None,
        "--dir",
        "-d",
        help="deskmacro project directory. Defaults to auto-detected .deskmacro/ from cwd.",
    ),
) -> None:
    """Record clicks and keystrokes in the attached application.

    Press Ctrl+C to stop.  The recording is saved to the macro library,
    in the product folder whose knowledge base matches the attached process
    unless NAME already includes a folder.
    """
    config = load_config_or_exit(resolve_project_dir(dir))
    try:
        backend = config.load_backend()
    except DeskMacroConfigError as exc:
        console.print(Panel(f"[red]{exc}[/red]", title="[red]Backend Error[/red]", border_style="red"))
        raise typer.Exit(code=2)

    if attach:
        ok, message = backend.attach(attach)
        if not ok:
            console.print(Panel(f"[red]{message}[/red]", title="[red]Attach Failed[/red]", border_style="red"))
            raise typer.Exit(code=2)
        console.print(f"[dim]{message}[/dim]")

    with MacroRegistry(config.macros_dir, watch=False) as registry:
        placement = registry.check_save_target(name, force=force, attached_process_name=attach)
    if not placement.ok:
        console.print(Panel(f"[red]{placement.message}[/red]", title="[red]Cannot Save Here[/red]", border_style="red"))
        raise typer.Exit(code=2)

    rec = config.recording
    recorder = InputRecorder(
        backend,
        typing_coalesce_ms=rec.typing_coalesce_ms,
        chord_window_ms=rec.chord_window_ms,
        wait_threshold_sec=rec.wait_threshold_sec,
        max_wait_sec=rec.max_wait_sec,
        find_timeout=rec.find_timeout,
    )

    # Live hooks need the optional record extra (pynput)
    from deskmacro.engine.hooks import PynputEventSource

    try:
        source = PynputEventSource(recorder, foreground_check=getattr(backend, "is_target_foreground", None))
    except RuntimeError as exc:
        console.print(Panel(f"[red]{exc}[/red]", title="[red]Import Error[/red]", border_style="red"))
        raise typer.Exit(code=3)

    ok, message = recorder.start(name)
    if not ok:
        console.print(Panel(f"[red]{message}[/red]", title="[red]Recording Error[/red]", border_style="red"))
        raise typer.Exit(code=2)

    console.print(f"[bold red]●[/bold red] {message}")
    console.print("[dim]Press Ctrl+C to stop.[/dim]")
    stop = threading.Event()
    with source:
        try:
            while not stop.wait(_POLL_SECONDS):
                pass
        except KeyboardInterrupt:
            stop.set()

    result = recorder.stop(description)
    if not result.success or result.macro is None:
        console.print(Panel(f"[yellow]{result.message}[/yellow]", border_style="yellow"))
        raise typer.Exit(code=1)

    _print_recording(result)
    save_recording(config.macros_dir, name, result.macro, force=force, attach=attach)


def save_recording(
    macros_dir: Path,
    name: str,
    macro: MacroDefinition,
    force: bool = False,
    attach: str | None = None,
) -> None:
    """Save a recorded macro; on failure print its YAML to stdout and exit 1."""
    with MacroRegistry(macros_dir, watch=False) as registry:
        saved = registry.save_macro(
            name,
            macro.description,
            [step_to_dict(s) for s in macro.steps],
            parameters=[parameter_to_dict(p) for p in macro.parameters] or None,
            force=force,
            attached_process_name=attach,
        )

    if not saved.ok:
        console.print(
            Panel(
                f"[red]{saved.message}[/red]\n\nThe recorded macro is printed below so it is not lost.",
                title="[red]Save Failed[/red]",
                border_style="red",
            )
        )
        output_console.print(macro_to_yaml(macro), markup=False, highlight=False, soft_wrap=True)
        raise typer.Exit(code=1)
    console.print(Panel(f"[green]{saved.message}[/green]", title="[bold green]Recording Saved[/bold green]", border_style="green"))


def _print_recording(result: RecordingResult) -> None:
    table = Table(title=result.message, border_style="cyan")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Action", style="bold")
    table.add_column("Target / Input")
    table.add_column("Wait", justify="right")
    for i, action in enumerate(result.actions, start=1):
        target = action.text or action.keys or action.automation_id or action.element_name or action.class_name or ""
        wait = f"{action.wait_before_sec:.1f}s" if action.wait_before_sec else ""
        table.add_row(str(i), action.type.value, target, wait)
    console.print(table)
