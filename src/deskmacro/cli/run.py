"""deskmacro run -- Execute a macro against the configured automation backend.

The macro runs on a worker thread so Ctrl+C can cancel it: the main
thread cancels the run's token and the engine stops at the next wait.
"""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path

import typer
import yaml
from rich.console import Console
from rich.panel import Panel

from deskmacro.cli.common import load_config_or_exit, resolve_project_dir
from deskmacro.config import DeskMacroConfigError
from deskmacro.engine.cancellation import CancellationToken
from deskmacro.engine.definition import MacroDefinition, MacroResult
from deskmacro.engine.errors import MacroError
from deskmacro.engine.executor import MacroExecutor
from deskmacro.engine.registry import MacroRegistry
from deskmacro.engine.serializer import load_macro_file

logger = logging.getLogger("deskmacro.cli.run")

console = Console(stderr=True)
output_console = Console()


def parse_param_options(values: list[str]) -> dict[str, str]:
    """``["a=1", "b=x=y"]`` -> ``{"a": "1", "b": "x=y"}``."""
    params: dict[str, str] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"Expected key=value, got {item!r}", param_hint="--param")
        params[key.strip()] = value
    return params


def _load_target(target: str, registry: MacroRegistry) -> tuple[MacroDefinition, str]:
    path = Path(target)
    if path.suffix.lower() == ".yaml" and path.is_file():
        try:
            return load_macro_file(path), path.stem
        except (OSError, yaml.YAMLError, MacroError) as exc:
            console.print(Panel(f"[red]{exc}[/red]", title="[red]Macro Error[/red]", border_style="red"))
            raise typer.Exit(code=2)

    macro = registry.get(target)
    if macro is None:
        known = ", ".join(info.name for info in registry.list()[:10]) or "none"
        console.print(
            Panel(
                f"[red]Macro '{target}' not found[/red]\n\nLoaded macros: {known}\n\n"
                "Run [bold]deskmacro list[/bold] to see all macros.",
                title="[red]Not Found[/red]",
                border_style="red",
            )
        )
        raise typer.Exit(code=2)
    return macro, target


def run(
    target: str = typer.Argument(..., help="Macro name (product/workflow) or path to a macro .yaml file."),
    param: list[str] = typer.Option(
        [],
        "--param",
        "-p",
        help="Macro parameter as key=value. Repeatable.",
    ),
    dir: Path | None = typer.Option(
        None,
        "--dir",
        "-d",
        help="deskmacro project directory. Defaults to auto-detected .deskmacro/ from cwd.",
    ),
    output_format: str = typer.Option(
        "text",
        "--output",
        "-o",
        help="Output format: text or json.  [default: text]",
    ),
) -> None:
    """Run a macro.

    \b
    Examples:
      deskmacro run notepad/save-as -p file_path=C:\\temp\\out.txt
      deskmacro run ./my-macro.yaml --output json
    """
    if output_format not in ("text", "json"):
        console.print(
            Panel(
                f"[red]Invalid output format: {output_format!r}\n\nValid formats: text, json[/red]",
                title="[red]Config Error[/red]",
                border_style="red",
            )
        )
        raise typer.Exit(code=2)

    params = parse_param_options(param)
    config = load_config_or_exit(resolve_project_dir(dir))

    try:
        backend = config.load_backend()
    except DeskMacroConfigError as exc:
        console.print(Panel(f"[red]{exc}[/red]", title="[red]Backend Error[/red]", border_style="red"))
        raise typer.Exit(code=2)

    with MacroRegistry(config.macros_dir, watch=False) as registry:
        macro, display_name = _load_target(target, registry)
        executor = MacroExecutor(
            registry,
            step_timeout=config.step_timeout,
            retry_interval=config.retry_interval,
            launch_timeout=config.launch_timeout,
            window_poll_interval=config.window_poll_interval,
            screenshot_dir=config.screenshots_dir,
        )

        if output_format == "text":
            console.print(f"[bold]Running[/bold] {display_name} [dim]({len(macro.steps)} steps)[/dim]\n")

        def on_log(line: str) -> None:
            if output_format == "text":
                console.print(f"  [dim]{line}[/dim]", highlight=False, markup=False)

        token = CancellationToken()
        outcome: list[MacroResult] = []

        def worker() -> None:
            outcome.append(
                executor.execute(macro, display_name, params, backend=backend, cancellation=token, on_log=on_log)
            )

        start_time = time.monotonic()
        thread = threading.Thread(target=worker, name="deskmacro-run", daemon=True)
        thread.start()
        try:
            while thread.is_alive():
                thread.join(timeout=0.2)
        except KeyboardInterrupt:
            console.print("\n[yellow]Cancelling...[/yellow]")
            logger.debug("Run of %s cancelled from the keyboard", display_name)
            token.cancel()
            thread.join()
        duration = time.monotonic() - start_time

    result = outcome[0]
    if output_format == "json":
        data = result.to_dict()
        data["macro"] = display_name
        data["duration_seconds"] = round(duration, 2)
        output_console.print_json(data=data)
    else:
        _print_result(result, duration)

    if not result.success:
        raise typer.Exit(code=1)


def _print_result(result: MacroResult, duration: float) -> None:
    lines = [
        f"[bold]Steps:[/bold]    {result.steps_executed}/{result.total_steps}",
        f"[bold]Duration:[/bold] {duration:.1f}s",
    ]
    if not result.success:
        if result.failed_step_index is not None:
            lines.append(f"[bold]Failed:[/bold]   step {result.failed_step_index + 1} ({result.failed_action})")
        if result.error_kind:
            lines.append(f"[bold]Kind:[/bold]     {result.error_kind}")
        if result.error and result.error != result.message:
            lines.append(f"[bold]Error:[/bold]    {result.error}")

    console.print()
    console.print(
        Panel(
            "\n".join(lines),
            title=f"[bold green]{result.message}[/bold green]" if result.success else f"[bold red]{result.message}[/bold red]",
            border_style="green" if result.success else "red",
        )
    )
