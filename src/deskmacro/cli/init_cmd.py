"""deskmacro init -- Initialize a .deskmacro/ project directory.

Creates the directory structure, config template, a sample macro and a
sample product knowledge base.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.tree import Tree

from deskmacro.models import PROJECT_DIR_NAME

console = Console()

# ── Sample file contents ──────────────────────────────────────────────────

_SAMPLE_CONFIG = """\
# deskmacro project configuration

# Macro library, relative to this directory.
# DESKMACRO_MACROS_PATH overrides it.
macros_dir: macros

# Where screenshot steps write their images
screenshots_dir: screenshots

# Automation backend factory ("package.module:callable")
# backend: my_uia_backend:create_backend

# Default per-step timeout and locate retry interval (seconds)
step_timeout: 5
retry_interval: 0.5

# Timeout for launch / wait_for_window steps (seconds)
launch_timeout: 30
window_poll_interval: 0.5

# Reload macros when files under macros_dir change
watch: true
reload_debounce_ms: 500

recording:
  typing_coalesce_ms: 300
  chord_window_ms: 500
  wait_threshold_sec: 1.5
  max_wait_sec: 10
  find_timeout: 10
"""

_SAMPLE_MACRO = """\
name: Save As
description: Save the current Notepad document under a new file name
timeout: 60

parameters:
  - name: file_path
    description: Full path of the file to write
    required: true

steps:
  - action: focus
  - action: send_keys
    keys: Ctrl+Shift+S
  - action: find
    automation_id: "1001"
    control_type: Edit
    save_as: file_name_box
    timeout: 10
  - action: set_value
    ref: file_name_box
    value: "{{file_path}}"
  - action: send_keys
    keys: Enter
"""

_SAMPLE_KNOWLEDGE = """\
kind: knowledge-base

application:
  name: Notepad
  process_name: notepad
  exe_path: 'C:\\Windows\\System32\\notepad.exe'

keyboard_shortcuts:
  - key: Ctrl+S
    action: Save
  - key: Ctrl+Shift+S
    action: Save As

navigation_tips:
  - The Save As dialog file name box has automation id 1001.
"""

_SAMPLE_PRODUCT = "notepad"


def init(
    dir: Path = typer.Option(
        Path("."),
        "--dir",
        "-d",
        help="Parent directory for .deskmacro/ project. Defaults to current directory.",
    ),
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Overwrite existing .deskmacro/ directory.",
    ),
) -> None:
    """Initialize a new deskmacro project directory.

    Creates .deskmacro/ with a config.yaml template, a macros/ library
    holding one sample macro and knowledge base, and screenshots/.
    """
    project_dir = dir.resolve() / PROJECT_DIR_NAME

    if project_dir.exists() and not force:
        console.print(
            Panel(
                f"[yellow]Directory already exists:[/yellow] {project_dir}\n\nUse [bold]--force[/bold] to overwrite.",
                title="Already Initialized",
                border_style="yellow",
            )
        )
        raise typer.Exit(code=2)

    product_dir = project_dir / "macros" / _SAMPLE_PRODUCT
    product_dir.mkdir(parents=True, exist_ok=True)
    (project_dir / "screenshots").mkdir(parents=True, exist_ok=True)

    (project_dir / "config.yaml").write_text(_SAMPLE_CONFIG, encoding="utf-8")
    (product_dir / "save-as.yaml").write_text(_SAMPLE_MACRO, encoding="utf-8")
    (product_dir / "_knowledge.yaml").write_text(_SAMPLE_KNOWLEDGE, encoding="utf-8")

    # Display result as a Rich tree
    tree = Tree(f"[bold green]{project_dir}[/bold green]", guide_style="dim")
    tree.add("[cyan]config.yaml[/cyan]")
    macros = tree.add("[blue]macros/[/blue]")
    product = macros.add(f"[blue]{_SAMPLE_PRODUCT}/[/blue]")
    for child in sorted(product_dir.iterdir()):
        if child.is_file():
            product.add(f"[dim]{child.name}[/dim]")
    tree.add("[blue]screenshots/[/blue]")

    console.print()
    console.print(
        Panel(
            tree,
            title="[bold green]deskmacro Initialized[/bold green]",
            border_style="green",
        )
    )
    console.print()
    console.print("[dim]Next steps:[/dim]")
    console.print("  1. Set [cyan]backend:[/cyan] in [cyan].deskmacro/config.yaml[/cyan]")
    console.print(f"  2. Run [bold]deskmacro validate[/bold], then [bold]deskmacro run {_SAMPLE_PRODUCT}/save-as -p file_path=...[/bold]")
    console.print("  3. Record your own with [bold]deskmacro record <product>/<name>[/bold]")
    console.print()
