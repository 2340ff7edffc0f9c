"""deskmacro validate -- Check macro YAML files without running them.

Parses every macro under the macros directory, checks it against the
packaged JSON Schema and the loader's own rules, and reports errors and
warnings.  No backend is needed.
"""

from __future__ import annotations

import json
import re
from functools import lru_cache
from pathlib import Path
from typing import Any

import typer
import yaml
from jsonschema import Draft7Validator
from rich.console import Console
from rich.panel import Panel

from deskmacro.cli.common import load_config_or_exit, resolve_project_dir
from deskmacro.engine.definition import MacroDefinition
from deskmacro.engine.errors import MacroError
from deskmacro.engine.keys import control_type_id, parse_key_spec

console = Console(stderr=True)

_SCHEMA_PATH = Path(__file__).resolve().parents[1] / "schemas" / "macro.schema.json"
_PLACEHOLDER = re.compile(r"\{\{\w+\}\}")
_CACHE_KEY = re.compile(r"^e\d+$")

# ── Severity ordering ─────────────────────────────────────────────────────

_SEVERITY_ORDER = {"error": 0, "warning": 1, "info": 2}


@lru_cache(maxsize=1)
def _schema_validator() -> Draft7Validator:
    return Draft7Validator(json.loads(_SCHEMA_PATH.read_text(encoding="utf-8")))


# ── Validation helpers ────────────────────────────────────────────────────


def validate_macro_file(path: Path, known_macros: set[str] | None = None) -> list[dict[str, Any]]:
    """Validate one macro file.  Returns a list of issue dicts."""
    issues: list[dict[str, Any]] = []

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as exc:
        issues.append({"severity": "error", "field": "yaml_syntax", "message": f"YAML parse error: {exc}"})
        return issues

    if not isinstance(data, dict):
        issues.append({"severity": "error", "field": "root", "message": "Macro file must be a YAML mapping"})
        return issues

    for err in sorted(_schema_validator().iter_errors(data), key=lambda e: list(e.path)):
        loc = ".".join(str(p) for p in err.path) if err.path else "root"
        issues.append({"severity": "error", "field": f"schema.{loc}", "message": f"Schema validation error: {err.message}"})

    try:
        macro = MacroDefinition.from_dict(data, fallback_name=path.stem)
    except MacroError as exc:
        issues.append({"severity": "error", "field": "steps", "message": exc.message})
        return issues

    issues.extend(_lint_steps(macro, known_macros))
    return issues


def _lint_steps(macro: MacroDefinition, known_macros: set[str] | None) -> list[dict[str, Any]]:
    """Warnings the loader accepts but that usually mean a typo."""
    issues: list[dict[str, Any]] = []
    aliases: set[str] = set()
    declared = {p.name for p in macro.parameters}

    for index, step in enumerate(macro.steps):
        field = f"steps[{index}]"

        if step.control_type and not _PLACEHOLDER.search(step.control_type) and control_type_id(step.control_type) is None:
            issues.append(
                {"severity": "warning", "field": f"{field}.control_type", "message": f"Unknown control type '{step.control_type}'"}
            )

        if step.keys and not _PLACEHOLDER.search(step.keys):
            try:
                parse_key_spec(step.keys)
            except ValueError as exc:
                issues.append({"severity": "warning", "field": f"{field}.keys", "message": str(exc)})

        if step.ref is not None and step.ref.lower() not in aliases and not _CACHE_KEY.match(step.ref):
            issues.append(
                {
                    "severity": "warning",
                    "field": f"{field}.ref",
                    "message": f"ref '{step.ref}' is not bound by an earlier save_as",
                }
            )
        if step.save_as:
            aliases.add(step.save_as.lower())

        if (
            step.action == "macro"
            and known_macros is not None
            and step.macro_name
            and not _PLACEHOLDER.search(step.macro_name)
            and step.macro_name.lower() not in known_macros
        ):
            issues.append(
                {"severity": "warning", "field": f"{field}.macro_name", "message": f"Nested macro '{step.macro_name}' not found"}
            )

        for text in _substitutable_values(step):
            for placeholder in _PLACEHOLDER.findall(text):
                name = placeholder[2:-2]
                if name not in declared:
                    issues.append(
                        {
                            "severity": "warning",
                            "field": field,
                            "message": f"Placeholder {placeholder} does not match a declared parameter",
                        }
                    )

    return issues


def _substitutable_values(step: Any) -> list[str]:
    values = [
        step.automation_id,
        step.name,
        step.class_name,
        step.control_type,
        step.text,
        step.value,
        step.keys,
        step.process_name,
        step.macro_name,
        step.exe_path,
        step.arguments,
        step.working_directory,
        step.title_contains,
    ]
    values.extend(step.path or [])
    values.extend((step.params or {}).values())
    return [v for v in values if v]


def _known_macro_names(macros_dir: Path) -> set[str]:
    return {
        p.relative_to(macros_dir).as_posix()[: -len(".yaml")].lower()
        for p in macros_dir.rglob("*.yaml")
        if not p.name.startswith("_")
    }


# ── CLI command ───────────────────────────────────────────────────────────


def validate(
    dir: Path | None = typer.Option(
        None,
        "--dir",
        "-d",
        help="deskmacro project directory. Defaults to auto-detected .deskmacro/ from cwd.",
    ),
    strict: bool = typer.Option(
        False,
        "--strict",
        help="Exit 1 on warnings as well as errors (default: exit 1 on errors only).",
    ),
) -> None:
    """Validate macro YAML files without running them.

    \b
    Examples:
      deskmacro validate             # Validate every macro
      deskmacro validate --strict    # Fail on warnings too
    """
    config = load_config_or_exit(resolve_project_dir(dir))

    macros_dir = config.macros_dir
    files = sorted(p for p in macros_dir.rglob("*.yaml") if not p.name.startswith("_")) if macros_dir.is_dir() else []
    if not files:
        console.print(
            Panel(
                "[yellow]No macro files found to validate.[/yellow]\n\n"
                f"Looked in: {macros_dir}\n\n"
                "Run [bold]deskmacro init[/bold] to scaffold a sample macro.",
                title="No Files Found",
                border_style="yellow",
            )
        )
        raise typer.Exit(code=0)

    known = _known_macro_names(macros_dir)
    total_errors = 0
    total_warnings = 0
    for path in files:
        issues = validate_macro_file(path, known)
        total_errors += sum(1 for i in issues if i["severity"] == "error")
        total_warnings += sum(1 for i in issues if i["severity"] == "warning")
        _print_file_result(path, issues, macros_dir)

    # ── Summary ────────────────────────────────────────────────────────
    console.print()
    if total_errors == 0 and total_warnings == 0:
        console.print(Panel("[bold green]All macros valid. No errors or warnings.[/bold green]", border_style="green"))
    elif total_errors > 0:
        console.print(
            Panel(
                f"[bold red]Validation failed.[/bold red]  {total_errors} error(s), {total_warnings} warning(s)",
                border_style="red",
            )
        )
        raise typer.Exit(code=1)
    elif strict:
        console.print(
            Panel(
                f"[bold yellow]Validation warnings found (--strict mode).[/bold yellow]  {total_warnings} warning(s)",
                border_style="yellow",
            )
        )
        raise typer.Exit(code=1)
    else:
        console.print(
            Panel(
                f"[yellow]Validation passed with {total_warnings} warning(s).[/yellow]  "
                "Use [bold]--strict[/bold] to fail on warnings.",
                border_style="yellow",
            )
        )


def _print_file_result(path: Path, issues: list[dict[str, Any]], macros_dir: Path) -> None:
    """Print validation results for a single file."""
    display_path = path.relative_to(macros_dir).as_posix()
    errors = [i for i in issues if i["severity"] == "error"]
    warnings = [i for i in issues if i["severity"] == "warning"]

    if not issues:
        console.print(f"  [green]✓[/green] [dim]{display_path}[/dim]  [green]OK[/green]")
        return

    if errors:
        status = f"[bold red]{len(errors)} error(s)[/bold red]"
        if warnings:
            status += f", [yellow]{len(warnings)} warning(s)[/yellow]"
        console.print(f"  [red]✗[/red] [bold]{display_path}[/bold]  {status}")
    else:
        console.print(f"  [yellow]![/yellow] [dim]{display_path}[/dim]  [yellow]{len(warnings)} warning(s)[/yellow]")

    for issue in sorted(issues, key=lambda i: _SEVERITY_ORDER.get(i["severity"], 99)):
        label = {"error": "[bold red]ERROR[/bold red]", "warning": "[yellow]WARN[/yellow]"}.get(issue["severity"], issue["severity"])
        field_str = f"[dim] ({issue['field']})[/dim]" if issue.get("field") else ""
        console.print(f"      {label}{field_str}  {issue['message']}")
