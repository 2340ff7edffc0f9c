"""Macro registry: loads every macro under a directory and keeps it current.

Macros are keyed by their path relative to the macros directory, without
the ``.yaml`` suffix and with ``/`` separators (``crm/new-contact``).
Lookups are case-insensitive.  Files whose name starts with ``_`` are
knowledge bases, not macros.

A reload builds a complete new ``_Snapshot`` and swaps it in with a single
assignment, so readers on other threads see either the old set of macros
or the new one, never a mix.
"""

from __future__ import annotations

import dataclasses
import logging
import os
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml

from deskmacro.engine.definition import (
    MacroDefinition,
    MacroInfo,
    MacroLoadError,
    SaveMacroResult,
    validate_steps,
)
from deskmacro.engine.errors import MacroError
from deskmacro.engine.knowledge import KnowledgeBase, load_knowledge_base
from deskmacro.engine.watcher import MacroDirectoryWatcher
from deskmacro.models import MACRO_RELOAD_DEBOUNCE_MS, MACROS_PATH_ENV

logger = logging.getLogger("deskmacro.engine.registry")


def resolve_macros_path(macros_path: Path | str | None = None) -> Path:
    """Explicit path, else ``$DESKMACRO_MACROS_PATH``, else ``./macros``."""
    if macros_path:
        return Path(macros_path)
    env = os.environ.get(MACROS_PATH_ENV)
    if env:
        return Path(env)
    return Path.cwd() / "macros"


@dataclasses.dataclass(frozen=True)
class _Snapshot:
    # lower-cased key -> (key, definition)
    macros: dict[str, tuple[str, MacroDefinition]]
    load_errors: tuple[MacroLoadError, ...]
    # lower-cased product name -> knowledge base
    knowledge_bases: dict[str, KnowledgeBase]


_EMPTY = _Snapshot({}, (), {})


class MacroRegistry:
    """Loaded macros and knowledge bases for one macros directory."""

    def __init__(
        self,
        macros_path: Path | str | None = None,
        *,
        watch: bool = False,
        debounce_ms: int = MACRO_RELOAD_DEBOUNCE_MS,
    ) -> None:
        self.macros_path = resolve_macros_path(macros_path)
        self._snapshot = _EMPTY
        self._reload_lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []
        self._watcher: MacroDirectoryWatcher | None = None
        self._debounce_ms = debounce_ms

        self.reload()
        if watch:
            self.start_watching()

    # -- Loading -------------------------------------------------------------

    def reload(self) -> None:
        """Rescan the macros directory and atomically replace the loaded set."""
        with self._reload_lock:
            snapshot = self._scan()
            self._snapshot = snapshot

        parts = []
        if snapshot.macros:
            parts.append(f"{len(snapshot.macros)} macros")
        if snapshot.knowledge_bases:
            parts.append(f"{len(snapshot.knowledge_bases)} knowledge base(s)")
        if snapshot.load_errors:
            parts.append(f"{len(snapshot.load_errors)} errors")
        if parts:
            logger.info("Reloaded: %s", ", ".join(parts))

        for callback in list(self._callbacks):
            callback()

    def _scan(self) -> _Snapshot:
        if not self.macros_path.is_dir():
            logger.debug("Macros directory %s does not exist", self.macros_path)
            return _EMPTY

        macros: dict[str, tuple[str, MacroDefinition]] = {}
        errors: list[MacroLoadError] = []
        knowledge: dict[str, KnowledgeBase] = {}

        for path in sorted(self.macros_path.rglob("*.yaml")):
            if not path.is_file():
                continue
            relative = path.relative_to(self.macros_path).as_posix()

            if path.name.startswith("_"):
                try:
                    kb = load_knowledge_base(path, relative)
                except (OSError, UnicodeDecodeError, yaml.YAMLError) as exc:
                    logger.warning("Failed to load knowledge base '%s': %s", relative, exc)
                    continue
                if kb is not None:
                    knowledge[kb.product_name.lower()] = kb
                continue

            key = relative[: -len(".yaml")]
            try:
                data = yaml.safe_load(path.read_text(encoding="utf-8"))
                macro = MacroDefinition.from_dict(data, fallback_name=key.rsplit("/", 1)[-1])
            except (OSError, UnicodeDecodeError, yaml.YAMLError, MacroError) as exc:
                logger.warning("Failed to load macro '%s': %s", relative, exc)
                errors.append(MacroLoadError(file_path=relative, macro_name=key, error=str(exc)))
                continue
            macros[key.lower()] = (key, macro)

        return _Snapshot(macros, tuple(errors), knowledge)

    def on_reloaded(self, callback: Callable[[], None]) -> None:
        """Register *callback* to run after every reload."""
        self._callbacks.append(callback)

    # -- Watching ------------------------------------------------------------

    def start_watching(self) -> None:
        if self._watcher is not None:
            return
        if not self.macros_path.is_dir():
            logger.warning("Not watching %s: directory does not exist", self.macros_path)
            return
        self._watcher = MacroDirectoryWatcher(self.macros_path, self.reload, self._debounce_ms)
        self._watcher.start()

    def close(self) -> None:
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None

    def __enter__(self) -> MacroRegistry:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # -- Queries -------------------------------------------------------------

    def get(self, name: str) -> MacroDefinition | None:
        entry = self._snapshot.macros.get(name.replace("\\", "/").lower())
        return entry[1] if entry else None

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.get(name) is not None

    def __len__(self) -> int:
        return len(self._snapshot.macros)

    def list(self) -> list[MacroInfo]:
        """Loaded macros sorted by key."""
        snapshot = self._snapshot
        return [
            MacroInfo(
                name=key,
                display_name=macro.name,
                description=macro.description,
                parameters=list(macro.parameters),
                step_count=len(macro.steps),
            )
            for key, macro in sorted(snapshot.macros.values(), key=lambda e: e[0].lower())
        ]

    @property
    def load_errors(self) -> list[MacroLoadError]:
        return list(self._snapshot.load_errors)

    @property
    def knowledge_bases(self) -> list[KnowledgeBase]:
        return sorted(self._snapshot.knowledge_bases.values(), key=lambda kb: kb.product_name.lower())

    def get_knowledge_base(self, product_name: str) -> KnowledgeBase | None:
        return self._snapshot.knowledge_bases.get(product_name.lower())

    def get_macro_file_path(self, name: str) -> Path | None:
        entry = self._snapshot.macros.get(name.replace("\\", "/").lower())
        if entry is None:
            return None
        return self.macros_path / f"{entry[0]}.yaml"

    def get_product_folder(self, process_name: str) -> str | None:
        """Folder of the knowledge base whose ``application.process_name`` matches."""
        wanted = process_name.lower()
        for kb in self.knowledge_bases:
            if kb.process_name is not None and kb.process_name.lower() == wanted:
                return kb.product_name
        return None

    # -- Saving --------------------------------------------------------------

    def check_save_target(
        self,
        name: str,
        force: bool = False,
        attached_process_name: str | None = None,
    ) -> SaveMacroResult:
        """Resolve where *name* would be saved without writing anything.

        Names without a product folder (``new-contact``) are placed in the
        folder of the knowledge base matching *attached_process_name*.
        The result carries the final ``macro_name`` and ``file_path`` when
        ``ok``; otherwise ``message`` says why a save would be refused.
        """
        name = name.replace("\\", "/").strip("/")
        if "/" in name:
            macro_name = name
        else:
            folder = self.get_product_folder(attached_process_name) if attached_process_name else None
            if folder is None:
                return SaveMacroResult(
                    False,
                    f"Cannot determine product folder for process '{attached_process_name}'. "
                    "No knowledge base has a matching process_name. "
                    f"Include the product folder in the macro name (e.g., 'my-product/{name}').",
                )
            macro_name = name if folder == "default" else f"{folder}/{name}"

        root = self.macros_path.resolve()
        target = self.macros_path / f"{macro_name}.yaml"
        if not target.resolve().is_relative_to(root):
            return SaveMacroResult(False, f"Macro name '{macro_name}' points outside {self.macros_path}")
        if target.exists() and not force:
            return SaveMacroResult(
                False,
                f"Macro '{macro_name}' already exists at {target}. Use force=True to overwrite.",
                str(target),
                macro_name,
            )
        return SaveMacroResult(True, f"Macro '{macro_name}' can be saved to {target}", str(target), macro_name)

    def save_macro(
        self,
        name: str,
        description: str,
        steps: list[dict[str, Any]],
        parameters: list[dict[str, Any]] | None = None,
        timeout: int = 0,
        force: bool = False,
        attached_process_name: str | None = None,
    ) -> SaveMacroResult:
        """Validate *steps* and write a new macro file (see ``check_save_target``)."""
        error = validate_steps(steps)
        if error is not None:
            return SaveMacroResult(False, f"Validation error: {error}")

        placement = self.check_save_target(name, force=force, attached_process_name=attached_process_name)
        if not placement.ok:
            return placement
        macro_name = placement.macro_name
        target = Path(placement.file_path)

        document: dict[str, Any] = {"name": macro_name.rsplit("/", 1)[-1], "description": description}
        if timeout > 0:
            document["timeout"] = timeout
        if parameters:
            document["parameters"] = parameters
        document["steps"] = steps

        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(
            yaml.safe_dump(document, sort_keys=False, allow_unicode=True, default_flow_style=False),
            encoding="utf-8",
        )
        logger.info("Saved macro: %s -> %s", macro_name, target)
        if self._watcher is None:
            self.reload()
        return SaveMacroResult(True, f"Macro '{macro_name}' saved successfully to {target}", str(target), macro_name)
