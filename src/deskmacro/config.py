"""deskmacro project configuration."""

from __future__ import annotations

import importlib
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from deskmacro.models import (
    DEFAULT_LAUNCH_TIMEOUT,
    DEFAULT_RECORDING_FIND_TIMEOUT,
    DEFAULT_RETRY_INTERVAL,
    DEFAULT_STEP_TIMEOUT,
    DEFAULT_WINDOW_POLL_INTERVAL,
    MACRO_RELOAD_DEBOUNCE_MS,
    MACROS_PATH_ENV,
    MAX_RECORDED_WAIT_SEC,
    PROJECT_DIR_NAME,
    SEQUENTIAL_CHORD_MS,
    TYPING_COALESCE_MS,
    WAIT_DETECTION_THRESHOLD_SEC,
)


class DeskMacroConfigError(Exception):
    """Raised when configuration is invalid or missing."""

    pass


@dataclass
class RecordingConfig:
    typing_coalesce_ms: int = TYPING_COALESCE_MS
    chord_window_ms: int = SEQUENTIAL_CHORD_MS
    wait_threshold_sec: float = WAIT_DETECTION_THRESHOLD_SEC
    max_wait_sec: float = MAX_RECORDED_WAIT_SEC
    find_timeout: float = DEFAULT_RECORDING_FIND_TIMEOUT


@dataclass
class DeskMacroConfig:
    """Configuration for a deskmacro project."""

    # Paths
    project_dir: Path = field(default_factory=lambda: Path(PROJECT_DIR_NAME))
    macros_dir: Path = field(default_factory=lambda: Path(PROJECT_DIR_NAME) / "macros")
    screenshots_dir: Path = field(default_factory=lambda: Path(PROJECT_DIR_NAME) / "screenshots")

    # Automation backend factory, "package.module:callable"
    backend: str | None = None

    # Execution
    step_timeout: float = DEFAULT_STEP_TIMEOUT
    retry_interval: float = DEFAULT_RETRY_INTERVAL
    launch_timeout: float = DEFAULT_LAUNCH_TIMEOUT
    window_poll_interval: float = DEFAULT_WINDOW_POLL_INTERVAL

    # Hot reload
    watch: bool = True
    reload_debounce_ms: int = MACRO_RELOAD_DEBOUNCE_MS

    recording: RecordingConfig = field(default_factory=RecordingConfig)

    @classmethod
    def from_file(cls, config_path: Path) -> DeskMacroConfig:
        """Load config from a YAML file."""
        if not config_path.exists():
            raise DeskMacroConfigError(f"Config file not found: {config_path}\n\nTo fix: deskmacro init")
        with open(config_path, encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise DeskMacroConfigError(f"Invalid YAML in {config_path}: {exc}") from exc
        if not isinstance(data, dict):
            raise DeskMacroConfigError(f"Config file must be a YAML mapping: {config_path}")
        return cls._from_dict(data, config_path.parent)

    @classmethod
    def for_project(cls, project_dir: Path) -> DeskMacroConfig:
        """Config for *project_dir*: its config.yaml if present, else defaults."""
        config_path = project_dir / "config.yaml"
        if config_path.is_file():
            return cls.from_file(config_path)
        return cls._from_dict({}, project_dir)

    @classmethod
    def _from_dict(cls, data: dict[str, Any], project_dir: Path) -> DeskMacroConfig:
        """Create config from a dictionary."""
        config = cls()
        config.project_dir = project_dir

        env_macros = os.environ.get(MACROS_PATH_ENV)
        if env_macros:
            config.macros_dir = Path(env_macros)
        elif "macros_dir" in data:
            config.macros_dir = project_dir / data["macros_dir"]
        else:
            config.macros_dir = project_dir / "macros"

        if "screenshots_dir" in data:
            config.screenshots_dir = project_dir / data["screenshots_dir"]
        else:
            config.screenshots_dir = project_dir / "screenshots"

        if data.get("backend"):
            config.backend = str(data["backend"])

        try:
            if "step_timeout" in data:
                config.step_timeout = float(data["step_timeout"])
            if "retry_interval" in data:
                config.retry_interval = float(data["retry_interval"])
            if "launch_timeout" in data:
                config.launch_timeout = float(data["launch_timeout"])
            if "window_poll_interval" in data:
                config.window_poll_interval = float(data["window_poll_interval"])
            if "watch" in data:
                config.watch = bool(data["watch"])
            if "reload_debounce_ms" in data:
                config.reload_debounce_ms = int(data["reload_debounce_ms"])

            rec = data.get("recording") or {}
            if not isinstance(rec, dict):
                raise DeskMacroConfigError("'recording' must be a mapping")
            if "typing_coalesce_ms" in rec:
                config.recording.typing_coalesce_ms = int(rec["typing_coalesce_ms"])
            if "chord_window_ms" in rec:
                config.recording.chord_window_ms = int(rec["chord_window_ms"])
            if "wait_threshold_sec" in rec:
                config.recording.wait_threshold_sec = float(rec["wait_threshold_sec"])
            if "max_wait_sec" in rec:
                config.recording.max_wait_sec = float(rec["max_wait_sec"])
            if "find_timeout" in rec:
                config.recording.find_timeout = float(rec["find_timeout"])
        except (TypeError, ValueError) as exc:
            raise DeskMacroConfigError(f"Invalid config value: {exc}") from exc

        return config

    def load_backend(self) -> Any:
        """Import and call the configured backend factory."""
        if not self.backend:
            raise DeskMacroConfigError(
                "No automation backend configured.\n\n"
                "To fix: set 'backend: package.module:factory' in .deskmacro/config.yaml"
            )
        module_name, _, attr = self.backend.partition(":")
        if not module_name or not attr:
            raise DeskMacroConfigError(f"Invalid backend '{self.backend}'. Expected 'package.module:factory'")
        try:
            module = importlib.import_module(module_name)
        except ImportError as exc:
            raise DeskMacroConfigError(f"Cannot import backend module '{module_name}': {exc}") from exc
        factory = getattr(module, attr, None)
        if factory is None or not callable(factory):
            raise DeskMacroConfigError(f"Backend factory '{attr}' not found in '{module_name}'")
        return factory()


def find_project_dir(start: Path | None = None) -> Path:
    """Find the .deskmacro/ project directory, searching upward from *start*."""
    current = (start or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        candidate = directory / PROJECT_DIR_NAME
        if candidate.is_dir():
            return candidate
    return current / PROJECT_DIR_NAME
