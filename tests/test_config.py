"""Unit tests for deskmacro.config -- DeskMacroConfig and related functions."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from deskmacro.config import DeskMacroConfig, DeskMacroConfigError, RecordingConfig, find_project_dir
from deskmacro.models import DEFAULT_STEP_TIMEOUT, SEQUENTIAL_CHORD_MS, TYPING_COALESCE_MS


def _write_config(project: Path, data: dict | str) -> Path:
    project.mkdir(parents=True, exist_ok=True)
    path = project / "config.yaml"
    path.write_text(data if isinstance(data, str) else yaml.safe_dump(data), encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def _no_env_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DESKMACRO_MACROS_PATH", raising=False)


# ---------------------------------------------------------------------------
# 1. Default values
# ---------------------------------------------------------------------------

class TestDeskMacroConfigDefaults:
    """DeskMacroConfig should have sensible defaults for every field."""

    def test_execution_defaults(self):
        cfg = DeskMacroConfig()
        assert cfg.step_timeout == DEFAULT_STEP_TIMEOUT
        assert cfg.retry_interval == 0.5
        assert cfg.launch_timeout == 30
        assert cfg.backend is None
        assert cfg.watch is True

    def test_recording_defaults(self):
        rec = RecordingConfig()
        assert rec.typing_coalesce_ms == TYPING_COALESCE_MS
        assert rec.chord_window_ms == SEQUENTIAL_CHORD_MS
        assert rec.wait_threshold_sec == 1.5
        assert rec.max_wait_sec == 10.0

    def test_for_project_without_config_file(self, tmp_path: Path):
        project = tmp_path / ".deskmacro"
        cfg = DeskMacroConfig.for_project(project)
        assert cfg.project_dir == project
        assert cfg.macros_dir == project / "macros"
        assert cfg.screenshots_dir == project / "screenshots"


# ---------------------------------------------------------------------------
# 2. Loading from YAML
# ---------------------------------------------------------------------------

class TestDeskMacroConfigFromFile:
    def test_values_loaded(self, tmp_path: Path):
        path = _write_config(
            tmp_path / ".deskmacro",
            {
                "macros_dir": "library",
                "backend": "acme.uia:create",
                "step_timeout": 8,
                "watch": False,
                "reload_debounce_ms": 250,
                "recording": {"typing_coalesce_ms": 400, "find_timeout": 4},
            },
        )
        cfg = DeskMacroConfig.from_file(path)

        assert cfg.macros_dir == tmp_path / ".deskmacro" / "library"
        assert cfg.backend == "acme.uia:create"
        assert cfg.step_timeout == 8.0
        assert cfg.watch is False
        assert cfg.reload_debounce_ms == 250
        assert cfg.recording.typing_coalesce_ms == 400
        assert cfg.recording.find_timeout == 4.0
        assert cfg.recording.chord_window_ms == SEQUENTIAL_CHORD_MS

    def test_env_overrides_macros_dir(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("DESKMACRO_MACROS_PATH", str(tmp_path / "shared"))
        path = _write_config(tmp_path / ".deskmacro", {"macros_dir": "library"})
        assert DeskMacroConfig.from_file(path).macros_dir == tmp_path / "shared"

    def test_empty_file_gives_defaults(self, tmp_path: Path):
        path = _write_config(tmp_path / ".deskmacro", "")
        assert DeskMacroConfig.from_file(path).step_timeout == DEFAULT_STEP_TIMEOUT

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(DeskMacroConfigError, match="Config file not found"):
            DeskMacroConfig.from_file(tmp_path / "config.yaml")

    def test_invalid_yaml(self, tmp_path: Path):
        path = _write_config(tmp_path / ".deskmacro", "step_timeout: [unclosed\n")
        with pytest.raises(DeskMacroConfigError, match="Invalid YAML"):
            DeskMacroConfig.from_file(path)

    def test_non_mapping(self, tmp_path: Path):
        path = _write_config(tmp_path / ".deskmacro", "- a\n- b\n")
        with pytest.raises(DeskMacroConfigError, match="must be a YAML mapping"):
            DeskMacroConfig.from_file(path)

    def test_bad_value(self, tmp_path: Path):
        path = _write_config(tmp_path / ".deskmacro", {"step_timeout": "soon"})
        with pytest.raises(DeskMacroConfigError, match="Invalid config value"):
            DeskMacroConfig.from_file(path)

    def test_recording_must_be_mapping(self, tmp_path: Path):
        path = _write_config(tmp_path / ".deskmacro", {"recording": [1, 2]})
        with pytest.raises(DeskMacroConfigError, match="'recording' must be a mapping"):
            DeskMacroConfig.from_file(path)


# ---------------------------------------------------------------------------
# 3. Backend loading
# ---------------------------------------------------------------------------

class TestLoadBackend:
    """load_backend() imports a "module:factory" string and calls it."""

    def test_not_configured(self):
        with pytest.raises(DeskMacroConfigError, match="No automation backend configured"):
            DeskMacroConfig().load_backend()

    def test_malformed(self):
        with pytest.raises(DeskMacroConfigError, match="Expected 'package.module:factory'"):
            DeskMacroConfig(backend="no_colon_here").load_backend()

    def test_module_not_importable(self):
        with pytest.raises(DeskMacroConfigError, match="Cannot import backend module"):
            DeskMacroConfig(backend="deskmacro_no_such_module:create").load_backend()

    def test_factory_missing(self):
        with pytest.raises(DeskMacroConfigError, match="'nothing' not found"):
            DeskMacroConfig(backend="deskmacro.models:nothing").load_backend()

    def test_factory_called(self):
        assert DeskMacroConfig(backend="collections:OrderedDict").load_backend() == {}


# ---------------------------------------------------------------------------
# 4. find_project_dir
# ---------------------------------------------------------------------------

class TestFindProjectDir:
    def test_searches_upward(self, tmp_path: Path):
        (tmp_path / ".deskmacro").mkdir()
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_project_dir(nested) == (tmp_path / ".deskmacro").resolve()

    def test_falls_back_to_start(self, tmp_path: Path):
        assert find_project_dir(tmp_path) == tmp_path.resolve() / ".deskmacro"
