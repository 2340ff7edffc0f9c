"""Unit tests for deskmacro.engine.registry and the hot-reload watcher."""

from __future__ import annotations

import threading
import time
from pathlib import Path

import pytest
import yaml
from watchdog.events import DirModifiedEvent, FileCreatedEvent, FileModifiedEvent

from deskmacro.engine.registry import MacroRegistry, resolve_macros_path
from deskmacro.engine.watcher import Debouncer, MacroDirectoryHandler


# ---------------------------------------------------------------------------
# 1. Loading
# ---------------------------------------------------------------------------

class TestLoading:
    """The registry loads every macro below its directory."""

    def test_keys_are_relative_paths(self, macros_dir: Path, write_macro, sample_macro_yaml: str):
        write_macro(macros_dir, "crm/new-contact", sample_macro_yaml)
        write_macro(macros_dir, "quick", {"steps": [{"action": "focus"}]})
        registry = MacroRegistry(macros_dir)

        assert len(registry) == 2
        assert [m.name for m in registry.list()] == ["crm/new-contact", "quick"]
        assert registry.get("crm/new-contact").name == "New Contact"

    def test_lookup_is_case_insensitive(self, macros_dir: Path, write_macro):
        write_macro(macros_dir, "CRM/Save", {"steps": [{"action": "focus"}]})
        registry = MacroRegistry(macros_dir)
        assert registry.get("crm/save") is not None
        assert registry.get("crm\\SAVE") is not None
        assert "crm/save" in registry

    def test_display_name_defaults_to_last_segment(self, macros_dir: Path, write_macro):
        write_macro(macros_dir, "crm/export", {"steps": [{"action": "focus"}]})
        info = MacroRegistry(macros_dir).list()[0]
        assert info.display_name == "export"
        assert info.step_count == 1

    def test_bad_files_become_load_errors(self, macros_dir: Path, write_macro):
        write_macro(macros_dir, "good", {"steps": [{"action": "focus"}]})
        write_macro(macros_dir, "empty", "")
        write_macro(macros_dir, "syntax", "steps: [unclosed\n")
        write_macro(macros_dir, "no-steps", {"name": "x", "steps": []})
        write_macro(macros_dir, "bad-action", {"steps": [{"action": "verify"}]})
        registry = MacroRegistry(macros_dir)

        assert [m.name for m in registry.list()] == ["good"]
        errors = {e.macro_name: e.error for e in registry.load_errors}
        assert set(errors) == {"empty", "syntax", "no-steps", "bad-action"}
        assert errors["empty"] == "Macro file is empty"
        assert "at least one step" in errors["no-steps"]
        assert "unknown action" in errors["bad-action"]

    def test_missing_directory_is_empty(self, tmp_path: Path):
        registry = MacroRegistry(tmp_path / "nope")
        assert len(registry) == 0
        assert registry.load_errors == []

    def test_get_macro_file_path(self, macros_dir: Path, write_macro):
        write_macro(macros_dir, "crm/save", {"steps": [{"action": "focus"}]})
        registry = MacroRegistry(macros_dir)
        assert registry.get_macro_file_path("CRM/save") == macros_dir / "crm/save.yaml"
        assert registry.get_macro_file_path("missing") is None

    def test_resolve_macros_path_prefers_env(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
        monkeypatch.setenv("DESKMACRO_MACROS_PATH", str(tmp_path))
        assert resolve_macros_path() == tmp_path
        assert resolve_macros_path(tmp_path / "explicit") == tmp_path / "explicit"


# ---------------------------------------------------------------------------
# 2. Reload
# ---------------------------------------------------------------------------

class TestReload:
    """reload() swaps in a complete new set of macros."""

    def test_reload_picks_up_changes(self, macros_dir: Path, write_macro):
        write_macro(macros_dir, "a", {"steps": [{"action": "focus"}]})
        registry = MacroRegistry(macros_dir)
        write_macro(macros_dir, "b", {"steps": [{"action": "focus"}]})
        (macros_dir / "a.yaml").unlink()

        registry.reload()
        assert [m.name for m in registry.list()] == ["b"]

    def test_reload_callbacks_fire(self, macros_dir: Path):
        registry = MacroRegistry(macros_dir)
        calls: list[int] = []
        registry.on_reloaded(lambda: calls.append(len(registry)))
        registry.reload()
        assert calls == [0]

    def test_readers_never_see_partial_state(self, macros_dir: Path, write_macro):
        for i in range(20):
            write_macro(macros_dir, f"m{i:02d}", {"steps": [{"action": "focus"}]})
        registry = MacroRegistry(macros_dir)
        seen: set[int] = set()
        stop = threading.Event()

        def reader() -> None:
            while not stop.is_set():
                seen.add(len(registry.list()))

        thread = threading.Thread(target=reader)
        thread.start()
        try:
            for _ in range(10):
                registry.reload()
        finally:
            stop.set()
            thread.join()
        assert seen == {20}


# ---------------------------------------------------------------------------
# 3. Knowledge bases
# ---------------------------------------------------------------------------

class TestKnowledgeBases:
    def test_underscore_files_are_knowledge_bases(self, macros_dir: Path, write_macro, sample_knowledge_yaml: str):
        write_macro(macros_dir, "crm/_knowledge", sample_knowledge_yaml)
        write_macro(macros_dir, "crm/save", {"steps": [{"action": "focus"}]})
        registry = MacroRegistry(macros_dir)

        assert len(registry) == 1
        assert [kb.product_name for kb in registry.knowledge_bases] == ["crm"]
        assert registry.get_knowledge_base("CRM").process_name == "AcmeCrm"

    def test_underscore_file_without_kind_is_ignored(self, macros_dir: Path, write_macro):
        write_macro(macros_dir, "_notes", {"hello": "world"})
        registry = MacroRegistry(macros_dir)
        assert registry.knowledge_bases == []
        assert registry.load_errors == []

    def test_product_folder_lookup(self, macros_dir: Path, write_macro, sample_knowledge_yaml: str):
        write_macro(macros_dir, "crm/_knowledge", sample_knowledge_yaml)
        registry = MacroRegistry(macros_dir)
        assert registry.get_product_folder("acmecrm") == "crm"
        assert registry.get_product_folder("notepad") is None


# ---------------------------------------------------------------------------
# 4. save_macro
# ---------------------------------------------------------------------------

class TestSaveMacro:
    """save_macro validates, places and writes new macro files."""

    STEPS = [{"action": "find", "automation_id": "uxOk", "save_as": "ok"}, {"action": "click", "ref": "ok"}]

    def test_save_with_explicit_folder(self, macros_dir: Path):
        registry = MacroRegistry(macros_dir)
        result = registry.save_macro("crm/confirm", "Press OK", self.STEPS)

        assert result.ok is True
        assert result.macro_name == "crm/confirm"
        data = yaml.safe_load((macros_dir / "crm" / "confirm.yaml").read_text(encoding="utf-8"))
        assert data == {"name": "confirm", "description": "Press OK", "steps": self.STEPS}
        assert registry.get("crm/confirm") is not None

    def test_product_folder_from_knowledge_base(self, macros_dir: Path, write_macro, sample_knowledge_yaml: str):
        write_macro(macros_dir, "crm/_knowledge", sample_knowledge_yaml)
        registry = MacroRegistry(macros_dir)
        result = registry.save_macro("confirm", "", self.STEPS, attached_process_name="AcmeCRM")
        assert result.ok is True
        assert result.macro_name == "crm/confirm"

    def test_unknown_product_folder_refused(self, macros_dir: Path):
        result = MacroRegistry(macros_dir).save_macro("confirm", "", self.STEPS, attached_process_name="notepad")
        assert result.ok is False
        assert "Cannot determine product folder for process 'notepad'" in result.message

    def test_invalid_steps_refused(self, macros_dir: Path):
        result = MacroRegistry(macros_dir).save_macro("crm/x", "", [{"action": "type"}])
        assert result.ok is False
        assert result.message == "Validation error: Step 1 (type): requires 'text' field"

    def test_existing_file_needs_force(self, macros_dir: Path):
        registry = MacroRegistry(macros_dir)
        registry.save_macro("crm/confirm", "v1", self.STEPS)

        refused = registry.save_macro("crm/confirm", "v2", self.STEPS)
        assert refused.ok is False
        assert "Use force=True to overwrite" in refused.message

        forced = registry.save_macro("crm/confirm", "v2", self.STEPS, force=True)
        assert forced.ok is True
        assert registry.get("crm/confirm").description == "v2"

    @pytest.mark.parametrize("name", ["../../escaped", "crm/../../escaped", "..\\escaped"])
    def test_names_outside_macros_dir_refused(self, macros_dir: Path, name: str):
        result = MacroRegistry(macros_dir).save_macro(name, "", self.STEPS)
        assert result.ok is False
        assert "points outside" in result.message
        assert not (macros_dir.parent / "escaped.yaml").exists()
        assert not (macros_dir.parent.parent / "escaped.yaml").exists()

    def test_check_save_target_writes_nothing(self, macros_dir: Path):
        registry = MacroRegistry(macros_dir)
        placement = registry.check_save_target("crm/confirm")
        assert placement.ok is True
        assert placement.macro_name == "crm/confirm"
        assert placement.file_path == str(macros_dir / "crm" / "confirm.yaml")
        assert not (macros_dir / "crm").exists()

    def test_check_save_target_reports_missing_folder(self, macros_dir: Path):
        placement = MacroRegistry(macros_dir).check_save_target("confirm")
        assert placement.ok is False
        assert "Cannot determine product folder" in placement.message

    def test_timeout_and_parameters_written(self, macros_dir: Path):
        registry = MacroRegistry(macros_dir)
        registry.save_macro(
            "crm/typed",
            "",
            [{"action": "type", "text": "{{who}}"}],
            parameters=[{"name": "who", "required": True}],
            timeout=90,
        )
        macro = registry.get("crm/typed")
        assert macro.timeout == 90
        assert macro.parameters[0].name == "who"


# ---------------------------------------------------------------------------
# 5. Watcher
# ---------------------------------------------------------------------------

class TestDebouncer:
    def test_bursts_collapse_into_one_call(self):
        calls: list[float] = []
        fired = threading.Event()

        def callback() -> None:
            calls.append(time.monotonic())
            fired.set()

        debouncer = Debouncer(callback, 100)
        for _ in range(5):
            debouncer.trigger()
            time.sleep(0.02)
        assert fired.wait(2)
        time.sleep(0.2)
        assert len(calls) == 1
        assert debouncer.pending is False

    def test_cancel_prevents_call(self):
        calls: list[int] = []
        debouncer = Debouncer(lambda: calls.append(1), 50)
        debouncer.trigger()
        debouncer.cancel()
        time.sleep(0.15)
        assert calls == []


class TestMacroDirectoryHandler:
    class _Recorder:
        def __init__(self) -> None:
            self.count = 0

        def trigger(self) -> None:
            self.count += 1

    def test_yaml_events_trigger(self):
        rec = self._Recorder()
        handler = MacroDirectoryHandler(rec)  # type: ignore[arg-type]
        handler.on_created(FileCreatedEvent("/m/crm/save.yaml"))
        handler.on_modified(FileModifiedEvent("/m/crm/save.YAML"))
        assert rec.count == 2

    def test_other_events_ignored(self):
        rec = self._Recorder()
        handler = MacroDirectoryHandler(rec)  # type: ignore[arg-type]
        handler.on_modified(FileModifiedEvent("/m/notes.txt"))
        handler.on_modified(DirModifiedEvent("/m/crm"))
        assert rec.count == 0

    def test_registry_reloads_on_file_change(self, macros_dir: Path, write_macro):
        registry = MacroRegistry(macros_dir, watch=True, debounce_ms=100)
        reloaded = threading.Event()
        registry.on_reloaded(reloaded.set)
        try:
            write_macro(macros_dir, "fresh", {"steps": [{"action": "focus"}]})
            assert reloaded.wait(5)
            deadline = time.monotonic() + 5
            while registry.get("fresh") is None and time.monotonic() < deadline:
                time.sleep(0.05)
            assert registry.get("fresh") is not None
        finally:
            registry.close()
