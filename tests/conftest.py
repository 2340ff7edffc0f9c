"""Shared fixtures for deskmacro unit tests."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import yaml

from deskmacro.engine.protocols import ElementInfo


# ---------------------------------------------------------------------------
# Fake automation backend
# ---------------------------------------------------------------------------

class FakeElement:
    """Stand-in for a native UI element."""

    def __init__(self, label: str) -> None:
        self.label = label

    def __repr__(self) -> str:
        return f"FakeElement({self.label!r})"


class FakeBackend:
    """Scripted AutomationBackend that records every call it receives.

    ``find_results`` is consumed one entry per ``find_element`` call; when it
    runs dry ``find_default`` is returned.  Entries are either a
    ``FakeElement`` (found) or ``None`` (not found).
    """

    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.attached = True
        self.find_results: list[FakeElement | None] = []
        self.find_default: FakeElement | None = FakeElement("default")
        self.path_result: FakeElement | None = FakeElement("by-path")
        self.children: list[FakeElement] = []
        self.values: dict[str, str] = {}
        self.window_ready_after = 0
        self.window_titles: list[str] = []
        self.screenshot_data: bytes = b"\x89PNG fake"
        self.points: dict[tuple[int, int], ElementInfo | None] = {}
        self.target_bounds = (0, 0, 1000, 1000)
        self.fail_clicks = False
        self.detach_after_calls: int | None = None
        self._ready_checks = 0

    # -- Helpers --------------------------------------------------------------

    def _record(self, *call: Any) -> None:
        self.calls.append(call)
        if self.detach_after_calls is not None and len(self.calls) >= self.detach_after_calls:
            self.attached = False

    def call_names(self) -> list[str]:
        return [c[0] for c in self.calls]

    # -- Protocol -------------------------------------------------------------

    @property
    def is_attached(self) -> bool:
        return self.attached

    def attach(self, process_name: str) -> tuple[bool, str]:
        self._record("attach", process_name)
        self.attached = True
        return True, f"Attached to {process_name}"

    def attach_by_pid(self, pid: int) -> tuple[bool, str]:
        self._record("attach_by_pid", pid)
        self.attached = True
        return True, f"Attached to pid {pid}"

    def focus_window(self) -> tuple[bool, str]:
        self._record("focus_window")
        return True, "Focused"

    def launch(
        self,
        exe_path: str,
        arguments: str | None,
        working_directory: str | None,
        if_not_running: bool,
    ) -> tuple[bool, str]:
        self._record("launch", exe_path, arguments, working_directory, if_not_running)
        self.attached = True
        return True, f"Launched {exe_path}"

    def is_window_ready(self) -> bool:
        self._ready_checks += 1
        return self._ready_checks > self.window_ready_after

    def find_window(
        self,
        title_contains: str,
        automation_id: str | None = None,
        name: str | None = None,
        control_type: str | None = None,
    ) -> tuple[bool, str]:
        self._record("find_window", title_contains)
        if any(title_contains in t for t in self.window_titles):
            return True, f"Window found: {title_contains}"
        return False, "No matching window"

    def find_element(
        self,
        automation_id: str | None = None,
        name: str | None = None,
        class_name: str | None = None,
        control_type: str | None = None,
    ) -> tuple[bool, Any, str]:
        self._record("find_element", automation_id, name, class_name, control_type)
        element = self.find_results.pop(0) if self.find_results else self.find_default
        if element is None:
            return False, None, "Element not found"
        return True, element, f"{element.label}"

    def find_element_by_path(self, segments: list[str]) -> tuple[bool, Any, str]:
        self._record("find_element_by_path", list(segments))
        if self.path_result is None:
            return False, None, "Path not found"
        return True, self.path_result, " > ".join(segments)

    def get_children(self, parent: Any = None) -> list[Any]:
        self._record("get_children", parent)
        return list(self.children)

    def get_snapshot(self, max_depth: int) -> tuple[bool, str]:
        self._record("get_snapshot", max_depth)
        return True, f"Window (depth {max_depth})\n  Button 'OK'"

    def click(self, element: Any) -> tuple[bool, str]:
        self._record("click", element)
        if self.fail_clicks:
            return False, "Click failed"
        return True, f"Clicked {element.label}"

    def right_click(self, element: Any) -> tuple[bool, str]:
        self._record("right_click", element)
        return True, f"Right-clicked {element.label}"

    def set_value(self, element: Any, value: str) -> tuple[bool, str]:
        self._record("set_value", element, value)
        self.values[element.label] = value
        return True, f"Set {element.label}"

    def get_value(self, element: Any) -> tuple[bool, str]:
        self._record("get_value", element)
        return True, self.values.get(element.label, "")

    def get_properties(self, element: Any) -> dict[str, str]:
        self._record("get_properties", element)
        return {"Name": element.label, "IsEnabled": "True"}

    def type_text(self, text: str) -> tuple[bool, str]:
        self._record("type_text", text)
        return True, f"Typed {len(text)} characters"

    def send_keys(self, keys: str) -> tuple[bool, str]:
        self._record("send_keys", keys)
        return True, f"Sent {keys}"

    def file_dialog_set_path(self, path: str) -> tuple[bool, str]:
        self._record("file_dialog_set_path", path)
        return True, f"Path set to {path}"

    def screenshot(self) -> tuple[bool, bytes | str]:
        self._record("screenshot")
        return True, self.screenshot_data

    def is_point_in_target(self, x: int, y: int) -> bool:
        left, top, right, bottom = self.target_bounds
        return left <= x < right and top <= y < bottom

    def element_from_point(self, x: int, y: int) -> ElementInfo | None:
        self._record("element_from_point", x, y)
        return self.points.get((x, y))


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def element():
    """Factory for fake native elements: ``element("OK")``."""
    return FakeElement


# ---------------------------------------------------------------------------
# Fixture: temporary macros directory
# ---------------------------------------------------------------------------

@pytest.fixture
def macros_dir(tmp_path: Path) -> Path:
    """An empty macros/ directory."""
    path = tmp_path / "macros"
    path.mkdir()
    return path


def _write_macro(macros_dir: Path, name: str, data: dict[str, Any] | str) -> Path:
    target = macros_dir / f"{name}.yaml"
    target.parent.mkdir(parents=True, exist_ok=True)
    text = data if isinstance(data, str) else yaml.safe_dump(data, sort_keys=False)
    target.write_text(text, encoding="utf-8")
    return target


@pytest.fixture
def write_macro():
    """Callable writing *data* (mapping or raw YAML) to ``<macros_dir>/<name>.yaml``."""
    return _write_macro


# ---------------------------------------------------------------------------
# Fixture: temporary project directory with .deskmacro/ structure
# ---------------------------------------------------------------------------

@pytest.fixture
def tmp_project_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Create a .deskmacro/ project with a config and an empty macros/."""
    monkeypatch.delenv("DESKMACRO_MACROS_PATH", raising=False)
    project = tmp_path / ".deskmacro"
    (project / "macros").mkdir(parents=True)
    (project / "config.yaml").write_text(
        yaml.safe_dump({"step_timeout": 2, "retry_interval": 0.1, "watch": False}),
        encoding="utf-8",
    )
    return project


# ---------------------------------------------------------------------------
# Fixture: sample macro YAML strings
# ---------------------------------------------------------------------------

@pytest.fixture
def sample_macro_yaml() -> str:
    """A valid macro using parameters, aliases and several step kinds."""
    return """\
name: New Contact
description: Create a contact in the CRM
timeout: 30
parameters:
  - name: email
    description: Contact email
    required: true
  - name: company
    default: Acme
steps:
  - action: find
    automation_id: uxNewContact
    control_type: Button
    save_as: new_button
  - action: click
    ref: new_button
  - action: find
    name: Email
    save_as: email_box
  - action: set_value
    ref: email_box
    value: "{{email}}"
  - action: type
    text: "{{company}}"
  - action: send_keys
    keys: Ctrl+S
"""


@pytest.fixture
def sample_knowledge_yaml() -> str:
    return """\
kind: knowledge-base
application:
  name: Acme CRM
  version: "4.2"
  process_name: AcmeCrm
  exe_path: C:/Program Files/Acme/AcmeCrm.exe
installation:
  base_path: C:/Program Files/Acme
  samples:
    contacts: [a.csv, b.csv]
    reports: [q1.xlsx]
keytips:
  verified_sequences:
    - keys: Alt,H
      action: Home tab
keyboard_shortcuts:
  - key: Ctrl+N
    action: New contact
automation_ids:
  ribbon_tabs:
    - id: uxHomeTab
    - id: uxViewTab
  dialogs:
    - id: uxOk
navigation_tips:
  - Contacts live under the Home tab.
workflows:
  new_contact: {}
  export: {}
"""
