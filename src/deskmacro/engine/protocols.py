"""Automation backend protocol.

The executor and recorder never talk to a UI automation library directly.
They receive an object satisfying ``AutomationBackend`` and call only the
methods declared here.  Element objects are opaque: the engine stores them
in an ``ElementCache`` and hands them back unchanged.

Most calls return ``(ok, message)`` tuples instead of raising, so that a
backend failure message can be surfaced to the user verbatim.
"""

from __future__ import annotations

import dataclasses
from typing import Any, Protocol, runtime_checkable


@dataclasses.dataclass
class ElementInfo:
    """Identity of the element under a screen point, as seen by the recorder."""

    automation_id: str | None = None
    name: str | None = None
    class_name: str | None = None
    control_type: str | None = None


@runtime_checkable
class AutomationBackend(Protocol):
    """Capability interface a desktop automation backend provides."""

    @property
    def is_attached(self) -> bool: ...

    # -- Attachment / windows ------------------------------------------------

    def attach(self, process_name: str) -> tuple[bool, str]: ...

    def attach_by_pid(self, pid: int) -> tuple[bool, str]: ...

    def focus_window(self) -> tuple[bool, str]: ...

    def launch(
        self,
        exe_path: str,
        arguments: str | None = None,
        working_directory: str | None = None,
        if_not_running: bool = True,
    ) -> tuple[bool, str]: ...

    def is_window_ready(self) -> bool: ...

    def find_window(
        self,
        title_contains: str,
        automation_id: str | None = None,
        name: str | None = None,
        control_type: str | None = None,
    ) -> tuple[bool, str]: ...

    # -- Element lookup ------------------------------------------------------

    def find_element(
        self,
        automation_id: str | None = None,
        name: str | None = None,
        class_name: str | None = None,
        control_type: str | None = None,
    ) -> tuple[bool, Any, str]: ...

    def find_element_by_path(self, segments: list[str]) -> tuple[bool, Any, str]: ...

    def get_children(self, parent: Any = None) -> list[Any]: ...

    def get_snapshot(self, max_depth: int) -> tuple[bool, str]: ...

    # -- Element interaction -------------------------------------------------

    def click(self, element: Any) -> tuple[bool, str]: ...

    def right_click(self, element: Any) -> tuple[bool, str]: ...

    def set_value(self, element: Any, value: str) -> tuple[bool, str]: ...

    def get_value(self, element: Any) -> tuple[bool, str]: ...

    def get_properties(self, element: Any) -> dict[str, str]: ...

    # -- Keyboard / window-level input ---------------------------------------

    def type_text(self, text: str) -> tuple[bool, str]: ...

    def send_keys(self, keys: str) -> tuple[bool, str]: ...

    def file_dialog_set_path(self, path: str) -> tuple[bool, str]: ...

    def screenshot(self) -> tuple[bool, bytes | str]: ...

    # -- Recorder support ----------------------------------------------------

    def is_point_in_target(self, x: int, y: int) -> bool: ...

    def element_from_point(self, x: int, y: int) -> ElementInfo | None: ...
