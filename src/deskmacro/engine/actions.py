"""Raw input events and the recorded actions derived from them."""

from __future__ import annotations

import dataclasses
import enum


class RecordedActionType(str, enum.Enum):
    CLICK = "Click"
    RIGHT_CLICK = "RightClick"
    TYPE = "Type"
    SEND_KEYS = "SendKeys"


@dataclasses.dataclass(frozen=True)
class RecordedAction:
    """One user action captured by the recorder.

    ``timestamp`` is in seconds on the recorder's clock.  ``wait_before_sec``
    is set only when the idle gap before this action was long enough to be
    worth replaying.
    """

    type: RecordedActionType
    timestamp: float
    x: int | None = None
    y: int | None = None
    automation_id: str | None = None
    element_name: str | None = None
    class_name: str | None = None
    control_type: str | None = None
    text: str | None = None
    keys: str | None = None
    wait_before_sec: float | None = None


# -- Primitive events from the input hook ---------------------------------------


@dataclasses.dataclass(frozen=True)
class MouseClick:
    x: int
    y: int
    button: str = "left"  # left | right | middle
    timestamp: float = 0.0


@dataclasses.dataclass(frozen=True)
class KeyDown:
    vk: int
    timestamp: float = 0.0


@dataclasses.dataclass(frozen=True)
class KeyUp:
    vk: int
    timestamp: float = 0.0


InputEvent = MouseClick | KeyDown | KeyUp
