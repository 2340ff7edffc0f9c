"""Live input source for the recorder, built on pynput global hooks.

Requires the ``[record]`` extra (pynput).  The source translates pynput
callbacks into ``MouseClick`` / ``KeyDown`` / ``KeyUp`` events and feeds
them to an ``InputRecorder``.  A ticker thread calls ``recorder.tick()`` so
typing runs and keytip windows close even when no further input arrives.

Usage::

    recorder = InputRecorder(backend)
    recorder.start("crm/new-contact")
    with PynputEventSource(recorder, foreground_check=backend_is_foreground):
        ...  # until the user stops
    result = recorder.stop()
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import Any

from deskmacro.engine.actions import KeyDown, KeyUp, MouseClick
from deskmacro.engine.keys import KEY_CODES
from deskmacro.engine.recorder import InputRecorder

logger = logging.getLogger("deskmacro.engine.hooks")

_HAS_PYNPUT = False
try:
    from pynput import keyboard, mouse

    _HAS_PYNPUT = True
except ImportError:
    pass

# pynput ``Key`` member names that differ from our key names.
_PYNPUT_KEY_NAMES = {
    "shift": 0x10,
    "shift_l": 0xA0,
    "shift_r": 0xA1,
    "ctrl": 0x11,
    "ctrl_l": 0xA2,
    "ctrl_r": 0xA3,
    "alt": 0x12,
    "alt_l": 0xA4,
    "alt_r": 0xA5,
    "alt_gr": 0xA5,
    "cmd": 0x5B,
    "cmd_l": 0x5B,
    "cmd_r": 0x5C,
    "backspace": 0x08,
    "caps_lock": 0x14,
    "num_lock": 0x90,
    "scroll_lock": 0x91,
    "page_up": 0x21,
    "page_down": 0x22,
    "print_screen": 0x2C,
    "menu": 0x5D,
}

_TICK_INTERVAL = 0.1


def key_to_vk(key: Any) -> int | None:
    """Best-effort virtual-key code for a pynput key object."""
    name = getattr(key, "name", None)
    if name is not None:
        vk = getattr(getattr(key, "value", None), "vk", None)
        if vk:
            return int(vk)
        return _PYNPUT_KEY_NAMES.get(name) or KEY_CODES.get(name.replace("_", ""))
    vk = getattr(key, "vk", None)
    if vk:
        return int(vk)
    char = getattr(key, "char", None)
    if char and len(char) == 1:
        if char.isalnum() and char.isascii():
            return ord(char.upper())
        if char == " ":
            return 0x20
    return None


class PynputEventSource:
    """Feeds global mouse/keyboard events into an ``InputRecorder``."""

    def __init__(
        self,
        recorder: InputRecorder,
        foreground_check: Callable[[], bool] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not _HAS_PYNPUT:
            raise RuntimeError("pynput is required for live recording. Install with: pip install 'deskmacro[record]'")
        self._recorder = recorder
        self._foreground_check = foreground_check
        self._clock = clock
        self._pressed: dict[Any, tuple[int, int]] = {}
        self._stop = threading.Event()
        self._keyboard_listener: Any = None
        self._mouse_listener: Any = None
        self._ticker: threading.Thread | None = None

    # -- Lifecycle -----------------------------------------------------------

    def start(self) -> None:
        self._stop.clear()
        self._keyboard_listener = keyboard.Listener(on_press=self._on_press, on_release=self._on_release)
        self._mouse_listener = mouse.Listener(on_click=self._on_click)
        self._keyboard_listener.start()
        self._mouse_listener.start()
        self._ticker = threading.Thread(target=self._tick_loop, name="deskmacro-recorder-tick", daemon=True)
        self._ticker.start()
        logger.debug("Input hooks started")

    def stop(self) -> None:
        self._stop.set()
        for listener in (self._keyboard_listener, self._mouse_listener):
            if listener is not None:
                listener.stop()
        if self._ticker is not None:
            self._ticker.join(timeout=1)
        self._keyboard_listener = self._mouse_listener = self._ticker = None
        logger.debug("Input hooks stopped")

    def __enter__(self) -> PynputEventSource:
        self.start()
        return self

    def __exit__(self, *exc: object) -> None:
        self.stop()

    def _tick_loop(self) -> None:
        while not self._stop.wait(_TICK_INTERVAL):
            self._recorder.tick(self._clock())

    # -- Callbacks -----------------------------------------------------------

    def _target_has_focus(self) -> bool:
        return self._foreground_check is None or self._foreground_check()

    def _on_press(self, key: Any) -> None:
        vk = key_to_vk(key)
        if vk is None or not self._target_has_focus():
            return
        self._recorder.feed(KeyDown(vk=vk, timestamp=self._clock()))

    def _on_release(self, key: Any) -> None:
        vk = key_to_vk(key)
        if vk is None:
            return
        # Releases are always delivered so held-modifier state stays accurate.
        self._recorder.feed(KeyUp(vk=vk, timestamp=self._clock()))

    def _on_click(self, x: int, y: int, button: Any, pressed: bool) -> None:
        if pressed:
            self._pressed[button] = (x, y)
            return
        origin = self._pressed.pop(button, None)
        if origin is None:
            return
        name = getattr(button, "name", "left")
        self._recorder.feed(MouseClick(x=int(origin[0]), y=int(origin[1]), button=name, timestamp=self._clock()))
