"""Input recorder state machine.

Consumes a feed of primitive input events (``MouseClick``, ``KeyDown``,
``KeyUp``) and turns it into an ordered log of ``RecordedAction`` objects:

- clicks on the attached target become Click/RightClick actions carrying
  the identity of the element under the pointer;
- runs of printable keys typed less than 300 ms apart become one Type;
- a non-modifier key pressed while modifiers are held becomes a combo
  SendKeys (``Ctrl+Shift+N``);
- a modifier tapped alone and followed within 500 ms by a key becomes a
  sequential SendKeys (``Alt,F``), the ribbon keytip pattern;
- any other special key becomes a SendKeys of its name.

The recorder never starts timers of its own.  Pending deadlines (typing run
close, sequential chord window) are resolved lazily when the next event
arrives or when the event source calls ``tick()``.  All timestamps come
from the events, so tests can drive the machine with synthetic clocks.

Only one session may be active at a time; ``start()`` during a recording
is refused.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
import threading
import time
from collections.abc import Callable

from deskmacro.engine.actions import InputEvent, KeyDown, KeyUp, MouseClick, RecordedAction, RecordedActionType
from deskmacro.engine.definition import MacroDefinition
from deskmacro.engine.keys import MODIFIER_KEYS, MODIFIER_ORDER, PRINTABLE_CHARS, vk_to_key_name
from deskmacro.engine.protocols import AutomationBackend
from deskmacro.engine.serializer import build_from_recorded_actions
from deskmacro.models import (
    DEFAULT_RECORDING_FIND_TIMEOUT,
    MAX_RECORDED_WAIT_SEC,
    SEQUENTIAL_CHORD_MS,
    TYPING_COALESCE_MS,
    WAIT_DETECTION_THRESHOLD_SEC,
)

logger = logging.getLogger("deskmacro.engine.recorder")

# Modifier whose lone tap is itself a meaningful keystroke (opens ribbon keytips).
_BARE_MODIFIERS = frozenset({"Alt"})


class RecorderState(str, enum.Enum):
    IDLE = "Idle"
    RECORDING = "Recording"


@dataclasses.dataclass
class RecordingResult:
    success: bool
    message: str
    actions: list[RecordedAction] = dataclasses.field(default_factory=list)
    macro: MacroDefinition | None = None


@dataclasses.dataclass
class _PendingChord:
    modifier: str
    released_at: float


class InputRecorder:
    """Converts raw input events into recorded actions for one target."""

    def __init__(
        self,
        backend: AutomationBackend,
        *,
        clock: Callable[[], float] = time.monotonic,
        typing_coalesce_ms: int = TYPING_COALESCE_MS,
        chord_window_ms: int = SEQUENTIAL_CHORD_MS,
        wait_threshold_sec: float = WAIT_DETECTION_THRESHOLD_SEC,
        max_wait_sec: float = MAX_RECORDED_WAIT_SEC,
        find_timeout: float = DEFAULT_RECORDING_FIND_TIMEOUT,
    ) -> None:
        self._backend = backend
        self._clock = clock
        self._typing_window = typing_coalesce_ms / 1000.0
        self._chord_window = chord_window_ms / 1000.0
        self._wait_threshold = wait_threshold_sec
        self._max_wait = max_wait_sec
        self._find_timeout = find_timeout

        self._lock = threading.RLock()
        self._state = RecorderState.IDLE
        self._macro_name = ""
        self._started_at = 0.0
        self._reset()

    def _reset(self) -> None:
        self._actions: list[RecordedAction] = []
        self._last_action_end: float | None = None
        # Typing run
        self._typed: list[str] = []
        self._typing_started: float = 0.0
        self._last_typed: float = 0.0
        # Keyboard modifiers
        self._modifiers_down: set[str] = set()
        self._lone_modifier: str | None = None
        self._pending_chord: _PendingChord | None = None

    # -- Properties ----------------------------------------------------------

    @property
    def state(self) -> RecorderState:
        return self._state

    @property
    def is_recording(self) -> bool:
        return self._state == RecorderState.RECORDING

    @property
    def macro_name(self) -> str:
        return self._macro_name

    @property
    def action_count(self) -> int:
        with self._lock:
            return len(self._actions)

    @property
    def duration(self) -> float:
        if not self.is_recording:
            return 0.0
        return self._clock() - self._started_at

    # -- Session control -----------------------------------------------------

    def start(self, macro_name: str) -> tuple[bool, str]:
        """Begin a recording session.  Returns ``(ok, message)``."""
        with self._lock:
            if self._state == RecorderState.RECORDING:
                return False, f"Already recording '{self._macro_name}'. Stop the current recording first."
            if not self._backend.is_attached:
                return False, "Not attached to any process. Attach before recording."
            self._reset()
            self._macro_name = macro_name
            self._started_at = self._clock()
            self._state = RecorderState.RECORDING
        logger.info("Recording started: %s", macro_name)
        return True, f"Recording '{macro_name}'. Interact with the application, then stop to save."

    def stop(self, description: str = "") -> RecordingResult:
        """End the session and build a macro from what was captured.

        An in-progress typing run is kept.  A modifier tap still waiting for
        its follow-up key is dropped.
        """
        with self._lock:
            if self._state != RecorderState.RECORDING:
                return RecordingResult(False, "Not currently recording.")
            self._flush_typing()
            self._pending_chord = None
            self._state = RecorderState.IDLE
            actions = list(self._actions)
            name = self._macro_name

        logger.info("Recording stopped: %s (%d actions)", name, len(actions))
        if not actions:
            return RecordingResult(False, "No actions were recorded.", actions)

        macro = build_from_recorded_actions(
            name,
            description or f"Recorded macro ({len(actions)} actions)",
            actions,
            find_timeout=self._find_timeout,
        )
        return RecordingResult(True, f"Recorded {len(actions)} actions ({len(macro.steps)} steps).", actions, macro)

    def actions(self) -> list[RecordedAction]:
        with self._lock:
            return list(self._actions)

    # -- Event feed ----------------------------------------------------------

    def feed(self, event: InputEvent) -> None:
        """Consume one primitive event.  Ignored while idle."""
        if isinstance(event, MouseClick):
            self._on_click(event)
            return
        with self._lock:
            if self._state != RecorderState.RECORDING:
                return
            self._expire(event.timestamp)
            if isinstance(event, KeyDown):
                self._on_key_down(event.vk, event.timestamp)
            elif isinstance(event, KeyUp):
                self._on_key_up(event.vk, event.timestamp)

    def tick(self, now: float | None = None) -> None:
        """Resolve timers that have run out without a new event."""
        with self._lock:
            if self._state == RecorderState.RECORDING:
                self._expire(self._clock() if now is None else now)

    # -- Clicks --------------------------------------------------------------

    def _on_click(self, event: MouseClick) -> None:
        if event.button not in ("left", "right"):
            return
        with self._lock:
            if self._state != RecorderState.RECORDING:
                return
        if not self._backend.is_point_in_target(event.x, event.y):
            logger.debug("Dropped click at (%d, %d): outside target window", event.x, event.y)
            return

        # Point lookup is the one backend call made on the hook path.
        info = self._backend.element_from_point(event.x, event.y)

        with self._lock:
            if self._state != RecorderState.RECORDING:
                return
            self._expire(event.timestamp)
            self._flush_typing()
            if self._pending_chord is not None:
                self._resolve_expired_chord()
            self._append(
                RecordedActionType.CLICK if event.button == "left" else RecordedActionType.RIGHT_CLICK,
                event.timestamp,
                x=event.x,
                y=event.y,
                automation_id=info.automation_id if info else None,
                element_name=info.name if info else None,
                class_name=info.class_name if info else None,
                control_type=info.control_type if info else None,
            )

    # -- Keyboard ------------------------------------------------------------

    def _on_key_down(self, vk: int, ts: float) -> None:
        modifier = MODIFIER_KEYS.get(vk)
        if modifier is not None:
            if modifier in self._modifiers_down:
                return  # auto-repeat
            self._lone_modifier = modifier if not self._modifiers_down else None
            self._modifiers_down.add(modifier)
            self._pending_chord = None
            return

        self._lone_modifier = None

        if self._pending_chord is not None:
            chord = self._pending_chord
            self._pending_chord = None
            self._flush_typing()
            self._append(RecordedActionType.SEND_KEYS, ts, keys=f"{chord.modifier},{vk_to_key_name(vk)}")
            return

        if self._modifiers_down:
            self._flush_typing()
            held = [m for m in MODIFIER_ORDER if m in self._modifiers_down]
            self._append(RecordedActionType.SEND_KEYS, ts, keys="+".join(held + [vk_to_key_name(vk)]))
            return

        char = PRINTABLE_CHARS.get(vk)
        if char is not None:
            if not self._typed:
                self._typing_started = ts
            self._typed.append(char)
            self._last_typed = ts
            return

        self._flush_typing()
        self._append(RecordedActionType.SEND_KEYS, ts, keys=vk_to_key_name(vk))

    def _on_key_up(self, vk: int, ts: float) -> None:
        modifier = MODIFIER_KEYS.get(vk)
        if modifier is None:
            return
        self._modifiers_down.discard(modifier)
        if not self._modifiers_down and self._lone_modifier == modifier:
            self._pending_chord = _PendingChord(modifier, ts)
        self._lone_modifier = None

    # -- Timers --------------------------------------------------------------

    def _expire(self, now: float) -> None:
        if self._typed and now - self._last_typed > self._typing_window:
            self._flush_typing()
        chord = self._pending_chord
        if chord is not None and now - chord.released_at > self._chord_window:
            self._resolve_expired_chord()

    def _resolve_expired_chord(self) -> None:
        chord = self._pending_chord
        self._pending_chord = None
        if chord is None or chord.modifier not in _BARE_MODIFIERS:
            return
        self._flush_typing()
        self._append(RecordedActionType.SEND_KEYS, chord.released_at, keys=chord.modifier)

    # -- Log -----------------------------------------------------------------

    def _flush_typing(self) -> None:
        if not self._typed:
            return
        text = "".join(self._typed)
        self._typed = []
        self._append(RecordedActionType.TYPE, self._typing_started, text=text, end=self._last_typed)

    def _append(
        self,
        action_type: RecordedActionType,
        timestamp: float,
        *,
        end: float | None = None,
        **fields: object,
    ) -> None:
        wait_before = None
        if self._last_action_end is not None:
            gap = timestamp - self._last_action_end
            if gap >= self._wait_threshold:
                wait_before = min(gap, self._max_wait)
        self._actions.append(
            RecordedAction(type=action_type, timestamp=timestamp, wait_before_sec=wait_before, **fields)  # type: ignore[arg-type]
        )
        self._last_action_end = timestamp if end is None else end
        logger.debug("Recorded %s at %.3f", action_type.value, timestamp)
