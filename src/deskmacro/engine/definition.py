"""Macro data model.

A macro is a named, parameterized, ordered list of UI-interaction steps.
The action vocabulary is closed: ``ACTIONS`` lists every step kind the
executor knows how to run, and anything else is rejected when the macro
document is loaded.

This module only parses and validates.  Rendering back to YAML lives in
``deskmacro.engine.serializer``.
"""

from __future__ import annotations

import dataclasses
from typing import Any

from deskmacro.engine.errors import MacroDefinitionError, UnknownActionError
from deskmacro.models import DEFAULT_MACRO_TIMEOUT

# Closed set of step kinds, in documentation order.
ACTIONS: tuple[str, ...] = (
    "focus",
    "attach",
    "snapshot",
    "find",
    "find_by_path",
    "children",
    "click",
    "right_click",
    "type",
    "send_keys",
    "set_value",
    "get_value",
    "file_dialog",
    "screenshot",
    "properties",
    "wait",
    "launch",
    "wait_for_window",
    "macro",
)

# Steps that may run while no process is attached.
NO_ATTACH_ACTIONS = frozenset({"attach", "wait", "macro", "launch", "wait_for_window"})

# Steps that consume a cached element through ``ref``.
REF_ACTIONS = frozenset({"click", "right_click", "set_value", "get_value", "properties"})

_FIND_FIELDS = ("automation_id", "name", "class_name", "control_type")

# YAML key -> MacroStep attribute, where they differ.
STEP_KEY_ALIASES = {"timeout": "step_timeout"}


@dataclasses.dataclass
class MacroParameter:
    """A named input a macro accepts through ``{{name}}`` placeholders."""

    name: str
    description: str = ""
    required: bool = False
    default: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MacroParameter:
        if not isinstance(data, dict) or not data.get("name"):
            raise MacroDefinitionError("Each parameter must be a mapping with a 'name'")
        default = data.get("default")
        return cls(
            name=str(data["name"]),
            description=str(data.get("description") or ""),
            required=bool(data.get("required", False)),
            default=None if default is None else str(default),
        )


@dataclasses.dataclass
class MacroStep:
    """One step of a macro.

    Only ``action`` is always set; every other field belongs to one or more
    action kinds and stays ``None`` when the document leaves it out.
    """

    action: str
    # Element lookup (find, wait_for_window)
    automation_id: str | None = None
    name: str | None = None
    class_name: str | None = None
    control_type: str | None = None
    path: list[str] | None = None
    # Alias binding / consumption
    save_as: str | None = None
    ref: str | None = None
    # Payloads
    text: str | None = None
    value: str | None = None
    keys: str | None = None
    max_depth: int | None = None
    # attach
    process_name: str | None = None
    pid: int | None = None
    # wait
    seconds: float | None = None
    # macro
    macro_name: str | None = None
    params: dict[str, str] | None = None
    # launch
    exe_path: str | None = None
    arguments: str | None = None
    working_directory: str | None = None
    if_not_running: bool | None = None
    # wait_for_window
    title_contains: str | None = None
    # Timing
    step_timeout: float | None = None
    retry_interval: float | None = None
    description: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], index: int = 0) -> MacroStep:
        """Build a step from its YAML mapping, validating required fields.

        Raises:
            UnknownActionError: ``action`` is outside ``ACTIONS``.
            MacroDefinitionError: a field the action needs is missing or
                a value has the wrong shape.
        """
        error = _check_step(index, data)
        if error is not None:
            raise error

        prefix = f"Step {index + 1} ({data['action']})"
        try:
            return cls(
                action=str(data["action"]).lower(),
                automation_id=_text(data.get("automation_id")),
                name=_text(data.get("name")),
                class_name=_text(data.get("class_name")),
                control_type=_text(data.get("control_type")),
                path=_text_list(data.get("path")),
                save_as=_text(data.get("save_as")),
                ref=_text(data.get("ref")),
                text=_text(data.get("text")),
                value=_text(data.get("value")),
                keys=_text(data.get("keys")),
                max_depth=_integer(data.get("max_depth")),
                process_name=_text(data.get("process_name")),
                pid=_integer(data.get("pid")),
                seconds=_number(data.get("seconds")),
                macro_name=_text(data.get("macro_name")),
                params=_text_map(data.get("params")),
                exe_path=_text(data.get("exe_path")),
                arguments=_text(data.get("arguments")),
                working_directory=_text(data.get("working_directory")),
                if_not_running=None if data.get("if_not_running") is None else bool(data["if_not_running"]),
                title_contains=_text(data.get("title_contains")),
                step_timeout=_number(data.get("timeout")),
                retry_interval=_number(data.get("retry_interval")),
                description=_text(data.get("description")),
            )
        except (TypeError, ValueError) as exc:
            raise MacroDefinitionError(f"{prefix}: {exc}") from exc


@dataclasses.dataclass
class MacroDefinition:
    """A parsed macro document."""

    name: str = ""
    description: str = ""
    timeout: int = DEFAULT_MACRO_TIMEOUT
    parameters: list[MacroParameter] = dataclasses.field(default_factory=list)
    steps: list[MacroStep] = dataclasses.field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any, fallback_name: str = "") -> MacroDefinition:
        """Parse a macro document.  Unknown top-level keys are ignored.

        ``fallback_name`` is used as the display name when the document has
        no ``name`` (the registry passes the last segment of the file path).
        """
        if data is None:
            raise MacroDefinitionError("Macro file is empty")
        if not isinstance(data, dict):
            raise MacroDefinitionError("Macro document must be a YAML mapping")

        raw_steps = data.get("steps")
        if raw_steps is None:
            raw_steps = []
        if not isinstance(raw_steps, list):
            raise MacroDefinitionError("'steps' must be a list")
        if not raw_steps:
            raise MacroDefinitionError("Macro must have at least one step")

        raw_params = data.get("parameters") or []
        if not isinstance(raw_params, list):
            raise MacroDefinitionError("'parameters' must be a list")

        timeout = data.get("timeout")
        try:
            timeout_value = DEFAULT_MACRO_TIMEOUT if timeout is None else int(timeout)
        except (TypeError, ValueError) as exc:
            raise MacroDefinitionError(f"Invalid macro timeout: {timeout!r}") from exc

        parameters = [MacroParameter.from_dict(p) for p in raw_params]
        seen: set[str] = set()
        for param in parameters:
            if param.name in seen:
                raise MacroDefinitionError(f"Duplicate parameter '{param.name}'")
            seen.add(param.name)

        return cls(
            name=str(data.get("name") or fallback_name),
            description=str(data.get("description") or ""),
            timeout=timeout_value,
            parameters=parameters,
            steps=[MacroStep.from_dict(s, i) for i, s in enumerate(raw_steps)],
        )

    @property
    def effective_timeout(self) -> int:
        return self.timeout if self.timeout > 0 else DEFAULT_MACRO_TIMEOUT


@dataclasses.dataclass
class MacroResult:
    """Outcome of one macro run."""

    success: bool
    steps_executed: int
    total_steps: int
    message: str
    failed_step_index: int | None = None
    failed_action: str | None = None
    error: str | None = None
    error_kind: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)


@dataclasses.dataclass
class MacroInfo:
    """Listing entry for a loaded macro."""

    name: str
    display_name: str
    description: str
    parameters: list[MacroParameter]
    step_count: int = 0


@dataclasses.dataclass
class MacroLoadError:
    """A macro file that failed to load."""

    file_path: str
    macro_name: str
    error: str


@dataclasses.dataclass
class SaveMacroResult:
    ok: bool
    message: str
    file_path: str | None = None
    macro_name: str | None = None


# -- Validation ---------------------------------------------------------------


def validate_steps(steps: Any) -> str | None:
    """Check raw step mappings for known actions and required fields.

    Returns ``None`` when every step is valid, otherwise the message for
    the first offending step.
    """
    if not isinstance(steps, list) or not steps:
        return "Macro must have at least one step"
    for index, step in enumerate(steps):
        error = _check_step(index, step)
        if error is not None:
            return error.message
    return None


def _check_step(index: int, step: Any) -> MacroDefinitionError | None:
    if not isinstance(step, dict):
        return MacroDefinitionError(f"Step {index + 1}: must be a mapping")
    action = step.get("action")
    if not isinstance(action, str) or not action:
        return MacroDefinitionError(f"Step {index + 1}: missing 'action' field")
    action = action.lower()
    if action not in ACTIONS:
        return UnknownActionError(
            f"Step {index + 1}: unknown action '{step['action']}'. Valid actions: {', '.join(sorted(ACTIONS))}"
        )

    def has(key: str) -> bool:
        value = step.get(key)
        if value is None:
            return False
        if isinstance(value, (str, list, dict)):
            return len(value) > 0
        return True

    prefix = f"Step {index + 1} ({action})"
    if action == "send_keys" and not has("keys"):
        return MacroDefinitionError(f"{prefix}: requires 'keys' field")
    if action == "find" and not any(has(f) for f in _FIND_FIELDS):
        return MacroDefinitionError(f"{prefix}: requires at least one of: {', '.join(_FIND_FIELDS)}")
    if action == "find_by_path" and not has("path"):
        return MacroDefinitionError(f"{prefix}: requires 'path' field")
    if action == "type" and not has("text"):
        return MacroDefinitionError(f"{prefix}: requires 'text' field")
    if action == "set_value":
        if not has("ref"):
            return MacroDefinitionError(f"{prefix}: requires 'ref' field")
        if not has("value") and not has("text"):
            return MacroDefinitionError(f"{prefix}: requires 'value' field")
    if action == "macro" and not has("macro_name"):
        return MacroDefinitionError(f"{prefix}: requires 'macro_name' field")
    if action == "wait_for_window" and not has("title_contains"):
        return MacroDefinitionError(f"{prefix}: requires 'title_contains' field")
    if action == "file_dialog" and not has("text"):
        return MacroDefinitionError(f"{prefix}: requires 'text' field (the file path)")
    if action == "attach" and not has("process_name") and not has("pid"):
        return MacroDefinitionError(f"{prefix}: requires at least one of: process_name, pid")
    return None


# -- Field coercion -----------------------------------------------------------


def _text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        raise ValueError(f"expected a scalar, got {type(value).__name__}")
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)


def _number(value: Any) -> float | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"expected a number, got {value!r}")
    return float(value)


def _integer(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"expected an integer, got {value!r}")
    return int(value)


def _text_list(value: Any) -> list[str] | None:
    if value is None:
        return None
    if not isinstance(value, list):
        raise ValueError("'path' must be a list of segments")
    return [str(v) for v in value] or None


def _text_map(value: Any) -> dict[str, str] | None:
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ValueError("'params' must be a mapping")
    return {str(k): "" if v is None else str(v) for k, v in value.items()} or None
