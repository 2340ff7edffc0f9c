"""Macro YAML rendering and the recorded-actions -> macro builder.

Rendering drops every field that is unset or at its default value, so
saved macros stay small and diff cleanly.  Parsing goes through
``MacroDefinition.from_dict`` and therefore applies the same validation as
the registry.
"""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import Any

import yaml

from deskmacro.engine.actions import RecordedAction, RecordedActionType
from deskmacro.engine.definition import MacroDefinition, MacroParameter, MacroStep
from deskmacro.models import DEFAULT_MACRO_TIMEOUT, DEFAULT_RECORDING_FIND_TIMEOUT, MIN_BUILDER_WAIT_SEC

logger = logging.getLogger("deskmacro.engine.serializer")

_STEP_FIELD_KEYS = {"step_timeout": "timeout"}


# -- Rendering ----------------------------------------------------------------


def step_to_dict(step: MacroStep) -> dict[str, Any]:
    """Mapping for one step, ``action`` first, unset fields omitted."""
    data: dict[str, Any] = {"action": step.action}
    for field in dataclasses.fields(MacroStep):
        if field.name == "action":
            continue
        value = getattr(step, field.name)
        if value is None or value == [] or value == {}:
            continue
        data[_STEP_FIELD_KEYS.get(field.name, field.name)] = _plain(value)
    return data


def parameter_to_dict(param: MacroParameter) -> dict[str, Any]:
    data: dict[str, Any] = {"name": param.name}
    if param.description:
        data["description"] = param.description
    if param.required:
        data["required"] = True
    if param.default is not None:
        data["default"] = param.default
    return data


def macro_to_dict(macro: MacroDefinition) -> dict[str, Any]:
    data: dict[str, Any] = {}
    if macro.name:
        data["name"] = macro.name
    if macro.description:
        data["description"] = macro.description
    if macro.timeout != DEFAULT_MACRO_TIMEOUT:
        data["timeout"] = macro.timeout
    if macro.parameters:
        data["parameters"] = [parameter_to_dict(p) for p in macro.parameters]
    data["steps"] = [step_to_dict(s) for s in macro.steps]
    return data


def macro_to_yaml(macro: MacroDefinition) -> str:
    return yaml.safe_dump(macro_to_dict(macro), sort_keys=False, allow_unicode=True, default_flow_style=False)


def _plain(value: Any) -> Any:
    # Whole-number floats are written as ints (seconds: 3, not 3.0).
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, list):
        return list(value)
    if isinstance(value, dict):
        return dict(value)
    return value


# -- Parsing ------------------------------------------------------------------


def macro_from_yaml(text: str, fallback_name: str = "") -> MacroDefinition:
    """Parse macro YAML.  Raises ``yaml.YAMLError`` or ``MacroDefinitionError``."""
    return MacroDefinition.from_dict(yaml.safe_load(text), fallback_name)


def load_macro_file(path: Path, fallback_name: str | None = None) -> MacroDefinition:
    text = path.read_text(encoding="utf-8")
    return macro_from_yaml(text, fallback_name if fallback_name is not None else path.stem)


def save_to_file(macro: MacroDefinition, macro_name: str, macros_dir: Path) -> Path:
    """Write *macro* to ``<macros_dir>/<macro_name>.yaml``, creating folders.

    *macro_name* may contain ``/`` to place the file in a product folder.
    """
    relative = Path(*[part for part in macro_name.replace("\\", "/").split("/") if part])
    target = macros_dir / relative.with_suffix(".yaml")
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(macro_to_yaml(macro), encoding="utf-8")
    logger.info("Saved macro '%s' to %s", macro_name, target)
    return target


# -- Builder ------------------------------------------------------------------


def build_from_recorded_actions(
    display_name: str,
    description: str,
    actions: list[RecordedAction],
    find_timeout: float = DEFAULT_RECORDING_FIND_TIMEOUT,
) -> MacroDefinition:
    """Turn a recorded action log into a macro definition.

    Each click becomes a ``find`` step (best identifier first) followed by a
    ``click``/``right_click`` on a fresh ``stepN`` alias.  Typing and key
    presses map one-to-one.  Idle gaps of at least half a second become
    ``wait`` steps in front of the action they preceded.
    """
    steps: list[MacroStep] = []
    alias_counter = 0

    for action in actions:
        is_click = action.type in (RecordedActionType.CLICK, RecordedActionType.RIGHT_CLICK)
        if is_click and not _has_identifier(action):
            logger.warning("Skipping click at (%s, %s): no identifiable element", action.x, action.y)
            continue

        if action.wait_before_sec is not None and action.wait_before_sec >= MIN_BUILDER_WAIT_SEC:
            steps.append(MacroStep(action="wait", seconds=round(action.wait_before_sec, 1)))

        if is_click:
            alias_counter += 1
            alias = f"step{alias_counter}"
            steps.append(_find_step(action, alias, find_timeout))
            steps.append(
                MacroStep(action="click" if action.type == RecordedActionType.CLICK else "right_click", ref=alias)
            )
        elif action.type == RecordedActionType.TYPE:
            steps.append(MacroStep(action="type", text=action.text or ""))
        elif action.type == RecordedActionType.SEND_KEYS:
            steps.append(MacroStep(action="send_keys", keys=action.keys or ""))

    return MacroDefinition(name=display_name, description=description, steps=steps)


def _has_identifier(action: RecordedAction) -> bool:
    return any((action.automation_id, action.element_name, action.class_name, action.control_type))


def _find_step(action: RecordedAction, alias: str, find_timeout: float) -> MacroStep:
    step = MacroStep(action="find", save_as=alias, step_timeout=float(find_timeout))
    # Best available identifier: automation id, then name, then class.
    if action.automation_id:
        step.automation_id = action.automation_id
    elif action.element_name:
        step.name = action.element_name
    elif action.class_name:
        step.class_name = action.class_name
    if action.control_type:
        step.control_type = action.control_type
    return step
