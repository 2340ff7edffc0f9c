"""``{{name}}`` placeholder expansion and parameter resolution."""

from __future__ import annotations

import re
from collections.abc import Mapping

from deskmacro.engine.definition import MacroDefinition

_PARAM_PATTERN = re.compile(r"\{\{(\w+)\}\}")


def substitute_params(template: str | None, params: Mapping[str, str]) -> str | None:
    """Replace ``{{name}}`` placeholders with values from *params*.

    Unknown names are left as-is.  ``None`` passes through so optional
    step fields can be fed straight in.
    """
    if template is None:
        return None
    return _PARAM_PATTERN.sub(lambda m: params.get(m.group(1), m.group(0)), template)


def missing_parameters(macro: MacroDefinition, params: Mapping[str, str]) -> list[str]:
    """Names of required parameters that are absent and have no default."""
    return [p.name for p in macro.parameters if p.required and p.name not in params and p.default is None]


def resolve_parameters(macro: MacroDefinition, params: Mapping[str, str] | None) -> dict[str, str]:
    """Return a private copy of *params* with defaults filled in."""
    resolved = dict(params or {})
    for param in macro.parameters:
        if param.name not in resolved and param.default is not None:
            resolved[param.name] = param.default
    return resolved
