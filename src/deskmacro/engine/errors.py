"""Macro error taxonomy.

Every failure a macro can hit while loading or running maps onto one of
these classes.  Step handlers raise them; ``MacroExecutor`` catches them
at the step boundary and turns them into a failed ``MacroResult`` whose
``error_kind`` is the class's ``kind``.
"""

from __future__ import annotations


class MacroError(Exception):
    """Base class for macro load and run failures."""

    kind = "error"

    def __init__(self, message: str, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class MacroValidationError(MacroError):
    """A step or parameter set is malformed (missing field, missing parameter)."""

    kind = "validation"


class MacroDefinitionError(MacroValidationError):
    """A macro document cannot be turned into a ``MacroDefinition``."""


class UnknownActionError(MacroDefinitionError):
    """A step names an action outside the closed action set."""

    kind = "unknown_action"


class LocateTimeoutError(MacroError):
    """A find/find_by_path step exhausted its retry window."""

    kind = "locate_timeout"


class UnknownReferenceError(MacroError):
    """A ref or alias did not resolve to a cached element."""

    kind = "unknown_reference"


class BackendFailureError(MacroError):
    """The automation backend reported a failure."""

    kind = "backend_failure"


class MacroCancelledError(MacroError):
    """The macro deadline passed or the caller cancelled the run."""

    kind = "cancelled"


class TargetLostError(MacroError):
    """The attached target process went away mid-run."""

    kind = "target_lost"


class NestedMacroError(MacroError):
    """A macro invoked through a ``macro`` step failed.

    Carries the nested result's ``error_kind`` so the caller's result keeps
    the original classification.
    """

    def __init__(self, message: str, detail: str | None = None, kind: str | None = None) -> None:
        super().__init__(message, detail)
        if kind:
            self.kind = kind
