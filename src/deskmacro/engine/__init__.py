"""deskmacro engine -- macro model, execution and recording.

- MacroDefinition / MacroStep: parsed macro documents (closed action set)
- MacroExecutor: runs macros against an AutomationBackend with deadlines
- MacroRegistry: loads a macros directory, hot-reloads it, saves new macros
- InputRecorder: turns raw input events into recorded actions
- build_from_recorded_actions / macro_to_yaml: recorded actions -> macro -> YAML
- ElementCache: shared element reference store
"""

from deskmacro.engine.actions import KeyDown, KeyUp, MouseClick, RecordedAction, RecordedActionType
from deskmacro.engine.cancellation import CancellationToken
from deskmacro.engine.definition import (
    ACTIONS,
    MacroDefinition,
    MacroInfo,
    MacroLoadError,
    MacroParameter,
    MacroResult,
    MacroStep,
    SaveMacroResult,
    validate_steps,
)
from deskmacro.engine.element_cache import ElementCache
from deskmacro.engine.executor import MacroExecutor, format_step_summary
from deskmacro.engine.params import substitute_params
from deskmacro.engine.protocols import AutomationBackend, ElementInfo
from deskmacro.engine.recorder import InputRecorder, RecorderState, RecordingResult
from deskmacro.engine.registry import MacroRegistry
from deskmacro.engine.serializer import build_from_recorded_actions, macro_from_yaml, macro_to_yaml

# PynputEventSource is NOT imported here because it needs the optional
# ``[record]`` extra.  Import it from deskmacro.engine.hooks when needed.
