"""Macro execution engine.

Runs a ``MacroDefinition`` step by step against an ``AutomationBackend``.
Steps run strictly in order; the first failing step aborts the run and is
reported in the returned ``MacroResult`` together with how many steps
completed before it.  Only locate steps (``find``/``find_by_path``) and the
window wait loops retry, and only until their step deadline.

Deadlines nest: every run gets a macro token chained to the caller's
token, every step gets a child of the macro token, and a nested ``macro``
step runs its target under a child of its own step token.  Any wait in any
scope wakes when an enclosing scope is cancelled or times out.

Usage::

    executor = MacroExecutor(registry)
    result = executor.execute_by_name("crm/new-contact", {"email": "a@b.c"}, backend=backend)
    if not result.success:
        print(result.failed_step_index, result.failed_action, result.message)
"""

from __future__ import annotations

import dataclasses
import logging
import time
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

from deskmacro.engine.cancellation import CancellationToken
from deskmacro.engine.definition import NO_ATTACH_ACTIONS, MacroDefinition, MacroResult, MacroStep
from deskmacro.engine.element_cache import ElementCache
from deskmacro.engine.errors import (
    BackendFailureError,
    LocateTimeoutError,
    MacroCancelledError,
    MacroError,
    MacroValidationError,
    NestedMacroError,
    TargetLostError,
    UnknownActionError,
    UnknownReferenceError,
)
from deskmacro.engine.params import missing_parameters, resolve_parameters, substitute_params
from deskmacro.engine.protocols import AutomationBackend
from deskmacro.models import (
    DEFAULT_LAUNCH_TIMEOUT,
    DEFAULT_MACRO_TIMEOUT,
    DEFAULT_RETRY_INTERVAL,
    DEFAULT_SNAPSHOT_DEPTH,
    DEFAULT_STEP_TIMEOUT,
    DEFAULT_WAIT_SECONDS,
    DEFAULT_WINDOW_POLL_INTERVAL,
)

if TYPE_CHECKING:
    from deskmacro.engine.registry import MacroRegistry

logger = logging.getLogger("deskmacro.engine.executor")

MAX_NESTING_DEPTH = 16

LogCallback = Callable[[str], None]


@dataclasses.dataclass
class _RunContext:
    """State for one macro run.  Nested runs get their own context."""

    macro: MacroDefinition
    display_name: str
    params: dict[str, str]
    backend: AutomationBackend
    cache: ElementCache
    token: CancellationToken
    on_log: LogCallback | None
    log_prefix: str = ""
    depth: int = 0
    # save_as name (lower-cased) -> cache key
    aliases: dict[str, str] = dataclasses.field(default_factory=dict)

    def log(self, line: str) -> None:
        logger.info("%s%s", self.log_prefix, line)
        if self.on_log is not None:
            self.on_log(f"{self.log_prefix}{line}")


@dataclasses.dataclass
class _StepScope:
    index: int
    token: CancellationToken
    timeout: float


class MacroExecutor:
    """Executes macros.  One instance can serve many concurrent runs."""

    def __init__(
        self,
        registry: MacroRegistry | None = None,
        *,
        step_timeout: float = DEFAULT_STEP_TIMEOUT,
        retry_interval: float = DEFAULT_RETRY_INTERVAL,
        launch_timeout: float = DEFAULT_LAUNCH_TIMEOUT,
        window_poll_interval: float = DEFAULT_WINDOW_POLL_INTERVAL,
        screenshot_dir: Path | None = None,
    ) -> None:
        self.registry = registry
        self.step_timeout = step_timeout
        self.retry_interval = retry_interval
        self.launch_timeout = launch_timeout
        self.window_poll_interval = window_poll_interval
        self.screenshot_dir = screenshot_dir

        self._handlers: dict[str, Callable[[_RunContext, MacroStep, _StepScope], str]] = {
            "focus": self._step_focus,
            "attach": self._step_attach,
            "snapshot": self._step_snapshot,
            "find": self._step_find,
            "find_by_path": self._step_find_by_path,
            "children": self._step_children,
            "click": self._step_click,
            "right_click": self._step_right_click,
            "type": self._step_type,
            "send_keys": self._step_send_keys,
            "set_value": self._step_set_value,
            "get_value": self._step_get_value,
            "file_dialog": self._step_file_dialog,
            "screenshot": self._step_screenshot,
            "properties": self._step_properties,
            "wait": self._step_wait,
            "launch": self._step_launch,
            "wait_for_window": self._step_wait_for_window,
            "macro": self._step_macro,
        }

    # -- Public API ----------------------------------------------------------

    def execute_by_name(
        self,
        name: str,
        parameters: Mapping[str, str] | None = None,
        *,
        backend: AutomationBackend,
        cache: ElementCache | None = None,
        cancellation: CancellationToken | None = None,
        on_log: LogCallback | None = None,
    ) -> MacroResult:
        """Look *name* up in the registry and execute it."""
        macro = self.registry.get(name) if self.registry is not None else None
        if macro is None:
            return MacroResult(
                success=False,
                steps_executed=0,
                total_steps=0,
                message=f"Macro '{name}' not found",
                error_kind=MacroValidationError.kind,
            )
        return self.execute(
            macro,
            name,
            parameters,
            backend=backend,
            cache=cache,
            cancellation=cancellation,
            on_log=on_log,
        )

    def execute(
        self,
        macro: MacroDefinition,
        display_name: str,
        parameters: Mapping[str, str] | None = None,
        *,
        backend: AutomationBackend,
        cache: ElementCache | None = None,
        cancellation: CancellationToken | None = None,
        on_log: LogCallback | None = None,
    ) -> MacroResult:
        """Run *macro* and return its outcome.  Step failures never raise.

        Args:
            macro: The definition to run.
            display_name: Name used in log lines and result messages.
            parameters: Caller-supplied values.  Not modified.
            backend: Automation backend to drive.
            cache: Element cache shared with the caller; a fresh one is used
                when omitted.
            cancellation: Caller's token.  Cancelling it aborts the run at
                the next suspension point.
            on_log: Receives one line per step start and outcome.
        """
        return self._run(
            macro,
            display_name,
            parameters,
            backend=backend,
            cache=cache if cache is not None else ElementCache(),
            parent_token=cancellation,
            on_log=on_log,
            log_prefix="",
            depth=0,
        )

    # -- Run loop ------------------------------------------------------------

    def _run(
        self,
        macro: MacroDefinition,
        display_name: str,
        parameters: Mapping[str, str] | None,
        *,
        backend: AutomationBackend,
        cache: ElementCache,
        parent_token: CancellationToken | None,
        on_log: LogCallback | None,
        log_prefix: str,
        depth: int,
    ) -> MacroResult:
        total = len(macro.steps)
        supplied = dict(parameters or {})

        missing = missing_parameters(macro, supplied)
        if missing:
            return MacroResult(
                success=False,
                steps_executed=0,
                total_steps=total,
                message=f"Missing required parameters: {', '.join(missing)}",
                error="Missing required parameters",
                error_kind=MacroValidationError.kind,
            )

        timeout = macro.effective_timeout
        token = CancellationToken(parent=parent_token, timeout=timeout)
        ctx = _RunContext(
            macro=macro,
            display_name=display_name,
            params=resolve_parameters(macro, supplied),
            backend=backend,
            cache=cache,
            token=token,
            on_log=on_log,
            log_prefix=log_prefix,
            depth=depth,
        )

        for index, step in enumerate(macro.steps):
            label = f"Step {index + 1}/{total}"

            if token.cancelled:
                ctx.log(f"{label}: TIMEOUT" if token.timed_out else f"{label}: CANCELLED")
                return self._failure(ctx, index, step, self._interruption(ctx, step, index))

            if step.action not in NO_ATTACH_ACTIONS and not backend.is_attached:
                error = TargetLostError(
                    f"Target process exited during macro execution at step {index + 1} ({step.action})",
                    "Process is no longer attached",
                )
                ctx.log(f"{label}: FAILED ({error.message})")
                return self._failure(ctx, index, step, error)

            ctx.log(f"{label}: {format_step_summary(step, ctx.params)}")
            step_timeout = self._step_timeout(ctx, step)
            scope = _StepScope(index=index, token=token.child(timeout=step_timeout), timeout=step_timeout)

            handler = self._handlers.get(step.action)
            try:
                if handler is None:
                    raise UnknownActionError(f"Unknown action: {step.action}")
                message = handler(ctx, step, scope)
            except MacroError as exc:
                ctx.log(f"{label}: FAILED ({exc.detail or exc.message})")
                return self._failure(ctx, index, step, exc)
            except Exception as exc:
                logger.debug("Backend raised during %s", label, exc_info=True)
                error = BackendFailureError(f"Step {index + 1} ({step.action}) failed: {exc}", str(exc))
                ctx.log(f"{label}: ERROR ({exc})")
                return self._failure(ctx, index, step, error)
            finally:
                scope.token.cancel()

            ctx.log(f"{label}: OK ({_first_line(message)})")

        message = f"Macro '{display_name}' completed ({total} steps)"
        ctx.log(message)
        return MacroResult(success=True, steps_executed=total, total_steps=total, message=message)

    @staticmethod
    def _failure(ctx: _RunContext, index: int, step: MacroStep, error: MacroError) -> MacroResult:
        return MacroResult(
            success=False,
            steps_executed=index,
            total_steps=len(ctx.macro.steps),
            message=error.message,
            failed_step_index=index,
            failed_action=step.action,
            error=error.detail or error.message,
            error_kind=error.kind,
        )

    def _step_timeout(self, ctx: _RunContext, step: MacroStep) -> float:
        if step.step_timeout is not None and step.step_timeout > 0:
            return step.step_timeout
        if step.action == "macro":
            nested = self._lookup(ctx, step)
            return nested.effective_timeout if nested is not None else DEFAULT_MACRO_TIMEOUT
        if step.action in ("launch", "wait_for_window"):
            return self.launch_timeout
        if step.action == "wait":
            seconds = step.seconds if step.seconds is not None else DEFAULT_WAIT_SECONDS
            return max(self.step_timeout, seconds + 1)
        return self.step_timeout

    def _interruption(self, ctx: _RunContext, step: MacroStep, index: int) -> MacroCancelledError:
        if ctx.token.timed_out:
            return MacroCancelledError(
                f"Macro '{ctx.display_name}' timed out after {_fmt(ctx.macro.effective_timeout)}s "
                f"at step {index + 1} ({step.action})",
                "Macro timeout exceeded",
            )
        return MacroCancelledError(
            f"Macro '{ctx.display_name}' cancelled at step {index + 1} ({step.action})",
            "Cancelled",
        )

    def _interrupted(self, ctx: _RunContext, step: MacroStep, scope: _StepScope, on_step_timeout: MacroError) -> MacroError:
        """Pick the error for a wait that woke up cancelled.

        The macro scope wins: if the whole run was cancelled or timed out the
        step's own timeout error is not the interesting one.
        """
        if ctx.token.cancelled:
            return self._interruption(ctx, step, scope.index)
        return on_step_timeout

    # -- Helpers -------------------------------------------------------------

    def _sub(self, ctx: _RunContext, value: str | None) -> str | None:
        return substitute_params(value, ctx.params)

    @staticmethod
    def _check(result: tuple[bool, Any]) -> str:
        ok, message = result
        if not ok:
            raise BackendFailureError(str(message))
        return str(message)

    @staticmethod
    def _bind(ctx: _RunContext, alias: str | None, key: str) -> None:
        if alias:
            ctx.aliases[alias.lower()] = key

    def _resolve(self, ctx: _RunContext, step: MacroStep) -> tuple[str, Any]:
        if step.ref is None:
            raise MacroValidationError(f"{step.action} requires a ref")
        key = ctx.aliases.get(step.ref.lower(), step.ref)
        element = ctx.cache.get(key)
        if element is None:
            raise UnknownReferenceError(f"Unknown ref '{key}'")
        return key, element

    def _lookup(self, ctx: _RunContext, step: MacroStep) -> MacroDefinition | None:
        if self.registry is None:
            return None
        name = self._sub(ctx, step.macro_name)
        return self.registry.get(name) if name else None

    # -- Step handlers -------------------------------------------------------

    def _step_focus(self, ctx: _RunContext, step: MacroStep, scope: _StepScope) -> str:
        return self._check(ctx.backend.focus_window())

    def _step_attach(self, ctx: _RunContext, step: MacroStep, scope: _StepScope) -> str:
        if step.pid is not None:
            return self._check(ctx.backend.attach_by_pid(step.pid))
        process_name = self._sub(ctx, step.process_name)
        if not process_name:
            raise MacroValidationError("attach requires process_name or pid")
        return self._check(ctx.backend.attach(process_name))

    def _step_snapshot(self, ctx: _RunContext, step: MacroStep, scope: _StepScope) -> str:
        depth = step.max_depth if step.max_depth is not None else DEFAULT_SNAPSHOT_DEPTH
        return self._check(ctx.backend.get_snapshot(depth))

    def _step_find(self, ctx: _RunContext, step: MacroStep, scope: _StepScope) -> str:
        automation_id = self._sub(ctx, step.automation_id)
        name = self._sub(ctx, step.name)
        class_name = self._sub(ctx, step.class_name)
        control_type = self._sub(ctx, step.control_type)
        criteria = (
            f"find: automation_id={automation_id}, name={name}, "
            f"class_name={class_name}, control_type={control_type}"
        )
        return self._locate(
            ctx,
            step,
            scope,
            lambda: ctx.backend.find_element(automation_id, name, class_name, control_type),
            LocateTimeoutError(f"Element not found after {_fmt(scope.timeout)}s", criteria),
        )

    def _step_find_by_path(self, ctx: _RunContext, step: MacroStep, scope: _StepScope) -> str:
        segments = [substitute_params(s, ctx.params) for s in step.path or []]
        if not segments:
            raise MacroValidationError("find_by_path requires a path")
        return self._locate(
            ctx,
            step,
            scope,
            lambda: ctx.backend.find_element_by_path(segments),
            LocateTimeoutError(
                f"Path element not found after {_fmt(scope.timeout)}s",
                f"find_by_path: {' > '.join(segments)}",
            ),
        )

    def _locate(
        self,
        ctx: _RunContext,
        step: MacroStep,
        scope: _StepScope,
        attempt: Callable[[], tuple[bool, Any, str]],
        on_timeout: LocateTimeoutError,
    ) -> str:
        interval = step.retry_interval if step.retry_interval is not None else self.retry_interval
        attempts = 0
        while True:
            attempts += 1
            ok, element, message = attempt()
            if ok and element is not None:
                key = ctx.cache.add(element)
                self._bind(ctx, step.save_as, key)
                return f"Found [{key}]: {message}"
            logger.debug("Locate attempt %d failed: %s", attempts, message)
            if scope.token.wait(interval):
                raise self._interrupted(ctx, step, scope, on_timeout)

    def _step_children(self, ctx: _RunContext, step: MacroStep, scope: _StepScope) -> str:
        parent = None
        if step.ref is not None:
            _, parent = self._resolve(ctx, step)
        children = ctx.backend.get_children(parent)
        first_key: str | None = None
        for child in children:
            key = ctx.cache.add(child)
            if first_key is None:
                first_key = key
        # save_as binds the first child only.
        if first_key is not None:
            self._bind(ctx, step.save_as, first_key)
        return f"Found {len(children)} children"

    def _step_click(self, ctx: _RunContext, step: MacroStep, scope: _StepScope) -> str:
        _, element = self._resolve(ctx, step)
        return self._check(ctx.backend.click(element))

    def _step_right_click(self, ctx: _RunContext, step: MacroStep, scope: _StepScope) -> str:
        _, element = self._resolve(ctx, step)
        return self._check(ctx.backend.right_click(element))

    def _step_type(self, ctx: _RunContext, step: MacroStep, scope: _StepScope) -> str:
        text = self._sub(ctx, step.text)
        if text is None:
            raise MacroValidationError("type requires text")
        return self._check(ctx.backend.type_text(text))

    def _step_send_keys(self, ctx: _RunContext, step: MacroStep, scope: _StepScope) -> str:
        keys = self._sub(ctx, step.keys)
        if not keys:
            raise MacroValidationError("send_keys requires keys")
        return self._check(ctx.backend.send_keys(keys))

    def _step_set_value(self, ctx: _RunContext, step: MacroStep, scope: _StepScope) -> str:
        _, element = self._resolve(ctx, step)
        value = self._sub(ctx, step.value if step.value is not None else step.text)
        if value is None:
            raise MacroValidationError("set_value requires a value (use 'value' or 'text' field)")
        return self._check(ctx.backend.set_value(element, value))

    def _step_get_value(self, ctx: _RunContext, step: MacroStep, scope: _StepScope) -> str:
        _, element = self._resolve(ctx, step)
        return f"Value: {self._check(ctx.backend.get_value(element))}"

    def _step_file_dialog(self, ctx: _RunContext, step: MacroStep, scope: _StepScope) -> str:
        path = self._sub(ctx, step.text)
        if not path:
            raise MacroValidationError("file_dialog requires text (the file path)")
        return self._check(ctx.backend.file_dialog_set_path(path))

    def _step_screenshot(self, ctx: _RunContext, step: MacroStep, scope: _StepScope) -> str:
        ok, data = ctx.backend.screenshot()
        if not ok:
            raise BackendFailureError(str(data))
        if not isinstance(data, bytes):
            return str(data)
        if self.screenshot_dir is None:
            return f"Screenshot captured ({len(data)} bytes)"
        self.screenshot_dir.mkdir(parents=True, exist_ok=True)
        safe_name = ctx.display_name.replace("/", "_").replace("\\", "_")
        target = self.screenshot_dir / f"{safe_name}-step{scope.index + 1}-{time.strftime('%Y%m%d-%H%M%S')}.png"
        target.write_bytes(data)
        return f"Screenshot saved to {target}"

    def _step_properties(self, ctx: _RunContext, step: MacroStep, scope: _StepScope) -> str:
        _, element = self._resolve(ctx, step)
        props = ctx.backend.get_properties(element)
        return "Properties: " + ", ".join(f"{k}={v}" for k, v in props.items())

    def _step_wait(self, ctx: _RunContext, step: MacroStep, scope: _StepScope) -> str:
        seconds = step.seconds if step.seconds is not None else DEFAULT_WAIT_SECONDS
        if scope.token.wait(seconds):
            raise self._interrupted(
                ctx,
                step,
                scope,
                MacroCancelledError(f"Wait interrupted by step timeout after {_fmt(scope.timeout)}s"),
            )
        return f"Waited {_fmt(seconds)}s"

    def _step_launch(self, ctx: _RunContext, step: MacroStep, scope: _StepScope) -> str:
        exe_path = self._sub(ctx, step.exe_path)
        if not exe_path:
            raise MacroValidationError("launch requires exe_path")
        message = self._check(
            ctx.backend.launch(
                exe_path,
                self._sub(ctx, step.arguments),
                self._sub(ctx, step.working_directory),
                True if step.if_not_running is None else step.if_not_running,
            )
        )
        interval = step.retry_interval if step.retry_interval is not None else self.window_poll_interval
        while not ctx.backend.is_window_ready():
            if scope.token.wait(interval):
                raise self._interrupted(
                    ctx,
                    step,
                    scope,
                    LocateTimeoutError(f"Window not ready after {_fmt(scope.timeout)}s", f"launch: {exe_path}"),
                )
        return message

    def _step_wait_for_window(self, ctx: _RunContext, step: MacroStep, scope: _StepScope) -> str:
        title = self._sub(ctx, step.title_contains)
        if not title:
            raise MacroValidationError("wait_for_window requires title_contains")
        automation_id = self._sub(ctx, step.automation_id)
        name = self._sub(ctx, step.name)
        control_type = self._sub(ctx, step.control_type)
        interval = step.retry_interval if step.retry_interval is not None else self.window_poll_interval
        while True:
            ok, message = ctx.backend.find_window(title, automation_id, name, control_type)
            if ok:
                return message
            if scope.token.wait(interval):
                raise self._interrupted(
                    ctx,
                    step,
                    scope,
                    LocateTimeoutError(
                        f"Window '{title}' not found after {_fmt(scope.timeout)}s",
                        f"wait_for_window: title_contains={title}",
                    ),
                )

    def _step_macro(self, ctx: _RunContext, step: MacroStep, scope: _StepScope) -> str:
        nested_name = self._sub(ctx, step.macro_name)
        if not nested_name:
            raise MacroValidationError("macro action requires macro_name")
        if self.registry is None:
            raise MacroValidationError(f"Macro '{nested_name}' not found (no registry)")
        nested = self.registry.get(nested_name)
        if nested is None:
            raise MacroValidationError(f"Macro '{nested_name}' not found")
        if ctx.depth + 1 > MAX_NESTING_DEPTH:
            raise MacroValidationError(f"Macro nesting deeper than {MAX_NESTING_DEPTH} levels at '{nested_name}'")

        nested_params = {k: substitute_params(v, ctx.params) for k, v in (step.params or {}).items()}
        result = self._run(
            nested,
            nested_name,
            nested_params,
            backend=ctx.backend,
            cache=ctx.cache,
            parent_token=scope.token,
            on_log=ctx.on_log,
            log_prefix=f"{ctx.log_prefix}Step {scope.index + 1} > ",
            depth=ctx.depth + 1,
        )
        if not result.success:
            raise NestedMacroError(result.message, result.error, result.error_kind)
        return result.message


# -- Step summaries -------------------------------------------------------------


def format_step_summary(step: MacroStep, parameters: Mapping[str, str]) -> str:
    """One-line, parameter-substituted description of *step* for logs."""
    if step.description:
        return f"{step.action}: {substitute_params(step.description, parameters)}"

    def sub(value: str | None) -> str | None:
        return substitute_params(value, parameters)

    parts: list[str] = []
    action = step.action
    if action in ("find", "wait_for_window"):
        if action == "wait_for_window" and step.title_contains is not None:
            parts.append(f"title_contains={sub(step.title_contains)}")
        for field in ("automation_id", "name", "class_name", "control_type"):
            value = getattr(step, field)
            if value is not None:
                parts.append(f"{field}={sub(value)}")
    elif action == "find_by_path":
        if step.path:
            parts.append(f"path=[{len(step.path)} segments]")
    elif action in ("click", "right_click", "properties", "get_value", "children"):
        if step.ref is not None:
            parts.append(f"ref={step.ref}")
    elif action == "type":
        if step.text is not None:
            parts.append(f"text={sub(step.text)}")
    elif action == "set_value":
        if step.ref is not None:
            parts.append(f"ref={step.ref}")
        value = step.value if step.value is not None else step.text
        if value is not None:
            parts.append(f"value={sub(value)}")
    elif action == "send_keys":
        if step.keys is not None:
            parts.append(f"keys={sub(step.keys)}")
    elif action == "wait":
        if step.seconds is not None:
            parts.append(f"seconds={_fmt(step.seconds)}")
    elif action == "attach":
        if step.process_name is not None:
            parts.append(f"process={sub(step.process_name)}")
        if step.pid is not None:
            parts.append(f"pid={step.pid}")
    elif action == "launch":
        if step.exe_path is not None:
            parts.append(f"exe={sub(step.exe_path)}")
        if step.if_not_running:
            parts.append("if_not_running")
    elif action == "snapshot":
        if step.max_depth is not None:
            parts.append(f"depth={step.max_depth}")
    elif action == "file_dialog":
        if step.text is not None:
            parts.append(f"path={sub(step.text)}")
    elif action == "macro":
        if step.macro_name is not None:
            parts.append(f"macro={sub(step.macro_name)}")

    if action in ("find", "find_by_path", "children") and step.save_as is not None:
        parts.append(f"save_as={step.save_as}")
    return f"{action} ({', '.join(parts)})" if parts else action


def _fmt(seconds: float) -> str:
    return f"{seconds:g}"


def _first_line(message: str) -> str:
    line = message.splitlines()[0] if message else ""
    return line if len(line) <= 120 else line[:117] + "..."
