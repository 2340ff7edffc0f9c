"""Debounced hot reload of the macros directory.

Editors often write a file several times in a row when saving.  Every
watchdog event restarts a quiet-period timer; the reload callback runs once
the directory has been quiet for the debounce interval.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger("deskmacro.engine.watcher")


class Debouncer:
    """Run *callback* once, *delay_ms* after the last ``trigger()``."""

    def __init__(self, callback: Callable[[], None], delay_ms: int) -> None:
        self._callback = callback
        self._delay = delay_ms / 1000.0
        self._timer: threading.Timer | None = None
        self._lock = threading.Lock()

    def trigger(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self._delay, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def _fire(self) -> None:
        with self._lock:
            self._timer = None
        try:
            self._callback()
        except Exception:
            logger.exception("Debounced callback failed")

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None


class MacroDirectoryHandler(FileSystemEventHandler):
    """Forward ``*.yaml`` create/modify/delete/move events to a debouncer."""

    def __init__(self, debouncer: Debouncer) -> None:
        super().__init__()
        self._debouncer = debouncer

    @staticmethod
    def _is_yaml(path: str | bytes) -> bool:
        text = path.decode() if isinstance(path, bytes) else path
        return text.lower().endswith(".yaml")

    def _handle(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        paths = [event.src_path, getattr(event, "dest_path", "") or ""]
        if any(self._is_yaml(p) for p in paths if p):
            logger.debug("Macro file %s: %s", event.event_type, event.src_path)
            self._debouncer.trigger()

    def on_created(self, event: FileSystemEvent) -> None:
        self._handle(event)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._handle(event)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._handle(event)

    def on_moved(self, event: FileSystemEvent) -> None:
        self._handle(event)


class MacroDirectoryWatcher:
    """Owns the watchdog observer for one macros directory."""

    def __init__(self, path: Path, on_change: Callable[[], None], debounce_ms: int) -> None:
        self.path = path
        self.debouncer = Debouncer(on_change, debounce_ms)
        self._handler = MacroDirectoryHandler(self.debouncer)
        self._observer: Observer | None = None

    def start(self) -> None:
        if self._observer is not None:
            return
        observer = Observer()
        observer.schedule(self._handler, str(self.path), recursive=True)
        observer.daemon = True
        observer.start()
        self._observer = observer
        logger.info("Watching %s for macro changes", self.path)

    def stop(self) -> None:
        self.debouncer.cancel()
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None
