"""Deadline and cancellation chain for macro runs.

A ``CancellationToken`` is cancelled when ``cancel()`` is called on it or
on any ancestor, or when its own deadline or an ancestor's deadline
passes.  Macro, step and nested-macro scopes each get a child token, so
cancelling an outer scope wakes every suspended wait underneath it.
"""

from __future__ import annotations

import threading
import time
import weakref


class CancellationToken:
    def __init__(self, parent: CancellationToken | None = None, timeout: float | None = None) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._children: weakref.WeakSet[CancellationToken] = weakref.WeakSet()
        self._parent = parent
        self._deadline = time.monotonic() + timeout if timeout is not None else None
        if parent is not None:
            parent._adopt(self)

    def child(self, timeout: float | None = None) -> CancellationToken:
        """Create a token that is cancelled whenever this one is."""
        return CancellationToken(parent=self, timeout=timeout)

    def _adopt(self, child: CancellationToken) -> None:
        with self._lock:
            self._children.add(child)
        if self._event.is_set():
            child.cancel()

    def cancel(self) -> None:
        self._event.set()
        with self._lock:
            children = list(self._children)
        for child in children:
            child.cancel()

    @property
    def deadline(self) -> float | None:
        """Earliest monotonic deadline along the chain, or ``None``."""
        deadlines = []
        token: CancellationToken | None = self
        while token is not None:
            if token._deadline is not None:
                deadlines.append(token._deadline)
            token = token._parent
        return min(deadlines) if deadlines else None

    @property
    def timed_out(self) -> bool:
        """True once this token's own deadline has passed."""
        return self._deadline is not None and time.monotonic() >= self._deadline

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        deadline = self.deadline
        return deadline is not None and time.monotonic() >= deadline

    def remaining(self) -> float | None:
        deadline = self.deadline
        if deadline is None:
            return None
        return max(0.0, deadline - time.monotonic())

    def wait(self, seconds: float) -> bool:
        """Sleep up to *seconds*; return True if the token got cancelled meanwhile."""
        end = time.monotonic() + max(0.0, seconds)
        while True:
            if self.cancelled:
                return True
            now = time.monotonic()
            limit = end
            deadline = self.deadline
            if deadline is not None:
                limit = min(limit, deadline)
            if now >= limit:
                return self.cancelled
            if self._event.wait(limit - now):
                return True
