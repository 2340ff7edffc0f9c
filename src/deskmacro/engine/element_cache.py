"""Shared element reference cache.

Maps backend-native element objects to short string keys (``e1``, ``e2``,
...) so macros and callers can pass elements around by name.  The cache
outlives individual macro runs and may be shared between threads.
"""

from __future__ import annotations

import itertools
import threading
from collections import OrderedDict
from typing import Any

from deskmacro.models import ELEMENT_CACHE_CAPACITY


class ElementCache:
    """Thread-safe, LRU-bounded key -> element store."""

    def __init__(self, capacity: int = ELEMENT_CACHE_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._capacity = capacity
        self._items: OrderedDict[str, Any] = OrderedDict()
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def add(self, element: Any) -> str:
        """Store *element* and return its new key, evicting the oldest entry if full."""
        with self._lock:
            key = f"e{next(self._counter)}"
            self._items[key] = element
            while len(self._items) > self._capacity:
                self._items.popitem(last=False)
            return key

    def get(self, key: str) -> Any | None:
        with self._lock:
            if key not in self._items:
                return None
            self._items.move_to_end(key)
            return self._items[key]

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
