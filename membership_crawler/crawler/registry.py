"""
Shared crawl state: the claim registry and the per-wave frontiers.

Both are owned by a single crawler instance and handed to its workers.
Claims and appends never await, so they are atomic between coroutines;
the locks keep them correct when the same instance is shared with threads.
"""

from __future__ import annotations

import threading
from typing import Iterable


class VisitedRegistry:
    """Set of object ids that have been claimed. Claims are permanent."""

    def __init__(self):
        self._claimed: set[str] = set()
        self._lock = threading.Lock()

    def try_claim(self, object_id: str) -> bool:
        """Return True exactly once per id, False on every later call."""
        with self._lock:
            if object_id in self._claimed:
                return False
            self._claimed.add(object_id)
            return True

    def __contains__(self, object_id: str) -> bool:
        with self._lock:
            return object_id in self._claimed

    def __len__(self) -> int:
        with self._lock:
            return len(self._claimed)


class Frontier:
    """Ids waiting for the next wave. Duplicates are allowed."""

    def __init__(self, name: str, initial: Iterable[str] = ()):
        self.name = name
        self._items: list[str] = list(initial)
        self._lock = threading.Lock()

    def add(self, object_id: str):
        with self._lock:
            self._items.append(object_id)

    def drain(self) -> list[str]:
        """Return the queued ids and leave the frontier empty."""
        with self._lock:
            items, self._items = self._items, []
            return items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __bool__(self) -> bool:
        return len(self) > 0
