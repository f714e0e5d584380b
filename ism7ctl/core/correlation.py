"""Bundle id allocation."""

from __future__ import annotations

import itertools
import threading


class CorrelationAllocator:
    """Hands out connection-unique, increasing bundle ids as strings."""

    def __init__(self, start: int = 0) -> None:
        self._counter = itertools.count(start + 1)
        self._lock = threading.Lock()

    def next_id(self) -> str:
        with self._lock:
            return str(next(self._counter))
