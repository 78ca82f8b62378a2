from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager

"""Per-roll-number lock arena.

Writes to the same roster entry are serialized; writes to different entries never wait
on each other. Locks are reference counted and dropped once no holder or waiter is left,
so the arena does not grow with the roster.
"""

__all__ = [
    "KeyedLocks",
    "DEFAULT_LOCKS",
]


class KeyedLocks:
    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._refs: dict[str, int] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """Hold the lock for ``key`` for the duration of the with-block."""
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            self._refs[key] = self._refs.get(key, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._refs[key] -= 1
                if self._refs[key] == 0:
                    del self._refs[key]
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


# Shared by every upload run in the process so overlapping uploads serialize per student
DEFAULT_LOCKS = KeyedLocks()
