"""Fine-grained lock registry.

A single global lock would serialize unrelated cache keys and repository
roots. ``KeyedLocks`` hands out one ``threading.Lock`` per key and drops it
again once nobody holds or waits on it.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class KeyedLocks:
    """Reference-counted ``threading.Lock`` per key."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._refs: dict[str, int] = {}

    def _acquire_entry(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
                self._refs[key] = 0
            self._refs[key] += 1
            return lock

    def _release_entry(self, key: str) -> None:
        with self._guard:
            self._refs[key] -= 1
            if self._refs[key] == 0:
                del self._refs[key]
                del self._locks[key]

    @contextmanager
    def hold(self, key: str, *, blocking: bool = True) -> Iterator[bool]:
        """Hold the lock for ``key``.

        Yields True when acquired. With ``blocking=False`` yields False
        instead of waiting when another thread holds it.
        """
        lock = self._acquire_entry(key)
        acquired = lock.acquire(blocking=blocking)
        try:
            yield acquired
        finally:
            if acquired:
                lock.release()
            self._release_entry(key)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
