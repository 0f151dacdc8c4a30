"""
Keyed locks — mutual exclusion per key instead of one global lock.

Two steps provisioning the same (version, platform) serialize on one
lock; steps provisioning different runtimes never wait on each other.
"""

from __future__ import annotations

import threading
from collections.abc import Hashable, Iterator
from contextlib import contextmanager


class KeyedLock:
    """A registry of re-entrant locks, one per key, created on demand."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[Hashable, threading.RLock] = {}

    def _get(self, key: Hashable) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        """Hold the lock for ``key`` for the duration of the block."""
        lock = self._get(key)
        with lock:
            yield

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
