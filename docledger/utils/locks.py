"""In-process mutual exclusion keyed by an arbitrary hashable value."""

from __future__ import annotations

import threading
from collections.abc import Hashable, Iterator
from contextlib import contextmanager


class KeyedLock:
    """Hand out one lock per key and forget it once nobody holds it.

    Entries are reference counted so the map only contains keys that are
    currently locked or waited on.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[Hashable, tuple[threading.Lock, int]] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        """Hold the lock for ``key`` for the duration of the ``with`` block."""

        lock = self._acquire_entry(key)
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            self._release_entry(key)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def _acquire_entry(self, key: Hashable) -> threading.Lock:
        with self._guard:
            lock, waiters = self._locks.get(key, (None, 0))
            if lock is None:
                lock = threading.Lock()
            self._locks[key] = (lock, waiters + 1)
            return lock

    def _release_entry(self, key: Hashable) -> None:
        with self._guard:
            lock, waiters = self._locks[key]
            if waiters <= 1:
                self._locks.pop(key, None)
            else:
                self._locks[key] = (lock, waiters - 1)


__all__ = ["KeyedLock"]
