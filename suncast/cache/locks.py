"""Per-key mutexes for serializing cache writes.

Writes to one location must not interleave (read-merge-write would lose
days), but writes to different locations should never wait on each other.
Locks are created on demand and dropped once no thread holds or waits on
them, so the registry stays bounded by the number of in-flight keys.
"""

import threading
from collections.abc import Generator
from contextlib import contextmanager


class KeyedLocks:
    """Registry of reference-counted locks, one per key."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._users: dict[str, int] = {}

    @contextmanager
    def hold(self, key: str) -> Generator[None]:
        """Hold the lock for ``key`` for the duration of the block."""
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._users[key] = self._users.get(key, 0) + 1

        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._users[key] -= 1
                if self._users[key] == 0:
                    del self._users[key]
                    del self._locks[key]

    def active_keys(self) -> int:
        """Number of keys currently held or waited on."""
        with self._guard:
            return len(self._locks)
