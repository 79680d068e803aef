"""
Per-file serialization of apply operations.

Two batches composed against the same stale content would silently clobber
each other, so at most one apply runs per file identity. Different files
never contend.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator

logger = logging.getLogger(__name__)


class FileLockRegistry:
    """
    Hands out one lock per file identity.

    Owned by a DiffApplier (or shared explicitly between appliers that
    must serialize against each other).

    Usage:
        registry = FileLockRegistry()
        with registry.hold("/ws/src/app.ts"):
            ...
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._waiters: Dict[str, int] = {}

    @contextmanager
    def hold(self, identity: str) -> Iterator[None]:
        """Block until no other apply holds identity, then hold it."""
        with self._guard:
            lock = self._locks.setdefault(identity, threading.Lock())
            self._waiters[identity] = self._waiters.get(identity, 0) + 1

        if lock.locked():
            logger.debug("Waiting for in-flight apply on %s", identity)
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._waiters[identity] -= 1
                if self._waiters[identity] == 0:
                    # Nobody else references this lock; drop it
                    del self._waiters[identity]
                    del self._locks[identity]

    def is_locked(self, identity: str) -> bool:
        with self._guard:
            lock = self._locks.get(identity)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
