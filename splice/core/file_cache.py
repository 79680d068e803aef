"""
File Cache Module - short-TTL read cache for file content.

Several edits in one batch (and back-to-back batches against the same file)
need the same lines; the cache serves them from memory instead of
re-reading storage.

Freshness rules:
- entries expire after ttl_seconds (default: 5 seconds)
- an entry is dropped when the file's mtime moves past the cached one
- the applier invalidates the entry right after every write
- LRU eviction bounds memory by max_size entries

The cache only reads. Callers receive a copy of the cached LineBuffer, so
mutating it cannot corrupt the shared entry.
"""

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, Optional

from .base import LineBuffer
from .storage import FileStore, LocalFileStore, PathLike

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 5.0
DEFAULT_MAX_SIZE = 256


@dataclass
class CacheEntry:
    """A cached file entry with metadata."""
    identity: str
    buffer: LineBuffer
    mtime: float  # File modification time when cached
    cached_at: float  # When this entry was cached
    size: int  # Content size in characters


class FileCache:
    """
    Read-through, write-invalidate cache of LineBuffers.

    Usage:
        cache = FileCache(store, ttl_seconds=5.0)
        buffer = cache.get("src/app.ts")
        ...
        cache.invalidate("src/app.ts")
    """

    def __init__(
        self,
        store: Optional[FileStore] = None,
        max_size: int = DEFAULT_MAX_SIZE,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock=time.monotonic
    ):
        """
        Initialize file cache.

        Args:
            store: Storage to read through (default: LocalFileStore at cwd)
            max_size: Maximum number of files to cache
            ttl_seconds: Time-to-live for cache entries in seconds
            clock: Time source for TTL checks (injectable for tests)
        """
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")
        if ttl_seconds < 0:
            raise ValueError(f"ttl_seconds must be >= 0, got {ttl_seconds}")

        self.store = store if store is not None else LocalFileStore()
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._cache: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def _expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.cached_at > self.ttl_seconds

    def get(self, path: PathLike) -> LineBuffer:
        """
        Current content of a file as a LineBuffer.

        Args:
            path: File to read

        Returns:
            A private copy of the cached LineBuffer

        Raises:
            FileNotFoundError: If the file does not exist
            OSError: If the file cannot be read
        """
        identity = self.store.identity(path)

        with self._lock:
            entry = self._cache.get(identity)
            if entry is not None:
                if self._expired(entry, self._clock()):
                    del self._cache[identity]
                else:
                    try:
                        current_mtime = self.store.mtime(path)
                    except OSError:
                        current_mtime = None
                    if current_mtime is not None and current_mtime <= entry.mtime:
                        self._cache.move_to_end(identity)
                        self._hits += 1
                        return entry.buffer.copy()
                    del self._cache[identity]

            self._misses += 1

        # Read outside the lock so slow storage does not block other files
        mtime = self.store.mtime(path)
        text = self.store.read_text(path)
        buffer = LineBuffer.from_text(text)

        with self._lock:
            self._add(CacheEntry(
                identity=identity,
                buffer=buffer,
                mtime=mtime,
                cached_at=self._clock(),
                size=len(text),
            ))
        return buffer.copy()

    def read_text(self, path: PathLike) -> str:
        """Current content of a file as text (terminators preserved)."""
        return self.get(path).to_text()

    def _add(self, entry: CacheEntry) -> None:
        self._cache.pop(entry.identity, None)
        while len(self._cache) >= self.max_size:
            evicted, _ = self._cache.popitem(last=False)
            logger.debug("Evicted %s from file cache", evicted)
        self._cache[entry.identity] = entry

    def invalidate(self, path: PathLike) -> None:
        """
        Drop the entry for a file.

        Call this after modifying a file to ensure fresh reads.
        """
        identity = self.store.identity(path)
        with self._lock:
            self._cache.pop(identity, None)

    def cleanup(self) -> int:
        """
        Remove expired entries.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._cache.items() if self._expired(e, now)]
            for key in expired:
                del self._cache[key]
        return len(expired)

    def clear(self) -> None:
        """Clear entire cache."""
        with self._lock:
            self._cache.clear()
            self._hits = 0
            self._misses = 0

    def __contains__(self, path: PathLike) -> bool:
        identity = self.store.identity(path)
        with self._lock:
            return identity in self._cache

    def __len__(self) -> int:
        return len(self._cache)

    @property
    def stats(self) -> Dict:
        """Get cache statistics."""
        with self._lock:
            total = self._hits + self._misses
            return {
                'entries': len(self._cache),
                'max_size': self.max_size,
                'ttl_seconds': self.ttl_seconds,
                'hits': self._hits,
                'misses': self._misses,
                'hit_rate': self._hits / total if total > 0 else 0.0,
                'total_cached_chars': sum(e.size for e in self._cache.values()),
            }
