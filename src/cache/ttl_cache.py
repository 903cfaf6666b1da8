"""
Bounded, time-expiring key/value cache.

Every pending conversational state lives in one of these. An entry never
outlives its TTL: expired entries are dropped lazily on read and by a
periodic sweep, and the cache never grows past ``max_size`` because the
least recently used entry is evicted on insert.

Usage:
    cache = TTLCache(max_size=1000, ttl_seconds=600, name="pendingAddressRequest")
    cache.set("6281234567890", slot)
    slot = cache.get("6281234567890")  # None once expired
"""

import asyncio
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Generic, Hashable, Optional, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar("V")


@dataclass
class CacheEntry(Generic[V]):
    """Stored value with its insertion time and derived expiry."""

    value: V
    inserted_at: float
    expires_at: float


class TTLCache(Generic[V]):
    """LRU-bounded cache with a fixed per-entry time-to-live."""

    def __init__(
        self,
        max_size: int,
        ttl_seconds: float,
        name: str = "cache",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be > 0, got {ttl_seconds}")
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self.name = name
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: "OrderedDict[Hashable, CacheEntry[V]]" = OrderedDict()

    def get(self, key: Hashable) -> Optional[V]:
        """Return the live value for ``key`` or None, evicting it if expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return entry.value

    def set(self, key: Hashable, value: V) -> None:
        """Insert or overwrite ``key``; evicts the LRU entry when over capacity."""
        now = self._clock()
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            self._entries[key] = CacheEntry(
                value=value, inserted_at=now, expires_at=now + self.ttl_seconds
            )
            while len(self._entries) > self.max_size:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Cache '%s' evicted LRU key %r", self.name, evicted)

    def delete(self, key: Hashable) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def has(self, key: Hashable) -> bool:
        return self.get(key) is not None

    def purge_expired(self) -> int:
        """Drop every expired entry and return how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.expires_at <= now]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("Cache '%s' purged %d expired entries", self.name, len(expired))
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def get_stats(self) -> dict[str, Any]:
        """Size, capacity and name for observability."""
        return {
            "name": self.name,
            "size": len(self._entries),
            "capacity": self.max_size,
            "ttl_seconds": self.ttl_seconds,
        }


class CacheSweeper:
    """Periodically purges expired entries from a set of caches.

    Runs as an asyncio task so idle caches still release memory even when
    nothing reads them.
    """

    def __init__(self, caches: list[TTLCache], interval_seconds: float = 60.0) -> None:
        self.caches = list(caches)
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    def register(self, cache: TTLCache) -> None:
        self.caches.append(cache)

    def sweep_once(self) -> int:
        removed = sum(cache.purge_expired() for cache in self.caches)
        if removed:
            logger.info("Cache sweep removed %d expired entries", removed)
        return removed

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            self.sweep_once()

    def start(self) -> None:
        """Start the sweep loop on the running event loop (idempotent)."""
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
