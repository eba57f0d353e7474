"""In-process TTL cache for page results.

Entries are immutable ``CacheEntry`` tuples replaced wholesale on every
``set``, so a reader sees either the old value or the new one. Expired
entries are dropped lazily on read; a background task started with
``start()`` also sweeps them periodically so memory does not grow with
URLs that are never requested again.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Callable
from typing import Any, NamedTuple

from pagepilot.exceptions import CacheCorruptionError

logger = logging.getLogger(__name__)

DEFAULT_TTL_SEC = 300.0
DEFAULT_SWEEP_INTERVAL_SEC = 60.0


class CacheEntry(NamedTuple):
    value: Any
    expires_at: float


class ResponseCache:
    """Thread-safe key/value cache with per-entry expiry.

    Args:
        default_ttl: Seconds an entry lives when ``set`` is not given a TTL.
        sweep_interval: Seconds between background purges.
        clock: Monotonic time source in seconds (injectable for tests).
    """

    def __init__(
        self,
        *,
        default_ttl: float = DEFAULT_TTL_SEC,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL_SEC,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._default_ttl = default_ttl
        self._sweep_interval = sweep_interval
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._sweeper: asyncio.Task | None = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: str) -> Any | None:
        """Return the cached value for *key*, or ``None`` if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if not isinstance(entry, CacheEntry):
                raise CacheCorruptionError(f"Cache entry for {key!r} is not a CacheEntry")
            if self._clock() >= entry.expires_at:
                del self._entries[key]
                return None
            return entry.value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Store *value* under *key*, replacing any previous entry."""
        ttl = self._default_ttl if ttl is None else ttl
        entry = CacheEntry(value, self._clock() + ttl)
        with self._lock:
            self._entries[key] = entry

    def invalidate(self, key: str) -> bool:
        """Drop *key*; returns whether an entry was present."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def invalidate_all(self) -> None:
        with self._lock:
            self._entries.clear()

    def purge_expired(self) -> int:
        """Remove every expired entry and return how many were dropped."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if now >= e.expires_at]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug("Purged %d expired cache entries", len(expired))
        return len(expired)

    # ------------------------------------------------------------------
    # Background sweep
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the periodic purge task on the running event loop."""
        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_loop())

    async def close(self) -> None:
        """Stop the purge task."""
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            self.purge_expired()
