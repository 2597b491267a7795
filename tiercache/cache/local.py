"""
In-process cache tier with TTL expiry and a background sweep.

Always available; the fallback for every remote operation.
"""

import asyncio
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from tiercache.cache.entry import CacheEntry

logger = logging.getLogger(__name__)


class LocalStore:
    """
    In-memory key/value store with TTL-based expiration.

    Thread-safe. Expired entries are dropped lazily on read and by a
    periodic sweep, so keys that are never read again do not accumulate.
    The sweep task is owned by the store: ``start()`` spawns it and
    ``stop()`` cancels it.
    """

    def __init__(
        self,
        sweep_interval: float = 300,
        max_entries: int = 10000,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize local store.

        Args:
            sweep_interval: Seconds between background sweeps (5 minutes)
            max_entries: Size at which the earliest-expiring entries are evicted
            clock: Time source returning epoch seconds
        """
        self._data: Dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self._sweep_interval = sweep_interval
        self._max_entries = max_entries
        self._clock = clock
        self._sweep_task: Optional[asyncio.Task] = None
        self._swept = 0
        self._evicted = 0

    @property
    def clock(self) -> Callable[[], float]:
        return self._clock

    # =========================================================================
    # Core Operations
    # =========================================================================

    def get(self, key: str) -> Optional[Any]:
        """
        Get a value.

        Returns:
            Stored value, or None if absent or expired
        """
        if not key:
            return None

        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None

            if entry.is_expired(self._clock()):
                del self._data[key]
                return None

            return entry.value

    def set(self, key: str, value: Any, ttl: float) -> bool:
        """
        Store a value, overwriting any existing entry.

        Args:
            key: Cache key
            value: Value to store
            ttl: Time-to-live in seconds; non-positive TTLs are not stored

        Returns:
            True if the value was stored
        """
        if not key or ttl is None or ttl <= 0:
            return False

        entry = CacheEntry(value=value, expires_at=self._clock() + ttl)

        with self._lock:
            if key not in self._data and len(self._data) >= self._max_entries:
                self._evict()
            self._data[key] = entry

        return True

    def delete(self, key: str) -> bool:
        """
        Remove an entry.

        Returns:
            True if an entry was removed
        """
        if not key:
            return False

        with self._lock:
            return self._data.pop(key, None) is not None

    def delete_prefix(self, prefix: str) -> int:
        """Remove every entry whose key starts with prefix."""
        with self._lock:
            keys_to_remove = [key for key in self._data if key.startswith(prefix)]
            for key in keys_to_remove:
                del self._data[key]
        return len(keys_to_remove)

    def clear(self) -> int:
        """Remove all entries. Returns the number removed."""
        with self._lock:
            count = len(self._data)
            self._data.clear()
            return count

    def keys(self, prefix: str = "") -> List[str]:
        """List live keys, optionally filtered by prefix."""
        now = self._clock()
        with self._lock:
            snapshot = list(self._data.items())
        return [
            key for key, entry in snapshot
            if key.startswith(prefix) and not entry.is_expired(now)
        ]

    # =========================================================================
    # Expiry
    # =========================================================================

    def sweep(self) -> int:
        """
        Remove all expired entries.

        The map is copied under the lock and scanned without it; each
        removal re-checks that the entry was not replaced meanwhile.

        Returns:
            Number of entries removed
        """
        now = self._clock()

        with self._lock:
            snapshot = list(self._data.items())

        expired = [(key, entry) for key, entry in snapshot if entry.is_expired(now)]

        count = 0
        for key, entry in expired:
            with self._lock:
                if self._data.get(key) is entry:
                    del self._data[key]
                    self._swept += 1
                    count += 1

        if count:
            logger.debug(f"Local sweep removed {count} expired entries")
        return count

    def _evict(self) -> None:
        """Make room: sweep expired entries, then drop the earliest deadlines."""
        if self.sweep() > 0 and len(self._data) < self._max_entries:
            return

        sorted_keys = sorted(
            self._data.keys(),
            key=lambda k: self._data[k].expires_at,
        )

        evict_count = max(1, len(sorted_keys) // 10)
        for key in sorted_keys[:evict_count]:
            del self._data[key]

        self._evicted += evict_count
        logger.warning(
            f"Local store reached {self._max_entries} entries, evicted {evict_count}"
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def running(self) -> bool:
        """Whether the background sweep task is active."""
        return self._sweep_task is not None and not self._sweep_task.done()

    def start(self) -> None:
        """Start the background sweep task. Requires a running event loop."""
        if self.running:
            return
        self._sweep_task = asyncio.get_running_loop().create_task(self._sweep_loop())
        logger.debug(f"Local sweep started (interval={self._sweep_interval}s)")

    async def stop(self) -> None:
        """Cancel the background sweep task and wait for it to finish."""
        task = self._sweep_task
        self._sweep_task = None
        if task is None:
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("Local sweep stopped")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            try:
                self.sweep()
            except Exception as e:
                logger.error(f"Local sweep failed: {e}")

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_stats(self) -> Dict[str, Any]:
        """
        Get store statistics.

        Returns:
            Dictionary with store stats
        """
        with self._lock:
            entries = len(self._data)
            swept = self._swept
            evicted = self._evicted

        return {
            "entries": entries,
            "max_entries": self._max_entries,
            "sweep_interval": self._sweep_interval,
            "swept": swept,
            "evicted": evicted,
            "sweeping": self.running,
        }

    def __len__(self) -> int:
        """Get number of entries (including expired, not yet swept)."""
        with self._lock:
            return len(self._data)

    def __contains__(self, key: str) -> bool:
        """Check if key holds a live entry."""
        return self.get(key) is not None
