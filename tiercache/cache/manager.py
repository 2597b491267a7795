"""
Cache manager for tiercache.

Owns the shared local and remote stores and hands out the caches,
rate limiter and session manager built on them.
"""

import time
import logging
from typing import Any, Callable, Dict, Optional, Union

from tiercache.cache.categories import CacheNamespace, namespace_prefix
from tiercache.cache.local import LocalStore
from tiercache.cache.rate_limit import FixedWindowRateLimiter, RateLimitRule
from tiercache.cache.remote import RemoteStore
from tiercache.cache.session import SessionManager
from tiercache.cache.tiered import TieredCache
from tiercache.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class CacheManager:
    """
    Central cache management.

    Construct once at process start, ``initialize()`` it, inject it into
    consumers, and ``close()`` it on shutdown (also usable as an async
    context manager).

    Features:
    - One local store and one remote adapter shared by every namespace
    - Background sweep owned by the manager's lifecycle
    - Graceful degradation to local-only when the remote is absent or down
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        local: Optional[LocalStore] = None,
        remote: Optional[RemoteStore] = None,
        rate_limit_rules: Optional[Dict[str, RateLimitRule]] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize cache manager.

        Args:
            settings: Settings (global settings if None)
            local: Local store (built from settings if None)
            remote: Remote store adapter (built from settings if None)
            rate_limit_rules: Route class rules for the rate limiter
            clock: Time source returning epoch seconds
        """
        self.settings = settings or get_settings()
        self._clock = clock

        self.local = local or LocalStore(
            sweep_interval=self.settings.sweep_interval,
            max_entries=self.settings.local_max_entries,
            clock=clock,
        )
        self.remote = remote or RemoteStore(
            url=self.settings.redis_url or None,
            timeout=self.settings.remote_timeout,
            cooldown=self.settings.remote_cooldown,
        )

        self._caches: Dict[str, TieredCache] = {}
        self._rate_limit_rules = rate_limit_rules
        self._rate_limiter: Optional[FixedWindowRateLimiter] = None
        self._sessions: Optional[SessionManager] = None
        self._initialized = False

    async def initialize(self) -> bool:
        """
        Start the sweep task and ping the remote store.

        Returns:
            True if the remote store answered
        """
        self.local.start()

        remote_ok = False
        if self.remote.configured:
            remote_ok = await self.remote.ping()
            if remote_ok:
                logger.info("Remote cache connected")
            else:
                logger.warning("Remote cache not reachable, serving from local store")

        self._initialized = True
        return remote_ok

    async def close(self) -> None:
        """Stop the sweep task and close the remote connection."""
        await self.local.stop()
        await self.remote.close()
        self._initialized = False

    async def __aenter__(self) -> "CacheManager":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        await self.close()
        return False

    # =========================================================================
    # Consumers
    # =========================================================================

    def cache(
        self,
        namespace: Union[CacheNamespace, str],
        ttl: Optional[int] = None,
        **kwargs: Any,
    ) -> TieredCache:
        """
        Get the cache for a namespace.

        The first call for a namespace creates it; later calls return the
        same instance and ignore the arguments.
        """
        prefix = namespace_prefix(namespace)
        cache = self._caches.get(prefix)
        if cache is None:
            kwargs.setdefault("max_concurrency", self.settings.batch_concurrency)
            cache = TieredCache(namespace, self.local, self.remote, ttl=ttl, **kwargs)
            self._caches[prefix] = cache
        return cache

    @property
    def rate_limiter(self) -> FixedWindowRateLimiter:
        if self._rate_limiter is None:
            self._rate_limiter = FixedWindowRateLimiter(
                self.local,
                self.remote,
                rules=self._rate_limit_rules,
                clock=self._clock,
            )
        return self._rate_limiter

    @property
    def sessions(self) -> SessionManager:
        if self._sessions is None:
            self._sessions = SessionManager(
                self.cache(CacheNamespace.SESSION, ttl=self.settings.session_timeout),
                self.cache(CacheNamespace.SESSION_INDEX),
                timeout=self.settings.session_timeout,
                refresh_threshold=self.settings.session_refresh_threshold,
                clock=self._clock,
            )
        return self._sessions

    # =========================================================================
    # Statistics
    # =========================================================================

    async def get_stats(self, include_remote_keys: bool = False) -> Dict[str, Any]:
        """
        Get comprehensive cache statistics.

        Args:
            include_remote_keys: Scan the remote keyspace for per-namespace
                key counts (expensive)
        """
        stats = {
            "by_namespace": {},
            "totals": {"hits": 0, "misses": 0, "errors": 0, "writes": 0},
            "local": self.local.get_stats(),
            "remote": self.remote.get_stats(),
            "initialized": self._initialized,
        }

        for prefix, cache in self._caches.items():
            cache_stats = await cache.stats(include_remote_keys=include_remote_keys)
            stats["by_namespace"][prefix] = cache_stats
            stats["totals"]["hits"] += cache_stats["total_hits"]
            stats["totals"]["misses"] += cache_stats["misses"]
            stats["totals"]["errors"] += cache_stats["errors"]
            stats["totals"]["writes"] += cache_stats["writes"]

        total_requests = stats["totals"]["hits"] + stats["totals"]["misses"]
        stats["totals"]["hit_rate"] = (
            stats["totals"]["hits"] / total_requests if total_requests > 0 else 0
        )

        return stats

    def reset_stats(self) -> None:
        """Reset statistics of every namespace."""
        for cache in self._caches.values():
            cache.reset_stats()
