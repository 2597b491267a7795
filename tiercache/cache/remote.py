"""
Optional remote key-value tier backed by Redis.

Every operation is time-boxed and non-throwing: a missing configuration,
a timeout, and a refused connection all look the same to the caller.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

Value = Union[bytes, str]


class RemoteStore:
    """
    Best-effort adapter over an async Redis client.

    Features:
    - Lazy, idempotent client construction
    - Hard per-call timeout
    - Cooldown after a failure so a dead remote is not retried on every call
    - No retries; callers fall back to the local tier instead
    """

    def __init__(
        self,
        url: Optional[str] = None,
        client: Any = None,
        timeout: float = 0.25,
        cooldown: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize remote store adapter.

        Args:
            url: Redis connection URL (None leaves the remote unconfigured)
            client: Pre-built async Redis client (takes precedence over url)
            timeout: Per-call deadline in seconds
            cooldown: Seconds to skip remote calls after a failure
            clock: Monotonic time source for the cooldown
        """
        self._url = url
        self._client = client
        self._timeout = timeout
        self._cooldown = cooldown
        self._clock = clock

        self._resolved = client is not None
        self._down_until = 0.0
        self._healthy = True

        self._stats = {"calls": 0, "failures": 0, "timeouts": 0, "skipped": 0}

    # =========================================================================
    # Connection State
    # =========================================================================

    @property
    def configured(self) -> bool:
        """Whether a client or URL was provided."""
        return self._client is not None or bool(self._url)

    @property
    def available(self) -> bool:
        """Whether the next call would actually reach the remote."""
        return self.configured and self._clock() >= self._down_until

    def _get_client(self) -> Any:
        """Build the client on first use; None when unconfigured."""
        if self._resolved:
            return self._client

        self._resolved = True

        if not self._url:
            logger.info("Remote cache not configured (no REDIS_URL), using local store only")
            return None

        try:
            import redis.asyncio as redis
            self._client = redis.from_url(
                self._url,
                socket_timeout=self._timeout,
                socket_connect_timeout=self._timeout,
            )
        except Exception as e:
            logger.warning(f"Remote cache client could not be created: {e}")
            self._client = None

        return self._client

    async def _call(
        self,
        operation: str,
        fn: Callable[[Any], Awaitable[Any]],
        default: Any = None,
    ) -> Any:
        """
        Run one remote operation under the deadline.

        Returns:
            The operation result, or default on any failure
        """
        client = self._get_client()
        if client is None:
            return default

        if self._clock() < self._down_until:
            self._stats["skipped"] += 1
            return default

        self._stats["calls"] += 1
        try:
            result = await asyncio.wait_for(fn(client), timeout=self._timeout)
        except asyncio.TimeoutError:
            self._stats["timeouts"] += 1
            self._mark_down(operation, f"timed out after {self._timeout}s")
            return default
        except Exception as e:
            self._mark_down(operation, str(e) or type(e).__name__)
            return default

        if not self._healthy:
            self._healthy = True
            logger.info("Remote cache recovered")
        return result

    def _mark_down(self, operation: str, reason: str) -> None:
        self._stats["failures"] += 1
        self._down_until = self._clock() + self._cooldown
        if self._healthy:
            self._healthy = False
            logger.warning(
                f"Remote cache {operation} failed ({reason}), "
                f"falling back to local store for {self._cooldown}s"
            )
        else:
            logger.debug(f"Remote cache {operation} failed: {reason}")

    # =========================================================================
    # Operations
    # =========================================================================

    async def get(self, key: str) -> Optional[bytes]:
        """GET key. Returns None on miss or when unavailable."""
        return await self._call("get", lambda c: c.get(key))

    async def set(self, key: str, value: Value, ttl: int) -> bool:
        """SET key value EX ttl. Returns True if the remote accepted the write."""
        ttl = int(ttl)
        if ttl <= 0:
            return False
        result = await self._call("set", lambda c: c.set(key, value, ex=ttl), False)
        return bool(result)

    async def delete(self, *keys: str) -> int:
        """DEL keys. Returns the number of keys removed (0 when unavailable)."""
        if not keys:
            return 0
        result = await self._call("delete", lambda c: c.delete(*keys), 0)
        return int(result or 0)

    async def keys(self, pattern: str) -> List[str]:
        """
        List keys matching a glob pattern.

        Walks the whole keyspace with SCAN. O(n); for diagnostics and
        stats only, never on a request path.
        """
        async def scan(client) -> List[str]:
            found = []
            async for key in client.scan_iter(match=pattern, count=1000):
                found.append(key.decode() if isinstance(key, bytes) else key)
            return found

        return await self._call("keys", scan, [])

    async def increment(self, key: str) -> Optional[int]:
        """INCR key. Returns the new count, or None when unavailable."""
        result = await self._call("increment", lambda c: c.incr(key))
        return int(result) if result is not None else None

    async def expire(self, key: str, ttl: int) -> bool:
        """EXPIRE key ttl."""
        result = await self._call("expire", lambda c: c.expire(key, int(ttl)), False)
        return bool(result)

    async def ttl(self, key: str) -> Optional[int]:
        """TTL key. Returns remaining seconds, or None if unknown."""
        result = await self._call("ttl", lambda c: c.ttl(key))
        if result is None or int(result) < 0:
            return None
        return int(result)

    async def ping(self) -> bool:
        """Check connectivity."""
        return bool(await self._call("ping", lambda c: c.ping(), False))

    async def close(self) -> None:
        """Close the client connection."""
        client = self._client
        self._client = None
        self._resolved = True
        if client is None:
            return
        try:
            await client.aclose()
        except Exception as e:
            logger.debug(f"Remote cache close failed: {e}")

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_stats(self) -> Dict[str, Any]:
        """Get adapter statistics."""
        return {
            **self._stats,
            "configured": self.configured,
            "available": self.available,
            "timeout": self._timeout,
            "cooldown": self._cooldown,
        }
