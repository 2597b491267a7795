"""
Two-tier cache facade.

Remote tier first, local tier second; never raises to the caller.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, Iterable, List, Optional, TypeVar, Union

from tiercache.cache.categories import (
    CacheLayer,
    CacheNamespace,
    get_namespace_config,
    namespace_prefix,
)
from tiercache.cache.errors import CacheWriteError
from tiercache.cache.local import LocalStore
from tiercache.cache.remote import RemoteStore

logger = logging.getLogger(__name__)

V = TypeVar("V")

_MISSING = object()


def json_encoder(value: Any) -> str:
    return json.dumps(value, default=str)


def json_decoder(payload: Union[bytes, str]) -> Any:
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8")
    return json.loads(payload)


@dataclass
class BatchResult(Generic[V]):
    """Result of a batch lookup."""

    found: Dict[str, V] = field(default_factory=dict)
    missing: List[str] = field(default_factory=list)


class TieredCache(Generic[V]):
    """
    Namespaced cache over a remote and a local tier.

    Reads try the remote tier, then the local tier. Writes go to both:
    the local copy is a standing fallback, so a value written just before
    a remote outage is still served.

    Values are encoded once at write time; the local tier keeps the encoded
    payload, so later mutation of the caller's object cannot leak into
    the cache.
    """

    def __init__(
        self,
        namespace: Union[CacheNamespace, str],
        local: LocalStore,
        remote: Optional[RemoteStore] = None,
        ttl: Optional[int] = None,
        encoder: Callable[[V], Union[bytes, str]] = json_encoder,
        decoder: Callable[[Union[bytes, str]], V] = json_decoder,
        max_concurrency: int = 10,
    ):
        """
        Initialize tiered cache.

        Args:
            namespace: Key prefix (enum member or ad-hoc string)
            local: Shared local store
            remote: Shared remote store adapter (None for local-only)
            ttl: Default time-to-live (uses namespace default if None)
            encoder: Serializes a value for storage
            decoder: Deserializes a stored payload
            max_concurrency: Concurrent single-key operations in a batch
        """
        config = get_namespace_config(namespace)

        self._namespace = namespace
        self._prefix = namespace_prefix(namespace)
        self._local = local
        self._remote = remote if remote is not None else RemoteStore()
        self._layers = config.layers
        self._ttl = ttl if ttl is not None else config.ttl
        self._encode = encoder
        self._decode = decoder
        self._max_concurrency = max(1, max_concurrency)

        self._metrics = self._empty_metrics()

    @staticmethod
    def _empty_metrics() -> Dict[str, Any]:
        return {
            "hits": {layer.value: 0 for layer in CacheLayer},
            "misses": 0,
            "errors": 0,
            "writes": 0,
            "skipped_writes": 0,
        }

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def default_ttl(self) -> int:
        return self._ttl

    def make_key(self, key: str) -> str:
        """Build the namespaced store key."""
        return f"{self._prefix}:{key}"

    # =========================================================================
    # Core Cache Operations
    # =========================================================================

    async def get(self, key: str, default: Optional[V] = None) -> Optional[V]:
        """
        Get value, checking the remote tier then the local tier.

        Args:
            key: Cache key (without namespace prefix)
            default: Value returned on miss

        Returns:
            Cached value or default
        """
        if not key:
            self._metrics["misses"] += 1
            return default

        store_key = self.make_key(key)

        for layer in self._layers:
            value = await self._get_from_layer(layer, store_key)
            if value is not _MISSING:
                self._metrics["hits"][layer.value] += 1
                return value

        self._metrics["misses"] += 1
        return default

    async def set(self, key: str, value: V, ttl: Optional[int] = None) -> bool:
        """
        Best-effort write to both tiers.

        Args:
            key: Cache key
            value: Value to cache
            ttl: Time-to-live (uses default if None); non-positive means do not cache

        Returns:
            True if the value is now cached in at least the local tier
        """
        written, _ = await self._write(key, value, ttl)
        return written

    async def set_best_effort(self, key: str, value: V, ttl: Optional[int] = None) -> bool:
        """Write that logs failures and never raises. Same as ``set``."""
        return await self.set(key, value, ttl)

    async def set_strict(self, key: str, value: V, ttl: Optional[int] = None) -> None:
        """
        Write that reports failures.

        A non-positive TTL is still a silent no-op.

        Raises:
            CacheWriteError: if the key is empty, the value could not be
                encoded, or a configured remote tier rejected the write
        """
        _, reason = await self._write(key, value, ttl)
        if reason is not None:
            raise CacheWriteError(key, reason)

    async def invalidate(self, key: str) -> bool:
        """
        Delete from both tiers. Remote deletion is best-effort.

        Returns:
            True if an entry was removed from either tier
        """
        if not key:
            return False

        store_key = self.make_key(key)
        removed = False

        if CacheLayer.REMOTE in self._layers:
            removed = await self._remote.delete(store_key) > 0
        if CacheLayer.LOCAL in self._layers:
            removed = self._local.delete(store_key) or removed

        return removed

    async def exists(self, key: str) -> bool:
        """Check if key exists in cache."""
        return await self.get(key, _MISSING) is not _MISSING

    async def invalidate_namespace(self) -> int:
        """
        Invalidate every entry in this namespace.

        Scans the remote keyspace; not for request paths.

        Returns:
            Number of entries invalidated
        """
        pattern_prefix = f"{self._prefix}:"
        count = 0

        if CacheLayer.REMOTE in self._layers:
            keys = await self._remote.keys(f"{pattern_prefix}*")
            if keys:
                count += await self._remote.delete(*keys)

        if CacheLayer.LOCAL in self._layers:
            count += self._local.delete_prefix(pattern_prefix)

        logger.info(f"Invalidated {count} entries in namespace '{self._prefix}'")
        return count

    # =========================================================================
    # Batch Operations
    # =========================================================================

    async def get_many(self, keys: Iterable[str]) -> BatchResult[V]:
        """
        Look up several keys concurrently.

        A failure on one key lands it in ``missing``; it never fails the batch.
        """
        keys = list(dict.fromkeys(keys))
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def fetch(key: str):
            async with semaphore:
                return await self.get(key, _MISSING)

        results = await asyncio.gather(
            *(fetch(key) for key in keys),
            return_exceptions=True,
        )

        batch: BatchResult[V] = BatchResult()
        for key, result in zip(keys, results):
            if isinstance(result, BaseException):
                self._metrics["errors"] += 1
                logger.warning(f"Batch get failed for '{key}': {result}")
                batch.missing.append(key)
            elif result is _MISSING:
                batch.missing.append(key)
            else:
                batch.found[key] = result

        return batch

    async def set_many(
        self,
        items: Dict[str, V],
        ttl: Optional[int] = None,
    ) -> Dict[str, bool]:
        """
        Write several entries concurrently.

        Returns:
            Per-key write outcome
        """
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def store(key: str, value: V) -> bool:
            async with semaphore:
                return await self.set(key, value, ttl)

        keys = list(items.keys())
        results = await asyncio.gather(
            *(store(key, items[key]) for key in keys),
            return_exceptions=True,
        )

        outcome = {}
        for key, result in zip(keys, results):
            if isinstance(result, BaseException):
                self._metrics["errors"] += 1
                logger.warning(f"Batch set failed for '{key}': {result}")
                outcome[key] = False
            else:
                outcome[key] = result

        return outcome

    # =========================================================================
    # Layer Operations
    # =========================================================================

    async def _get_from_layer(self, layer: CacheLayer, store_key: str) -> Any:
        """Get value from a specific layer; _MISSING on miss or failure."""
        if layer == CacheLayer.REMOTE:
            payload = await self._remote.get(store_key)
        else:
            payload = self._local.get(store_key)

        if payload is None:
            return _MISSING

        try:
            return self._decode(payload)
        except Exception as e:
            self._metrics["errors"] += 1
            logger.warning(f"Cache decode error ({layer.value}) for '{store_key}': {e}")
            return _MISSING

    async def _write(self, key: str, value: V, ttl: Optional[int]):
        """
        Encode once and write to every configured layer.

        Returns:
            (written locally or remotely, failure reason or None)
        """
        ttl = self._ttl if ttl is None else ttl

        if not key:
            self._metrics["skipped_writes"] += 1
            return False, "empty key"
        if ttl <= 0:
            self._metrics["skipped_writes"] += 1
            return False, None

        store_key = self.make_key(key)

        try:
            payload = self._encode(value)
        except Exception as e:
            self._metrics["errors"] += 1
            logger.warning(f"Cache encode error for '{store_key}', write skipped: {e}")
            return False, f"serialization failed: {e}"

        self._metrics["writes"] += 1
        written = False
        reason = None

        if CacheLayer.REMOTE in self._layers:
            if await self._remote.set(store_key, payload, ttl):
                written = True
            elif self._remote.configured:
                reason = "remote write failed"

        if CacheLayer.LOCAL in self._layers:
            written = self._local.set(store_key, payload, ttl) or written

        return written, reason

    # =========================================================================
    # Statistics
    # =========================================================================

    async def stats(self, include_remote_keys: bool = True) -> Dict[str, Any]:
        """
        Get cache statistics.

        The remote key count scans the remote keyspace (O(n)) and must not
        be called on a hot path; pass include_remote_keys=False to skip it.
        The local entry count covers the whole shared store and is O(1).
        """
        total_hits = sum(self._metrics["hits"].values())
        total = total_hits + self._metrics["misses"]

        remote_entries = None
        if include_remote_keys and CacheLayer.REMOTE in self._layers:
            remote_entries = len(await self._remote.keys(f"{self._prefix}:*"))

        return {
            "namespace": self._prefix,
            "hits": dict(self._metrics["hits"]),
            "total_hits": total_hits,
            "misses": self._metrics["misses"],
            "errors": self._metrics["errors"],
            "writes": self._metrics["writes"],
            "skipped_writes": self._metrics["skipped_writes"],
            "hit_rate": total_hits / total if total > 0 else 0,
            "local_entries": len(self._local),
            "remote_entries": remote_entries,
            "remote_configured": self._remote.configured,
        }

    def reset_stats(self) -> None:
        """Reset all statistics."""
        self._metrics = self._empty_metrics()
