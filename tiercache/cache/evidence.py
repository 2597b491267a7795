"""
Signed evidence URL cache.

Cached payloads carry the URL's own expiry so a URL that is about to
lapse is treated as a miss before the cache entry itself expires.
"""

import time
import logging
from typing import Callable, Optional

from tiercache.cache.tiered import TieredCache

logger = logging.getLogger(__name__)

# URLs expiring within this window are not served from cache
EARLY_EXPIRY_MARGIN = 3600


class EvidenceUrlCache:
    """Caches signed storage URLs keyed by storage path."""

    def __init__(
        self,
        cache: TieredCache,
        margin: int = EARLY_EXPIRY_MARGIN,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize evidence URL cache.

        Args:
            cache: Cache for the evidence URL namespace
            margin: Seconds before URL expiry at which the entry counts as a miss
            clock: Time source returning epoch seconds
        """
        self.cache = cache
        self.margin = margin
        self._clock = clock

    async def get(self, storage_path: str) -> Optional[str]:
        """Get a cached URL that stays valid for at least the margin."""
        entry = await self.cache.get(storage_path)
        if not entry:
            return None

        try:
            url = entry["url"]
            expires_at = float(entry["expires_at"])
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Malformed evidence URL entry for '{storage_path}': {e}")
            await self.cache.invalidate(storage_path)
            return None

        if expires_at - self._clock() < self.margin:
            await self.cache.invalidate(storage_path)
            return None

        return url

    async def set(self, storage_path: str, url: str, expires_at: float) -> bool:
        """
        Cache a signed URL.

        The entry lives no longer than the URL stays usable.
        """
        usable_for = int(expires_at - self._clock() - self.margin)
        ttl = min(self.cache.default_ttl, usable_for)
        return await self.cache.set(storage_path, {"url": url, "expires_at": expires_at}, ttl)

    async def invalidate(self, storage_path: str) -> bool:
        return await self.cache.invalidate(storage_path)
