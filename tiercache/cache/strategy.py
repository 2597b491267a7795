"""
Carrier strategy cache.
"""

import re
from typing import Any, Dict, Optional

from tiercache.cache.tiered import TieredCache

_NON_KEY_CHARS = re.compile(r"[^a-z0-9]+")


def normalize_carrier_key(carrier: str, *qualifiers: Optional[str]) -> str:
    """
    Normalize a carrier name (plus optional qualifiers) into a cache key.

    "State Farm", " state-farm " and "STATE_FARM" map to the same key.
    """
    parts = [carrier, *(q for q in qualifiers if q)]
    return ":".join(
        _NON_KEY_CHARS.sub("_", part.strip().lower()).strip("_") for part in parts
    )


class CarrierStrategyCache:
    """Caches per-carrier tone strategies for 30 minutes."""

    def __init__(self, cache: TieredCache):
        self.cache = cache

    async def get(self, carrier: str, claim_type: Optional[str] = None) -> Optional[Dict[str, Any]]:
        return await self.cache.get(normalize_carrier_key(carrier, claim_type))

    async def set(
        self,
        carrier: str,
        strategy: Dict[str, Any],
        claim_type: Optional[str] = None,
        ttl: Optional[int] = None,
    ) -> bool:
        return await self.cache.set(normalize_carrier_key(carrier, claim_type), strategy, ttl)

    async def invalidate(self, carrier: str, claim_type: Optional[str] = None) -> bool:
        return await self.cache.invalidate(normalize_carrier_key(carrier, claim_type))
