"""
Expiring cache entry shared by every store tier.
"""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class CacheEntry:
    """Cache entry with value and absolute expiration time."""
    value: Any
    expires_at: float

    def is_expired(self, now: float) -> bool:
        """Check if entry has expired at the given time."""
        return now >= self.expires_at

    def remaining(self, now: float) -> float:
        """Seconds left before expiry (never negative)."""
        return max(0.0, self.expires_at - now)
