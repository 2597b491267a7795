"""
tiercache Cache Module.

Provides the tiered cache, rate limiting, and session management.
"""

from tiercache.cache.categories import (
    CacheLayer,
    CacheNamespace,
    NamespaceConfig,
    NAMESPACE_CONFIG,
)
from tiercache.cache.entry import CacheEntry
from tiercache.cache.errors import CacheError, CacheWriteError
from tiercache.cache.local import LocalStore
from tiercache.cache.remote import RemoteStore
from tiercache.cache.tiered import TieredCache, BatchResult
from tiercache.cache.manager import CacheManager
from tiercache.cache.rate_limit import (
    FixedWindowRateLimiter,
    RateLimitRule,
    RateLimitResult,
    RATE_LIMIT_RULES,
)
from tiercache.cache.session import (
    SessionManager,
    SessionRecord,
    SessionState,
    SessionValidation,
)
from tiercache.cache.strategy import CarrierStrategyCache
from tiercache.cache.evidence import EvidenceUrlCache

__all__ = [
    # Categories
    "CacheLayer",
    "CacheNamespace",
    "NamespaceConfig",
    "NAMESPACE_CONFIG",
    # Stores
    "CacheEntry",
    "LocalStore",
    "RemoteStore",
    # Facade
    "TieredCache",
    "BatchResult",
    "CacheManager",
    "CacheError",
    "CacheWriteError",
    # Rate Limiting
    "FixedWindowRateLimiter",
    "RateLimitRule",
    "RateLimitResult",
    "RATE_LIMIT_RULES",
    # Session
    "SessionManager",
    "SessionRecord",
    "SessionState",
    "SessionValidation",
    # Consumers
    "CarrierStrategyCache",
    "EvidenceUrlCache",
]
