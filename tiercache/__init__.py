"""
tiercache - Resilient tiered cache and rate limiting

A two-tier cache that sits in front of an optional Redis server and falls
back to process memory when the server is absent or failing.

Key Features:
- Remote-then-local lookups with TTL expiry and a background sweep
- Best-effort and strict write modes, concurrent batch operations
- Fixed-window rate limiting with optional block periods, failing open
- Sliding-expiry sessions with token rotation on refresh
"""

__version__ = "0.1.0"
__author__ = "tiercache Team"

from tiercache.cache.manager import CacheManager
from tiercache.cache.tiered import TieredCache
from tiercache.cache.rate_limit import FixedWindowRateLimiter, RateLimitResult
from tiercache.cache.session import SessionManager, SessionValidation
from tiercache.config.settings import Settings, get_settings

__all__ = [
    "CacheManager",
    "TieredCache",
    "FixedWindowRateLimiter",
    "RateLimitResult",
    "SessionManager",
    "SessionValidation",
    "Settings",
    "get_settings",
]
