"""
tiercache API Middleware.

Provides rate limiting and session validation middleware.
"""

from tiercache.api.middleware.rate_limit import RateLimitMiddleware, ROUTE_CLASSES
from tiercache.api.middleware.session import SessionMiddleware

__all__ = [
    "RateLimitMiddleware",
    "SessionMiddleware",
    "ROUTE_CLASSES",
]
