"""
tiercache API Routes.
"""

from tiercache.api.routes.cache import create_cache_router

__all__ = ["create_cache_router"]
