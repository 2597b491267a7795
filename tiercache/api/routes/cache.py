"""
Cache Management API Routes.

Provides endpoints for cache statistics and invalidation. Diagnostics
only: the remote key counts scan the whole keyspace.
"""

import logging
from typing import Optional, Dict, Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from tiercache.cache.manager import CacheManager

logger = logging.getLogger(__name__)


# =============================================================================
# Request/Response Models
# =============================================================================

class CacheStatsResponse(BaseModel):
    """Response with cache statistics."""
    by_namespace: Dict[str, Any]
    totals: Dict[str, Any]
    local: Dict[str, Any]
    remote: Dict[str, Any]
    initialized: bool


class InvalidateResponse(BaseModel):
    """Response from invalidation request."""
    invalidated: int = Field(..., description="Number of entries invalidated")
    namespace: str
    key: Optional[str] = None


class RateLimitUsage(BaseModel):
    """Rate limit usage for an identifier."""
    current_count: int
    limit: int
    window: int
    remaining: int
    state: str
    retry_after: int = 0


# =============================================================================
# Router
# =============================================================================

def create_cache_router(manager: CacheManager) -> APIRouter:
    """Build the cache diagnostics router bound to a manager."""
    router = APIRouter(prefix="/cache", tags=["cache"])

    @router.get("/stats", response_model=CacheStatsResponse)
    async def get_cache_stats(remote_keys: bool = False):
        """
        Get comprehensive cache statistics.

        Pass remote_keys=true to count remote keys per namespace (slow).
        """
        stats = await manager.get_stats(include_remote_keys=remote_keys)
        return CacheStatsResponse(**stats)

    @router.post("/stats/reset")
    async def reset_cache_stats():
        """Reset cache statistics."""
        manager.reset_stats()
        return {"status": "ok", "message": "Cache stats reset"}

    @router.get("/ratelimit/{route_class}/{identifier}", response_model=RateLimitUsage)
    async def get_rate_limit_usage(route_class: str, identifier: str):
        """Get rate limit usage without counting a request."""
        usage = await manager.rate_limiter.get_usage(identifier, route_class)
        return RateLimitUsage(**usage)

    @router.delete("/ratelimit/{identifier}")
    async def reset_rate_limit(identifier: str, route_class: Optional[str] = None):
        """Reset rate limits for an identifier."""
        await manager.rate_limiter.reset(identifier, route_class)
        logger.info(f"Rate limits reset for {identifier} ({route_class or 'all'})")
        return {"status": "ok", "identifier": identifier}

    @router.delete("/{namespace}", response_model=InvalidateResponse)
    async def invalidate_namespace(namespace: str):
        """Invalidate every entry in a namespace."""
        count = await manager.cache(namespace).invalidate_namespace()
        return InvalidateResponse(invalidated=count, namespace=namespace)

    @router.delete("/{namespace}/{key}", response_model=InvalidateResponse)
    async def invalidate_key(namespace: str, key: str):
        """Invalidate one cache entry."""
        removed = await manager.cache(namespace).invalidate(key)
        if not removed:
            raise HTTPException(status_code=404, detail=f"No entry '{key}' in '{namespace}'")
        return InvalidateResponse(invalidated=1, namespace=namespace, key=key)

    return router
