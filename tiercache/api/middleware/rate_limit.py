"""
Rate Limiting Middleware for FastAPI.

Maps request paths to route classes and rejects callers over their limit.
"""

import logging
from typing import Callable, Dict, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response, JSONResponse

from tiercache.cache.rate_limit import FixedWindowRateLimiter
from tiercache.config.settings import get_settings

logger = logging.getLogger(__name__)


# Path prefix -> route class
ROUTE_CLASSES: Dict[str, str] = {
    "/api/ai": "ai",
    "/api/reports/generate": "pdf-generation",
    "/api/webhooks/stripe": "webhook-stripe",
    "/api/uploads": "upload",
    "/api/auth": "auth",
    "/api": "api",
}


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Rate limiting middleware using fixed windows.

    Admitted responses carry X-RateLimit-* headers; denied requests get a
    429 with Retry-After.
    """

    def __init__(
        self,
        app,
        rate_limiter: Optional[FixedWindowRateLimiter] = None,
        route_classes: Dict[str, str] = None,
        enabled: Optional[bool] = None,
    ):
        """
        Initialize middleware.

        Args:
            app: FastAPI application
            rate_limiter: Limiter to consult
            route_classes: Path prefix to route class mapping
            enabled: Whether rate limiting is enabled (RATE_LIMIT_ENABLED if None)
        """
        super().__init__(app)
        self._limiter = rate_limiter
        self._route_classes = route_classes or ROUTE_CLASSES
        self._enabled = get_settings().rate_limit_enabled if enabled is None else enabled

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        """Process request with rate limiting."""
        if not self._enabled or not self._limiter:
            return await call_next(request)

        route_class = self._get_route_class(request.url.path)
        if route_class is None:
            return await call_next(request)

        identifier = self._get_identifier(request)

        try:
            result = await self._limiter.check(identifier, route_class)
        except Exception as e:
            logger.warning(f"Rate limit check failed: {e}")
            # Fail open - allow request
            return await call_next(request)

        headers = result.to_headers()

        if not result.allowed:
            logger.info(f"Rate limited {identifier} on {route_class}")
            return JSONResponse(
                status_code=429,
                content={
                    "error": "Rate limit exceeded",
                    "retry_after": result.retry_after,
                    "limit": result.limit,
                    "window": result.window,
                },
                headers=headers,
            )

        response = await call_next(request)

        for key, value in headers.items():
            response.headers[key] = value

        return response

    def _get_identifier(self, request: Request) -> str:
        """Get unique identifier for rate limiting.

        Priority:
        1. User ID from a validated session (SessionMiddleware)
        2. API key
        3. Client IP
        """
        session = getattr(request.state, "session", None)
        if session is not None and getattr(session, "user_id", None):
            return f"user:{session.user_id}"

        api_key = request.headers.get("X-API-Key")
        if api_key:
            return f"key:{api_key}"

        client_host = request.client.host if request.client else "unknown"

        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            client_host = forwarded.split(",")[0].strip()

        return f"ip:{client_host}"

    def _get_route_class(self, path: str) -> Optional[str]:
        """Get the route class for a path (longest prefix wins)."""
        for prefix in sorted(self._route_classes, key=len, reverse=True):
            if path == prefix or path.startswith(prefix.rstrip("/") + "/"):
                return self._route_classes[prefix]
        return None
