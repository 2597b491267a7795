"""
FastAPI application factory.

Wires a CacheManager into an app: lifecycle via lifespan, rate limiting
and session middleware, and the cache diagnostics router.
"""

import logging
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

from fastapi import FastAPI

from tiercache.api.middleware import RateLimitMiddleware, SessionMiddleware
from tiercache.api.routes import create_cache_router
from tiercache.cache.manager import CacheManager
from tiercache.config.settings import Settings, get_settings
from tiercache.utils.logger_config import configure_logging

logger = logging.getLogger(__name__)


def create_app(
    manager: Optional[CacheManager] = None,
    settings: Optional[Settings] = None,
    route_classes: Optional[Dict[str, str]] = None,
    public_paths: Optional[List[str]] = None,
    enable_sessions: bool = True,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        manager: Cache manager (built from settings if None)
        settings: Settings (the manager's, or global settings, if None)
        route_classes: Path prefix to route class mapping for rate limiting
        public_paths: Paths that skip session validation
        enable_sessions: Whether to gate requests on a valid session

    Returns:
        Configured FastAPI instance
    """
    settings = settings or (manager.settings if manager else get_settings())
    configure_logging(settings)

    manager = manager or CacheManager(settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting cache manager...")
        remote_ok = await manager.initialize()
        logger.info(f"Cache manager ready (remote={'up' if remote_ok else 'down'})")

        yield

        logger.info("Shutting down cache manager...")
        await manager.close()

    app = FastAPI(title="tiercache", lifespan=lifespan)
    app.state.cache_manager = manager

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "remote_available": manager.remote.available,
        }

    app.include_router(create_cache_router(manager))

    # Last added runs first: sessions resolve before rate limiting
    app.add_middleware(
        RateLimitMiddleware,
        rate_limiter=manager.rate_limiter,
        route_classes=route_classes,
        enabled=settings.rate_limit_enabled,
    )
    if enable_sessions:
        app.add_middleware(
            SessionMiddleware,
            session_manager=manager.sessions,
            public_paths=public_paths,
        )

    return app
