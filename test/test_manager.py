"""
Tests for the cache manager.

Tests wiring, namespace caches, lifecycle and aggregated statistics.
"""

import pytest

from tiercache.cache.categories import CacheNamespace
from tiercache.cache.manager import CacheManager
from tiercache.cache.rate_limit import FixedWindowRateLimiter, RateLimitRule
from tiercache.cache.remote import RemoteStore
from tiercache.cache.session import SessionManager


@pytest.fixture
def manager(settings, local_store, remote_store, clock):
    """Manager over the fake-clock stores."""
    return CacheManager(settings=settings, local=local_store, remote=remote_store, clock=clock)


class TestCacheManagerWiring:
    """Test consumer construction."""

    def test_builds_stores_from_settings(self, settings):
        settings.local_max_entries = 42
        settings.remote_timeout = 0.1

        manager = CacheManager(settings=settings)

        assert manager.local.get_stats()["max_entries"] == 42
        assert manager.remote.configured is False
        assert manager.remote.get_stats()["timeout"] == 0.1

    def test_cache_memoized_per_namespace(self, manager):
        first = manager.cache(CacheNamespace.CARRIER_STRATEGY)
        second = manager.cache("carrier_strategy", ttl=5)

        assert first is second
        assert first.default_ttl == 1800

    def test_ad_hoc_namespace(self, manager):
        cache = manager.cache("scratch", ttl=15)

        assert cache.prefix == "scratch"
        assert cache.default_ttl == 15

    def test_caches_share_stores(self, manager, local_store):
        manager.cache("a")
        manager.cache("b")

        assert manager.local is local_store
        assert all(c._local is local_store for c in manager._caches.values())

    def test_rate_limiter_property(self, manager):
        limiter = manager.rate_limiter

        assert isinstance(limiter, FixedWindowRateLimiter)
        assert manager.rate_limiter is limiter

    def test_custom_rate_limit_rules(self, settings, local_store, remote_store):
        rules = {"default": RateLimitRule(limit=2, window=10)}
        manager = CacheManager(
            settings=settings,
            local=local_store,
            remote=remote_store,
            rate_limit_rules=rules,
        )

        assert manager.rate_limiter.get_rule("anything").limit == 2

    def test_sessions_property(self, manager, settings):
        sessions = manager.sessions

        assert isinstance(sessions, SessionManager)
        assert manager.sessions is sessions
        assert sessions.timeout == settings.session_timeout
        assert sessions.cache.prefix == "session"
        assert sessions.index.prefix == "session_user"


class TestCacheManagerLifecycle:
    """Test initialize/close."""

    @pytest.mark.asyncio
    async def test_initialize_and_close(self, manager, fake_redis):
        assert await manager.initialize() is True
        assert manager.local.running is True

        await manager.close()

        assert manager.local.running is False
        assert fake_redis.closed is True

    @pytest.mark.asyncio
    async def test_initialize_without_remote(self, settings):
        manager = CacheManager(settings=settings)

        assert await manager.initialize() is False
        stats = await manager.get_stats()
        assert stats["initialized"] is True

        await manager.close()

    @pytest.mark.asyncio
    async def test_initialize_remote_unreachable(self, settings, local_store, broken_remote):
        manager = CacheManager(settings=settings, local=local_store, remote=broken_remote)

        assert await manager.initialize() is False

        cache = manager.cache("scratch", ttl=60)
        await cache.set("k", "v")
        assert await cache.get("k") == "v"

        await manager.close()

    @pytest.mark.asyncio
    async def test_async_context_manager(self, settings, local_store):
        async with CacheManager(settings=settings, local=local_store, remote=RemoteStore()) as manager:
            assert manager.local.running is True

        assert local_store.running is False


class TestCacheManagerStats:
    """Test aggregated statistics."""

    @pytest.mark.asyncio
    async def test_totals(self, manager):
        strategies = manager.cache(CacheNamespace.CARRIER_STRATEGY)
        urls = manager.cache(CacheNamespace.EVIDENCE_URL)

        await strategies.set("acme", {"tone": "firm"})
        await strategies.get("acme")
        await urls.get("missing")

        stats = await manager.get_stats()

        assert set(stats["by_namespace"]) == {"carrier_strategy", "evidence_url"}
        assert stats["totals"]["hits"] == 1
        assert stats["totals"]["misses"] == 1
        assert stats["totals"]["writes"] == 1
        assert stats["totals"]["hit_rate"] == 0.5
        assert stats["by_namespace"]["carrier_strategy"]["remote_entries"] is None

    @pytest.mark.asyncio
    async def test_remote_key_counts(self, manager):
        cache = manager.cache("scratch", ttl=60)
        await cache.set("a", 1)
        await cache.set("b", 2)

        stats = await manager.get_stats(include_remote_keys=True)

        assert stats["by_namespace"]["scratch"]["remote_entries"] == 2

    @pytest.mark.asyncio
    async def test_reset_stats(self, manager):
        cache = manager.cache("scratch", ttl=60)
        await cache.get("missing")

        manager.reset_stats()

        stats = await manager.get_stats()
        assert stats["totals"]["misses"] == 0
        assert stats["totals"]["hit_rate"] == 0
