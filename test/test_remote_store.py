"""
Tests for the remote store adapter.

Tests the non-throwing contract, timeouts, cooldown, and lazy setup.
"""

import asyncio
import logging

import pytest

from tiercache.cache.remote import RemoteStore

from conftest import BrokenRedis, FakeClock


class SlowRedis:
    """Client that never answers in time."""

    async def get(self, key):
        await asyncio.sleep(5)

    async def aclose(self):
        pass


class TestRemoteStoreOperations:
    """Test operations against a working client."""

    @pytest.mark.asyncio
    async def test_set_get(self, remote_store):
        assert await remote_store.set("k", "value", 60) is True
        assert await remote_store.get("k") == b"value"

    @pytest.mark.asyncio
    async def test_get_missing(self, remote_store):
        assert await remote_store.get("missing") is None

    @pytest.mark.asyncio
    async def test_set_passes_ttl(self, remote_store, fake_redis, clock):
        await remote_store.set("k", "v", 10)
        clock.advance(11)

        assert await remote_store.get("k") is None

    @pytest.mark.asyncio
    async def test_set_non_positive_ttl(self, remote_store, fake_redis):
        assert await remote_store.set("k", "v", 0) is False
        assert fake_redis.calls == []

    @pytest.mark.asyncio
    async def test_delete(self, remote_store):
        await remote_store.set("a", "1", 60)
        await remote_store.set("b", "2", 60)

        assert await remote_store.delete("a", "b", "c") == 2
        assert await remote_store.delete() == 0

    @pytest.mark.asyncio
    async def test_keys(self, remote_store):
        await remote_store.set("ns:a", "1", 60)
        await remote_store.set("ns:b", "2", 60)
        await remote_store.set("other:c", "3", 60)

        assert sorted(await remote_store.keys("ns:*")) == ["ns:a", "ns:b"]

    @pytest.mark.asyncio
    async def test_increment_and_expire(self, remote_store, clock):
        assert await remote_store.increment("counter") == 1
        assert await remote_store.increment("counter") == 2
        assert await remote_store.expire("counter", 30) is True
        assert await remote_store.ttl("counter") == 30

    @pytest.mark.asyncio
    async def test_ttl_unknown(self, remote_store):
        assert await remote_store.ttl("missing") is None

    @pytest.mark.asyncio
    async def test_ping_and_close(self, remote_store, fake_redis):
        assert await remote_store.ping() is True

        await remote_store.close()

        assert fake_redis.closed is True
        assert await remote_store.get("k") is None


class TestRemoteStoreUnconfigured:
    """Test behaviour with no URL and no client."""

    @pytest.mark.asyncio
    async def test_operations_are_noops(self, unconfigured_remote):
        assert unconfigured_remote.configured is False
        assert unconfigured_remote.available is False
        assert await unconfigured_remote.get("k") is None
        assert await unconfigured_remote.set("k", "v", 60) is False
        assert await unconfigured_remote.delete("k") == 0
        assert await unconfigured_remote.keys("*") == []
        assert await unconfigured_remote.increment("k") is None
        assert await unconfigured_remote.expire("k", 60) is False
        assert await unconfigured_remote.ping() is False

    @pytest.mark.asyncio
    async def test_reports_unconfigured_once(self, unconfigured_remote, caplog):
        with caplog.at_level(logging.INFO, logger="tiercache.cache.remote"):
            await unconfigured_remote.get("a")
            await unconfigured_remote.get("b")
            await unconfigured_remote.set("c", "v", 60)

        messages = [r.message for r in caplog.records if "not configured" in r.message]
        assert len(messages) == 1

    def test_client_built_lazily(self):
        store = RemoteStore(url="redis://localhost:6379/0")

        assert store.configured is True
        assert store._client is None


class TestRemoteStoreFailures:
    """Test that failures never escape the adapter."""

    @pytest.mark.asyncio
    async def test_broken_client_returns_defaults(self, broken_remote):
        assert await broken_remote.get("k") is None
        assert await broken_remote.set("k", "v", 60) is False
        assert await broken_remote.delete("k") == 0
        assert await broken_remote.keys("*") == []
        assert await broken_remote.increment("k") is None
        assert await broken_remote.expire("k", 60) is False
        assert await broken_remote.ttl("k") is None
        assert await broken_remote.ping() is False

        assert broken_remote.get_stats()["failures"] == 8

    @pytest.mark.asyncio
    async def test_timeout(self):
        store = RemoteStore(client=SlowRedis(), timeout=0.05, cooldown=0)

        assert await store.get("k") is None
        assert store.get_stats()["timeouts"] == 1

    @pytest.mark.asyncio
    async def test_cooldown_skips_calls(self):
        clock = FakeClock()
        client = BrokenRedis()
        store = RemoteStore(client=client, timeout=0.5, cooldown=5, clock=clock)

        await store.get("k")
        assert store.available is False

        await store.get("k")
        await store.get("k")
        assert client.attempts == 1
        assert store.get_stats()["skipped"] == 2

        clock.advance(5)
        assert store.available is True
        await store.get("k")
        assert client.attempts == 2

    @pytest.mark.asyncio
    async def test_degradation_logged_once(self, broken_remote, caplog):
        with caplog.at_level(logging.DEBUG, logger="tiercache.cache.remote"):
            await broken_remote.get("a")
            await broken_remote.get("b")

        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert "falling back" in warnings[0].message

    @pytest.mark.asyncio
    async def test_recovery_logged(self, fake_redis, caplog):
        class FlakyRedis:
            def __init__(self):
                self.fail = True

            async def get(self, key):
                if self.fail:
                    raise ConnectionError("down")
                return b"v"

        client = FlakyRedis()
        store = RemoteStore(client=client, timeout=0.5, cooldown=0)

        with caplog.at_level(logging.INFO, logger="tiercache.cache.remote"):
            assert await store.get("k") is None
            client.fail = False
            assert await store.get("k") == b"v"

        assert any("recovered" in r.message for r in caplog.records)
