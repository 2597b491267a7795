"""
Shared fixtures and configuration for tiercache tests.
"""

import fnmatch
import math

import pytest

from tiercache.cache.local import LocalStore
from tiercache.cache.remote import RemoteStore
from tiercache.cache.tiered import TieredCache
from tiercache.config.settings import Settings


# =============================================================================
# Fakes
# =============================================================================

class FakeClock:
    """Manually advanced clock returning epoch-like seconds."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRedis:
    """In-memory stand-in for redis.asyncio.Redis (bytes values, TTLs on a clock)."""

    def __init__(self, clock: FakeClock):
        self._clock = clock
        self._data = {}
        self._expiry = {}
        self.calls = []
        self.closed = False

    def _purge(self, key):
        deadline = self._expiry.get(key)
        if deadline is not None and self._clock() >= deadline:
            self._data.pop(key, None)
            self._expiry.pop(key, None)

    @staticmethod
    def _to_bytes(value):
        if isinstance(value, bytes):
            return value
        return str(value).encode("utf-8")

    async def get(self, key):
        self.calls.append(("get", key))
        self._purge(key)
        return self._data.get(key)

    async def set(self, key, value, ex=None):
        self.calls.append(("set", key))
        self._data[key] = self._to_bytes(value)
        if ex is not None:
            self._expiry[key] = self._clock() + ex
        else:
            self._expiry.pop(key, None)
        return True

    async def delete(self, *keys):
        self.calls.append(("delete", keys))
        count = 0
        for key in keys:
            self._purge(key)
            if self._data.pop(key, None) is not None:
                count += 1
            self._expiry.pop(key, None)
        return count

    async def scan_iter(self, match="*", count=None):
        for key in list(self._data):
            self._purge(key)
            if key in self._data and fnmatch.fnmatchcase(key, match):
                yield key.encode("utf-8")

    async def incr(self, key):
        self.calls.append(("incr", key))
        self._purge(key)
        value = int(self._data.get(key, b"0")) + 1
        self._data[key] = str(value).encode("utf-8")
        return value

    async def expire(self, key, seconds):
        self.calls.append(("expire", key))
        self._purge(key)
        if key not in self._data:
            return False
        self._expiry[key] = self._clock() + seconds
        return True

    async def ttl(self, key):
        self._purge(key)
        if key not in self._data:
            return -2
        deadline = self._expiry.get(key)
        if deadline is None:
            return -1
        return int(math.ceil(deadline - self._clock()))

    async def ping(self):
        return True

    async def aclose(self):
        self.closed = True


class BrokenRedis:
    """Client whose every call fails like a refused connection."""

    def __init__(self):
        self.attempts = 0

    def __getattr__(self, name):
        async def fail(*args, **kwargs):
            self.attempts += 1
            raise ConnectionError("Connection refused")
        return fail

    def scan_iter(self, match="*", count=None):
        self.attempts += 1
        raise ConnectionError("Connection refused")


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def clock():
    """Controllable clock."""
    return FakeClock()


@pytest.fixture
def local_store(clock):
    """Local store driven by the fake clock."""
    return LocalStore(sweep_interval=300, max_entries=1000, clock=clock)


@pytest.fixture
def fake_redis(clock):
    """In-memory Redis double."""
    return FakeRedis(clock)


@pytest.fixture
def remote_store(fake_redis):
    """Remote store over the in-memory Redis double (no cooldown)."""
    return RemoteStore(client=fake_redis, timeout=0.5, cooldown=0)


@pytest.fixture
def broken_remote():
    """Remote store whose client always fails (no cooldown)."""
    return RemoteStore(client=BrokenRedis(), timeout=0.5, cooldown=0)


@pytest.fixture
def unconfigured_remote():
    """Remote store with no URL or client."""
    return RemoteStore()


@pytest.fixture
def tiered_cache(local_store, remote_store):
    """Tiered cache over both working tiers."""
    return TieredCache("test", local_store, remote_store, ttl=60)


@pytest.fixture
def settings(monkeypatch):
    """Settings isolated from the process environment."""
    for name in (
        "REDIS_URL",
        "CACHE_REMOTE_TIMEOUT",
        "CACHE_REMOTE_COOLDOWN",
        "CACHE_SWEEP_INTERVAL",
        "CACHE_LOCAL_MAX_ENTRIES",
        "CACHE_BATCH_CONCURRENCY",
        "SESSION_TIMEOUT",
        "SESSION_REFRESH_THRESHOLD",
        "RATE_LIMIT_ENABLED",
        "LOG_LEVEL",
        "LOG_FORMAT",
        "LOG_FILE",
    ):
        monkeypatch.delenv(name, raising=False)
    return Settings()
