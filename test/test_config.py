"""
Tests for settings and logging configuration.
"""

import logging

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from tiercache.api.middleware import RateLimitMiddleware
from tiercache.cache.local import LocalStore
from tiercache.cache.rate_limit import FixedWindowRateLimiter, RateLimitRule
from tiercache.cache.remote import RemoteStore
from tiercache.config.settings import Settings, configure, get_settings, reset_settings
from tiercache.utils.logger_config import configure_logging, setup_logging


@pytest.fixture
def global_settings(settings):
    reset_settings()
    yield
    reset_settings()


class TestSettings:
    """Test environment-driven settings."""

    def test_defaults(self, settings):
        assert settings.redis_url == ""
        assert settings.remote_configured is False
        assert settings.remote_timeout == 0.25
        assert settings.remote_cooldown == 5.0
        assert settings.sweep_interval == 300.0
        assert settings.local_max_entries == 10000
        assert settings.batch_concurrency == 10
        assert settings.session_timeout == 1800
        assert settings.session_refresh_threshold == 300
        assert settings.rate_limit_enabled is True

    def test_from_environment(self, settings, monkeypatch):
        monkeypatch.setenv("REDIS_URL", "redis://cache:6379/0")
        monkeypatch.setenv("CACHE_REMOTE_TIMEOUT", "0.5")
        monkeypatch.setenv("CACHE_LOCAL_MAX_ENTRIES", "500")
        monkeypatch.setenv("SESSION_TIMEOUT", "600")
        monkeypatch.setenv("RATE_LIMIT_ENABLED", "false")

        loaded = Settings()

        assert loaded.remote_configured is True
        assert loaded.remote_timeout == 0.5
        assert loaded.local_max_entries == 500
        assert loaded.session_timeout == 600
        assert loaded.rate_limit_enabled is False

    def test_to_dict_masks_url(self, settings, monkeypatch):
        monkeypatch.setenv("REDIS_URL", "redis://:secret@cache:6379/0")

        data = Settings().to_dict()

        assert data["redis_url"] == "***"
        assert "secret" not in str(data)

    def test_global_instance(self, global_settings):
        assert get_settings() is get_settings()

    def test_configure(self, global_settings):
        configured = configure(redis_url="redis://other:6379/1", session_timeout=60, unknown=1)

        assert configured is get_settings()
        assert configured.redis_url == "redis://other:6379/1"
        assert configured.session_timeout == 60
        assert not hasattr(configured, "unknown")

    def test_reset(self, global_settings):
        first = get_settings()
        reset_settings()

        assert get_settings() is not first


class TestLogging:
    """Test logging setup."""

    @pytest.fixture(autouse=True)
    def restore_logger(self):
        logger = logging.getLogger("tiercache")
        handlers, level = logger.handlers[:], logger.level
        yield
        for handler in logger.handlers:
            if handler not in handlers:
                handler.close()
        logger.handlers = handlers
        logger.setLevel(level)

    def test_setup_logging(self):
        logger = setup_logging(level="WARNING")

        assert logger.name == "tiercache"
        assert logger.level == logging.WARNING
        assert len(logger.handlers) == 1

    def test_unknown_level_falls_back_to_info(self):
        assert setup_logging(level="LOUD").level == logging.INFO

    def test_setup_logging_replaces_own_handlers(self, tmp_path):
        logger = logging.getLogger("tiercache")
        foreign = logging.NullHandler()
        logger.addHandler(foreign)

        setup_logging(level="INFO")
        setup_logging(level="DEBUG", log_file=str(tmp_path / "cache.log"))

        assert foreign in logger.handlers
        assert len(logger.handlers) == 3

    def test_configure_logging_from_settings(self, settings, monkeypatch, tmp_path):
        log_file = tmp_path / "tiercache.log"
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("LOG_FORMAT", "%(levelname)s|%(message)s")
        monkeypatch.setenv("LOG_FILE", str(log_file))

        logger = configure_logging(Settings())
        logging.getLogger("tiercache.cache.local").debug("swept")
        for handler in logger.handlers:
            handler.flush()

        assert logger.level == logging.DEBUG
        assert log_file.read_text().strip() == "DEBUG|swept"


class TestRateLimitSwitch:
    """Test RATE_LIMIT_ENABLED reaching the middleware."""

    def build(self, **kwargs):
        limiter = FixedWindowRateLimiter(
            remote=RemoteStore(url=None),
            local=LocalStore(),
            rules={"api": RateLimitRule(limit=1, window=60)},
        )
        app = FastAPI()

        @app.get("/api/items")
        async def items():
            return {}

        app.add_middleware(RateLimitMiddleware, rate_limiter=limiter, **kwargs)
        return TestClient(app)

    def test_default_follows_environment(self, global_settings, monkeypatch):
        monkeypatch.setenv("RATE_LIMIT_ENABLED", "false")
        reset_settings()
        client = self.build()

        for _ in range(3):
            assert client.get("/api/items").status_code == 200

    def test_default_enabled(self, global_settings):
        client = self.build()

        assert client.get("/api/items").status_code == 200
        assert client.get("/api/items").status_code == 429

    def test_explicit_flag_wins(self, global_settings, monkeypatch):
        monkeypatch.setenv("RATE_LIMIT_ENABLED", "false")
        reset_settings()
        client = self.build(enabled=True)

        client.get("/api/items")
        assert client.get("/api/items").status_code == 429
