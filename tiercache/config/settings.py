"""
Global configuration settings for tiercache.

Loads configuration from environment variables and provides
typed access to all cache settings.
"""

import os
from typing import Optional, Dict, Any
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Global settings for tiercache."""

    # Remote store
    redis_url: str = ""
    remote_timeout: float = 0.25
    remote_cooldown: float = 5.0

    # Local store
    sweep_interval: float = 300.0
    local_max_entries: int = 10000

    # Cache facade
    batch_concurrency: int = 10

    # Sessions
    session_timeout: int = 1800
    session_refresh_threshold: int = 300

    # Rate limiting
    rate_limit_enabled: bool = True

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_file: str = ""

    def __post_init__(self):
        """Load settings from environment variables."""
        self.redis_url = os.getenv("REDIS_URL", self.redis_url)
        self.log_level = os.getenv("LOG_LEVEL", self.log_level)
        self.log_format = os.getenv("LOG_FORMAT", self.log_format)
        self.log_file = os.getenv("LOG_FILE", self.log_file)
        self.rate_limit_enabled = _env_bool("RATE_LIMIT_ENABLED", self.rate_limit_enabled)

        # Load numeric settings if provided
        if os.getenv("CACHE_REMOTE_TIMEOUT"):
            self.remote_timeout = float(os.getenv("CACHE_REMOTE_TIMEOUT"))
        if os.getenv("CACHE_REMOTE_COOLDOWN"):
            self.remote_cooldown = float(os.getenv("CACHE_REMOTE_COOLDOWN"))
        if os.getenv("CACHE_SWEEP_INTERVAL"):
            self.sweep_interval = float(os.getenv("CACHE_SWEEP_INTERVAL"))
        if os.getenv("CACHE_LOCAL_MAX_ENTRIES"):
            self.local_max_entries = int(os.getenv("CACHE_LOCAL_MAX_ENTRIES"))
        if os.getenv("CACHE_BATCH_CONCURRENCY"):
            self.batch_concurrency = int(os.getenv("CACHE_BATCH_CONCURRENCY"))
        if os.getenv("SESSION_TIMEOUT"):
            self.session_timeout = int(os.getenv("SESSION_TIMEOUT"))
        if os.getenv("SESSION_REFRESH_THRESHOLD"):
            self.session_refresh_threshold = int(os.getenv("SESSION_REFRESH_THRESHOLD"))

    @property
    def remote_configured(self) -> bool:
        return bool(self.redis_url)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "redis_url": "***" if self.redis_url else "",
            "remote_configured": self.remote_configured,
            "remote_timeout": self.remote_timeout,
            "remote_cooldown": self.remote_cooldown,
            "sweep_interval": self.sweep_interval,
            "local_max_entries": self.local_max_entries,
            "batch_concurrency": self.batch_concurrency,
            "session_timeout": self.session_timeout,
            "session_refresh_threshold": self.session_refresh_threshold,
            "rate_limit_enabled": self.rate_limit_enabled,
            "log_level": self.log_level,
            "log_file": self.log_file,
        }


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def configure(redis_url: str = None, **kwargs) -> Settings:
    """
    Configure global settings.

    Args:
        redis_url: Redis connection URL
        **kwargs: Additional settings

    Returns:
        Configured Settings instance
    """
    settings = get_settings()

    if redis_url:
        settings.redis_url = redis_url

    for key, value in kwargs.items():
        if hasattr(settings, key):
            setattr(settings, key, value)

    return settings


def reset_settings() -> None:
    """Drop the global settings instance (re-read from environment on next use)."""
    global _settings
    _settings = None
