"""
tiercache configuration.
"""

from tiercache.config.settings import Settings, get_settings, configure, reset_settings

__all__ = [
    "Settings",
    "get_settings",
    "configure",
    "reset_settings",
]
