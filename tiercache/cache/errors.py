"""
Cache exceptions.

Only the strict write path raises; every other operation reports
failures through its return value.
"""


class CacheError(Exception):
    """Base class for cache errors."""


class CacheWriteError(CacheError):
    """A strict write could not be completed."""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Cache write failed for '{key}': {reason}")
