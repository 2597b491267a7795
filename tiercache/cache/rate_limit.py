"""
Fixed-window rate limiting.

Counts requests per (identifier, route class) in the remote store when it
is reachable and in the local store otherwise. Fails open.
"""

import math
import time
import logging
import threading
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel, Field

from tiercache.cache.categories import CacheNamespace
from tiercache.cache.local import LocalStore
from tiercache.cache.remote import RemoteStore

logger = logging.getLogger(__name__)


# =============================================================================
# Rate Limit Rules
# =============================================================================

class RateLimitRule(BaseModel):
    """Limit for one route class."""

    limit: int = Field(..., ge=1, description="Requests admitted per window")
    window: int = Field(..., ge=1, description="Window length in seconds")
    block_duration: int = Field(
        default=0,
        ge=0,
        description="Seconds to deny after the limit is exceeded (0 = until window reset)",
    )

    model_config = {"extra": "forbid"}


RATE_LIMIT_RULES: Dict[str, RateLimitRule] = {
    # Route class -> rule
    "default": RateLimitRule(limit=100, window=60),
    "api": RateLimitRule(limit=100, window=60),
    "ai": RateLimitRule(limit=10, window=60),
    "pdf-generation": RateLimitRule(limit=5, window=60),
    "webhook-stripe": RateLimitRule(limit=60, window=60),
    "upload": RateLimitRule(limit=20, window=60),
    "auth": RateLimitRule(limit=5, window=900, block_duration=900),
}


# =============================================================================
# Buckets and Results
# =============================================================================

class BucketState(str, Enum):
    """Rate limit bucket states."""
    OPEN = "open"
    AT_LIMIT = "at_limit"
    BLOCKED = "blocked"


@dataclass(frozen=True)
class RateLimitBucket:
    """Fixed-window counter for one (identifier, route class) pair."""

    count: int
    window_reset_at: float
    blocked_until: Optional[float] = None

    def state(self, limit: int, now: float) -> BucketState:
        if self.blocked_until is not None and now < self.blocked_until:
            return BucketState.BLOCKED
        if self.count >= limit:
            return BucketState.AT_LIMIT
        return BucketState.OPEN

    def is_stale(self, now: float) -> bool:
        """Window elapsed or block served: the next check starts fresh."""
        if self.blocked_until is not None:
            return now >= self.blocked_until
        return now >= self.window_reset_at


@dataclass
class RateLimitResult:
    """Result of rate limit check."""

    allowed: bool
    remaining: int
    limit: int
    window: int
    retry_after: int = 0
    reset_at: float = 0.0

    def to_headers(self) -> Dict[str, str]:
        """Convert to HTTP headers."""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Window": str(self.window),
            "X-RateLimit-Reset": str(int(math.ceil(self.reset_at))),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "allowed": self.allowed,
            "remaining": self.remaining,
            "limit": self.limit,
            "window": self.window,
            "retry_after": self.retry_after,
            "reset_at": self.reset_at,
        }


def _seconds_until(deadline: float, now: float) -> int:
    return max(1, int(math.ceil(deadline - now)))


def _to_number(raw: Any, kind: Callable[[Any], Any]) -> Any:
    """Parse a stored counter or deadline; None if absent or malformed."""
    if raw is None:
        return None
    try:
        return kind(raw)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring malformed rate limit value: {raw!r}")
        return None


class FixedWindowRateLimiter:
    """
    Fixed-window rate limiter over the remote and local stores.

    A burst straddling a window boundary can admit up to twice the
    nominal rate. Local-tier counts are per process.
    """

    def __init__(
        self,
        local: LocalStore,
        remote: Optional[RemoteStore] = None,
        rules: Optional[Dict[str, RateLimitRule]] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize rate limiter.

        Args:
            local: Local store holding fallback buckets
            remote: Remote store adapter (None for local-only)
            rules: Route class rules (defaults to RATE_LIMIT_RULES)
            clock: Time source returning epoch seconds
        """
        self._local = local
        self._remote = remote if remote is not None else RemoteStore()
        self._rules = {k.lower(): v for k, v in (rules or RATE_LIMIT_RULES).items()}
        self._clock = clock
        self._lock = threading.Lock()

    def get_rule(self, route_class: str) -> RateLimitRule:
        """Get the rule for a route class (case-insensitive, falls back to default)."""
        rule = self._rules.get((route_class or "default").lower())
        if rule is None:
            rule = self._rules.get("default", RATE_LIMIT_RULES["default"])
        return rule

    def _key(self, identifier: str, route_class: str) -> str:
        return f"{CacheNamespace.RATE_LIMIT.value}:{(route_class or 'default').lower()}:{identifier}"

    # =========================================================================
    # Checks
    # =========================================================================

    async def check(
        self,
        identifier: str,
        route_class: str = "default",
        rule: Optional[RateLimitRule] = None,
    ) -> RateLimitResult:
        """
        Count one request and decide whether to admit it.

        Args:
            identifier: Caller identity (IP, org id, user id, API key)
            route_class: Rule name, e.g. "api", "ai", "auth"
            rule: Override the configured rule

        Returns:
            RateLimitResult with allowed status and metadata
        """
        rule = rule or self.get_rule(route_class)
        key = self._key(identifier, route_class)

        result = await self._check_remote(key, rule)
        if result is not None:
            return result

        try:
            return self._check_local(key, rule)
        except Exception as e:
            logger.error(f"Rate limit check failed for '{key}', admitting: {e}")
            return self._admit(rule)

    async def _check_remote(self, key: str, rule: RateLimitRule) -> Optional[RateLimitResult]:
        """Remote fixed window. Returns None when the remote is unavailable."""
        if not self._remote.available:
            return None

        now = self._clock()
        block_key = f"{key}:blocked"

        blocked_until = _to_number(await self._remote.get(block_key), float)
        if blocked_until is not None and now < blocked_until:
            return self._deny(rule, blocked_until, now)

        count = await self._remote.increment(key)
        if count is None:
            return None

        if count == 1:
            await self._remote.expire(key, rule.window)
            reset_at = now + rule.window
        else:
            ttl = await self._remote.ttl(key)
            if ttl is None:
                await self._remote.expire(key, rule.window)
                ttl = rule.window
            reset_at = now + ttl

        if count > rule.limit:
            if rule.block_duration:
                blocked_until = now + rule.block_duration
                await self._remote.set(block_key, str(blocked_until), rule.block_duration)
                await self._remote.delete(key)
                logger.info(f"Rate limit exceeded for '{key}', blocked for {rule.block_duration}s")
                return self._deny(rule, blocked_until, now)
            return self._deny(rule, reset_at, now)

        return RateLimitResult(
            allowed=True,
            remaining=rule.limit - count,
            limit=rule.limit,
            window=rule.window,
            reset_at=reset_at,
        )

    def _check_local(self, key: str, rule: RateLimitRule) -> RateLimitResult:
        """Local fixed window (read-modify-write under the limiter lock)."""
        with self._lock:
            now = self._clock()
            bucket = self._local.get(key)

            if bucket is not None and bucket.state(rule.limit, now) == BucketState.BLOCKED:
                return self._deny(rule, bucket.blocked_until, now)

            if bucket is None or bucket.is_stale(now):
                bucket = RateLimitBucket(count=0, window_reset_at=now + rule.window)

            bucket = replace(bucket, count=bucket.count + 1)

            if bucket.count > rule.limit:
                if rule.block_duration:
                    bucket = replace(bucket, blocked_until=now + rule.block_duration)
                    logger.info(f"Rate limit exceeded for '{key}', blocked for {rule.block_duration}s")
                deadline = bucket.blocked_until or bucket.window_reset_at
                self._local.set(key, bucket, deadline - now)
                return self._deny(rule, deadline, now)

            self._local.set(key, bucket, bucket.window_reset_at - now)
            return RateLimitResult(
                allowed=True,
                remaining=rule.limit - bucket.count,
                limit=rule.limit,
                window=rule.window,
                reset_at=bucket.window_reset_at,
            )

    def _deny(self, rule: RateLimitRule, until: float, now: float) -> RateLimitResult:
        return RateLimitResult(
            allowed=False,
            remaining=0,
            limit=rule.limit,
            window=rule.window,
            retry_after=_seconds_until(until, now),
            reset_at=until,
        )

    def _admit(self, rule: RateLimitRule) -> RateLimitResult:
        return RateLimitResult(
            allowed=True,
            remaining=rule.limit,
            limit=rule.limit,
            window=rule.window,
            reset_at=self._clock() + rule.window,
        )

    # =========================================================================
    # Inspection
    # =========================================================================

    async def get_usage(self, identifier: str, route_class: str = "default") -> Dict[str, Any]:
        """
        Get current usage for an identifier without counting a request.

        Returns:
            Usage statistics; retry_after is non-zero while blocked
        """
        rule = self.get_rule(route_class)
        key = self._key(identifier, route_class)
        now = self._clock()

        count = None
        blocked_until = None
        if self._remote.available:
            blocked_until = _to_number(await self._remote.get(f"{key}:blocked"), float)
            count = _to_number(await self._remote.get(key), int)

        if blocked_until is not None and now < blocked_until:
            # the counter is dropped when a block starts
            count = max(count or 0, rule.limit + 1)
            state = BucketState.BLOCKED
        elif count is not None:
            state = BucketState.AT_LIMIT if count >= rule.limit else BucketState.OPEN
        else:
            bucket = self._local.get(key)
            count = 0
            state = BucketState.OPEN
            if bucket is not None and not bucket.is_stale(now):
                count = bucket.count
                state = bucket.state(rule.limit, now)
                if state == BucketState.BLOCKED:
                    blocked_until = bucket.blocked_until

        return {
            "current_count": count,
            "limit": rule.limit,
            "window": rule.window,
            "remaining": 0 if state == BucketState.BLOCKED else max(0, rule.limit - count),
            "state": state.value,
            "retry_after": _seconds_until(blocked_until, now) if state == BucketState.BLOCKED else 0,
        }

    async def reset(self, identifier: str, route_class: Optional[str] = None) -> bool:
        """
        Reset limits for an identifier.

        Args:
            identifier: Caller identity
            route_class: Specific route class (or all if None)

        Returns:
            True if reset
        """
        if route_class:
            key = self._key(identifier, route_class)
            await self._remote.delete(key, f"{key}:blocked")
            self._local.delete(key)
            return True

        prefix = f"{CacheNamespace.RATE_LIMIT.value}:"

        keys = [
            key for key in await self._remote.keys(f"{prefix}*")
            if _belongs_to(key, identifier)
        ]
        if keys:
            await self._remote.delete(*keys)

        for key in self._local.keys(prefix):
            if _belongs_to(key, identifier):
                self._local.delete(key)

        return True


def _belongs_to(key: str, identifier: str) -> bool:
    """Whether a ratelimit:<class>:<identifier>[:blocked] key is this identifier's."""
    parts = key.split(":", 2)
    if len(parts) != 3:
        return False
    rest = parts[2]
    return rest == identifier or rest == f"{identifier}:blocked"
