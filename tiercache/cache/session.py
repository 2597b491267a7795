"""
Session management.

Sliding-expiry sessions stored in the tiered cache, with token rotation
on refresh and explicit revocation.
"""

import asyncio
import secrets
import time
import logging
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from tiercache.cache.tiered import TieredCache

logger = logging.getLogger(__name__)

# 32 random bytes = 256 bits of entropy
SESSION_ID_BYTES = 32


class SessionState(str, Enum):
    """Session lifecycle states."""
    ACTIVE = "active"
    NEAR_EXPIRY = "near_expiry"
    EXPIRED = "expired"
    REVOKED = "revoked"


@dataclass
class SessionRecord:
    """
    Session stored in the cache.

    Timestamps are epoch seconds.
    """

    session_id: str
    user_id: str
    org_id: Optional[str]
    created_at: float
    last_activity: float
    expires_at: float
    refresh_token: Optional[str] = None

    def remaining(self, now: float) -> float:
        """Seconds until expiry (never negative)."""
        return max(0.0, self.expires_at - now)

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def state(self, now: float, refresh_threshold: float) -> SessionState:
        if self.is_expired(now):
            return SessionState.EXPIRED
        if self.expires_at - now < refresh_threshold:
            return SessionState.NEAR_EXPIRY
        return SessionState.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionRecord":
        """Create from dictionary."""
        return cls(
            session_id=data["session_id"],
            user_id=data["user_id"],
            org_id=data.get("org_id"),
            created_at=float(data["created_at"]),
            last_activity=float(data["last_activity"]),
            expires_at=float(data["expires_at"]),
            refresh_token=data.get("refresh_token"),
        )


@dataclass
class SessionValidation:
    """Outcome of validating a session id."""

    valid: bool
    session: Optional[SessionRecord] = None
    should_refresh: bool = False
    state: Optional[SessionState] = None


def generate_session_id() -> str:
    """Generate an unguessable session identifier."""
    return secrets.token_urlsafe(SESSION_ID_BYTES)


class SessionManager:
    """
    Manages sessions on top of the tiered cache.

    Every validated access slides the deadline forward by the timeout.
    Refresh rotates the identifier: afterwards only the new id validates.

    Mutations of one session run under that session's lock, and mutations
    of a user's index run under that user's lock. A session lock may be
    held while taking a user lock, never the other way round. Revoked ids
    leave a tombstone for one timeout so a stale copy (a remote delete that
    failed, or another process writing back) never validates again.
    """

    def __init__(
        self,
        cache: TieredCache,
        index_cache: TieredCache,
        timeout: int = 1800,
        refresh_threshold: int = 300,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize session manager.

        Args:
            cache: Cache holding session records (session namespace)
            index_cache: Cache holding user_id -> session ids
            timeout: Idle timeout in seconds (30 minutes)
            refresh_threshold: Remaining lifetime below which a refresh is due
            clock: Time source returning epoch seconds
        """
        self.cache = cache
        self.index = index_cache
        self.timeout = timeout
        self.refresh_threshold = refresh_threshold
        self._clock = clock
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @property
    def index_ttl(self) -> int:
        """Index entries outlive every session they list."""
        return max(self.index.default_ttl, self.timeout)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def create(
        self,
        user_id: str,
        org_id: Optional[str] = None,
        issue_refresh_token: bool = False,
    ) -> SessionRecord:
        """
        Create a new session.

        Args:
            user_id: User identifier
            org_id: Organization identifier
            issue_refresh_token: Also generate a refresh token

        Returns:
            Created SessionRecord
        """
        now = self._clock()
        session = SessionRecord(
            session_id=generate_session_id(),
            user_id=user_id,
            org_id=org_id,
            created_at=now,
            last_activity=now,
            expires_at=now + self.timeout,
            refresh_token=secrets.token_urlsafe(SESSION_ID_BYTES) if issue_refresh_token else None,
        )

        await self.cache.set(session.session_id, session.to_dict(), ttl=self.timeout)
        await self._index_add(user_id, session.session_id)

        logger.info(f"Created session for user {user_id} (org={org_id})")
        return session

    async def validate(self, session_id: str) -> SessionValidation:
        """
        Validate a session and slide its expiry.

        Args:
            session_id: Session identifier

        Returns:
            SessionValidation; should_refresh reflects the deadline before sliding,
            unknown or revoked ids report SessionState.REVOKED
        """
        if not _is_session_id(session_id):
            return SessionValidation(valid=False, state=SessionState.REVOKED)

        async with self._hold(_session_lock(session_id)):
            session = await self._load(session_id)
            if session is None:
                # unknown and revoked ids look the same once deleted
                return SessionValidation(valid=False, state=SessionState.REVOKED)

            if await self._is_revoked(session_id):
                await self.cache.invalidate(session_id)
                logger.warning(f"Dropped stale copy of revoked session for user {session.user_id}")
                return SessionValidation(valid=False, state=SessionState.REVOKED)

            now = self._clock()
            state = session.state(now, self.refresh_threshold)

            if state == SessionState.EXPIRED:
                await self.cache.invalidate(session_id)
                await self._index_remove(session.user_id, [session_id])
                logger.debug(f"Session for user {session.user_id} expired")
                return SessionValidation(valid=False, state=state)

            session.last_activity = now
            session.expires_at = now + self.timeout
            await self.cache.set(session_id, session.to_dict(), ttl=self.timeout)
            # keeps the index alive as long as the session slides
            await self._index_add(session.user_id, session_id)

        return SessionValidation(
            valid=True,
            session=session,
            should_refresh=state == SessionState.NEAR_EXPIRY,
            state=state,
        )

    async def refresh(self, session_id: str) -> Optional[SessionRecord]:
        """
        Rotate a session: new id for the same user and org, old id revoked.

        Returns:
            The new SessionRecord, or None if the old session is not valid
        """
        if not _is_session_id(session_id):
            return None

        async with self._hold(_session_lock(session_id)):
            old = await self._load(session_id)
            if old is None or old.is_expired(self._clock()) or await self._is_revoked(session_id):
                return None

            await self._revoke(session_id)
            await self._index_remove(old.user_id, [session_id])

            new = await self.create(
                old.user_id,
                old.org_id,
                issue_refresh_token=old.refresh_token is not None,
            )

        logger.info(f"Rotated session for user {old.user_id}")
        return new

    async def destroy(self, session_id: str) -> bool:
        """
        Revoke a session (logout).

        Returns:
            True if a session was removed
        """
        if not _is_session_id(session_id):
            return False

        async with self._hold(_session_lock(session_id)):
            session = await self._load(session_id)
            removed = await self._revoke(session_id)
            if session is not None:
                await self._index_remove(session.user_id, [session_id])
        return removed

    async def destroy_all_for_user(self, user_id: str) -> int:
        """
        Revoke every session of a user (account reset).

        Returns:
            Number of sessions removed
        """
        session_ids = await self.index.get(user_id) or []

        count = 0
        for session_id in session_ids:
            async with self._hold(_session_lock(session_id)):
                if await self._revoke(session_id):
                    count += 1

        await self._index_remove(user_id, session_ids)

        logger.info(f"Revoked {count} sessions for user {user_id}")
        return count

    async def list_for_user(self, user_id: str) -> List[SessionRecord]:
        """List the live sessions of a user."""
        session_ids = await self.index.get(user_id) or []
        found = await self.cache.get_many(session_ids)
        now = self._clock()

        sessions = []
        for session_id in session_ids:
            data = found.found.get(session_id)
            if data is None:
                continue
            session = SessionRecord.from_dict(data)
            if not session.is_expired(now):
                sessions.append(session)
        return sessions

    # =========================================================================
    # Internals
    # =========================================================================

    @asynccontextmanager
    async def _hold(self, name: str):
        """Hold the named lock; the lock is dropped once nobody uses it."""
        lock = self._locks.get(name)
        if lock is None:
            lock = self._locks[name] = asyncio.Lock()
        self._lock_users[name] = self._lock_users.get(name, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[name] -= 1
            if not self._lock_users[name]:
                del self._lock_users[name]
                del self._locks[name]

    async def _load(self, session_id: str) -> Optional[SessionRecord]:
        if not _is_session_id(session_id):
            return None

        data = await self.cache.get(session_id)
        if not data:
            return None

        try:
            return SessionRecord.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Discarding malformed session record: {e}")
            await self.cache.invalidate(session_id)
            return None

    async def _revoke(self, session_id: str) -> bool:
        """Tombstone and delete a session. Returns True if a record was removed."""
        await self.cache.set(_tombstone_key(session_id), True, ttl=self.timeout)
        return await self.cache.invalidate(session_id)

    async def _is_revoked(self, session_id: str) -> bool:
        return await self.cache.exists(_tombstone_key(session_id))

    async def _index_add(self, user_id: str, session_id: str) -> None:
        async with self._hold(_user_lock(user_id)):
            session_ids = await self.index.get(user_id) or []
            if session_id not in session_ids:
                session_ids.append(session_id)
            await self.index.set(user_id, session_ids, ttl=self.index_ttl)

    async def _index_remove(self, user_id: str, removed: List[str]) -> None:
        async with self._hold(_user_lock(user_id)):
            session_ids = await self.index.get(user_id) or []
            remaining = [s for s in session_ids if s not in removed]
            if remaining == session_ids:
                return
            if remaining:
                await self.index.set(user_id, remaining, ttl=self.index_ttl)
            else:
                await self.index.invalidate(user_id)


def _session_lock(session_id: str) -> str:
    return f"session:{session_id}"


def _user_lock(user_id: str) -> str:
    return f"user:{user_id}"


def _tombstone_key(session_id: str) -> str:
    return f"{session_id}:revoked"


def _is_session_id(session_id: str) -> bool:
    # ids are base64url; ":" only appears in tombstone keys
    return bool(session_id) and ":" not in session_id
