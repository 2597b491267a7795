"""
Session Middleware for FastAPI.

Gates requests on a valid session and rotates sessions nearing expiry.
"""

import logging
from typing import Callable, List, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response, JSONResponse

from tiercache.cache.session import SessionManager

logger = logging.getLogger(__name__)

SESSION_HEADER = "X-Session-Id"
SESSION_COOKIE = "session_id"

# Paths that never require a session
PUBLIC_PATHS = [
    "/health",
    "/docs",
    "/openapi.json",
    "/api/auth/login",
    "/api/webhooks",
]


class SessionMiddleware(BaseHTTPMiddleware):
    """
    Session validation middleware.

    Reads the session id from the X-Session-Id header or the session
    cookie. Invalid or expired sessions get a 401. When a refresh is due
    the session is rotated and the new id is returned in X-Session-Id.
    """

    def __init__(
        self,
        app,
        session_manager: Optional[SessionManager] = None,
        public_paths: List[str] = None,
        header_name: str = SESSION_HEADER,
        cookie_name: str = SESSION_COOKIE,
    ):
        super().__init__(app)
        self._sessions = session_manager
        self._public_paths = public_paths if public_paths is not None else PUBLIC_PATHS
        self._header_name = header_name
        self._cookie_name = cookie_name

    async def dispatch(
        self,
        request: Request,
        call_next: Callable,
    ) -> Response:
        """Process request with session validation."""
        if not self._sessions or self._is_public(request.url.path):
            return await call_next(request)

        session_id = request.headers.get(self._header_name) or request.cookies.get(self._cookie_name)
        if not session_id:
            return self._unauthorized("Session required")

        validation = await self._sessions.validate(session_id)
        if not validation.valid:
            return self._unauthorized("Session expired or invalid")

        session = validation.session
        rotated = None
        if validation.should_refresh:
            rotated = await self._sessions.refresh(session_id)
            if rotated is not None:
                session = rotated

        request.state.session = session
        response = await call_next(request)

        if rotated is not None:
            response.headers[self._header_name] = rotated.session_id
            logger.debug(f"Issued refreshed session for user {rotated.user_id}")

        return response

    def _is_public(self, path: str) -> bool:
        return any(path == p or path.startswith(p.rstrip("/") + "/") for p in self._public_paths)

    def _unauthorized(self, message: str) -> JSONResponse:
        return JSONResponse(status_code=401, content={"error": message})
