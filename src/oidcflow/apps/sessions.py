"""In-memory session registry keyed by an opaque cookie value."""

from __future__ import annotations

import logging
import secrets
import time
from typing import Callable

from starlette.requests import Request
from starlette.responses import Response

from oidcflow.auth.models.session import Session

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Maps session cookies to ``Session`` values.

    Sessions live in process memory and are scoped to one user-agent, so
    requests from different users never share one. A session is only kept
    once a response binds its cookie, and is dropped after ``idle_timeout``
    seconds without a request.
    """

    def __init__(
        self,
        cookie_name: str = "oidcflow_session",
        secure: bool = False,
        idle_timeout: float = 3600,
        clock: Callable[[], float] = time.time,
    ):
        self.cookie_name = cookie_name
        self.secure = secure
        self.idle_timeout = idle_timeout
        self._clock = clock
        self._sessions: dict[str, Session] = {}

    def load(self, request: Request) -> Session:
        """Return the request's session, or a new unbound one."""
        now = self._clock()
        session_id = request.cookies.get(self.cookie_name)
        session = self._sessions.get(session_id) if session_id else None
        if session is not None:
            if self._is_idle(session, now):
                logger.debug(f"Session {session.session_id} expired")
                del self._sessions[session.session_id]
            else:
                session.last_seen_at = now
                return session

        return Session(session_id=secrets.token_urlsafe(32), last_seen_at=now)

    def bind(self, response: Response, session: Session) -> Response:
        """Keep the session and attach its cookie to a response."""
        now = self._clock()
        self._evict_idle(now)
        if session.session_id not in self._sessions:
            logger.debug(f"Created session {session.session_id}")
        session.last_seen_at = now
        self._sessions[session.session_id] = session

        response.set_cookie(
            self.cookie_name,
            session.session_id,
            httponly=True,
            secure=self.secure,
            samesite="lax",
        )
        return response

    def destroy(self, session: Session, response: Response | None = None) -> None:
        self._sessions.pop(session.session_id, None)
        if response is not None:
            response.delete_cookie(self.cookie_name)

    def _is_idle(self, session: Session, now: float) -> bool:
        return now - session.last_seen_at >= self.idle_timeout

    def _evict_idle(self, now: float) -> None:
        idle = [sid for sid, s in self._sessions.items() if self._is_idle(s, now)]
        for session_id in idle:
            del self._sessions[session_id]
        if idle:
            logger.debug(f"Evicted {len(idle)} idle sessions")

    def __len__(self) -> int:
        return len(self._sessions)
