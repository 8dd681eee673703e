"""Token lifecycle management for relying-party sessions.

Drives a session through
``UNAUTHENTICATED -> EXCHANGING -> AUTHENTICATED -> REFRESHING`` and back,
covering code exchange, lazy expiry checks, refresh with optional
refresh-token rotation, and best-effort revocation on logout.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from oidcflow.auth.client.authorization_server import AuthorizationServerClient
from oidcflow.auth.models.errors import (
    AuthError,
    RefreshError,
    TransportError,
)
from oidcflow.auth.models.session import LifecycleState, Session
from oidcflow.auth.models.tokens import (
    RefreshTokenRequest,
    RevocationRequest,
    TokenRequest,
    TokenResponse,
    TokenSet,
)

logger = logging.getLogger(__name__)


class TokenLifecycleManager:
    """Owns the token set of each session it is handed.

    The token-level operations (``exchange_code``, ``refresh``, ``revoke``)
    take and return ``TokenSet`` values. The session-level operations attach
    the result to a ``Session`` in a single assignment.

    Expiry is checked lazily, right before an authenticated call; there are
    no background timers.
    """

    def __init__(
        self,
        server: AuthorizationServerClient,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the lifecycle manager.

        Args:
            server: Authorization server client with relying-party credentials
            clock: Returns the current Unix time in seconds
        """
        self.server = server
        self._clock = clock

    async def exchange_code(
        self,
        code: str,
        redirect_uri: str,
        code_verifier: str | None = None,
    ) -> TokenSet:
        """Exchange an authorization code for a token set.

        Args:
            code: Authorization code from the callback
            redirect_uri: Redirect URI used in the authorization request
            code_verifier: PKCE verifier, when the flow used PKCE

        Returns:
            TokenSet: Freshly issued tokens

        Raises:
            AuthError: If the authorization server rejects the exchange
            TransportError: If the server cannot be reached
        """
        token_request = TokenRequest(
            code=code, redirect_uri=redirect_uri, code_verifier=code_verifier
        )
        token_response = await self.server.request_token(token_request)

        if not token_response.is_success():
            raise AuthError(
                token_response.error or "invalid_response",
                token_response.error_description,
            )

        logger.info("Authorization code exchanged for tokens")
        return self._issue(token_response)

    def is_expired(self, token_set: TokenSet, now: float | None = None) -> bool:
        """Check whether the access token is past its expiry.

        A token set without an expiry never expires.
        """
        if token_set.expires_at is None:
            return False
        if now is None:
            now = self._clock()
        return now >= token_set.expires_at

    async def refresh(self, token_set: TokenSet) -> TokenSet:
        """Refresh a token set.

        The refresh token is replaced only when the server rotates it;
        otherwise the existing one stays valid and is kept.

        Raises:
            RefreshError: If there is no refresh token or the server rejects it
            TransportError: If the server cannot be reached
        """
        if not token_set.can_refresh():
            raise RefreshError(
                RefreshError.NO_REFRESH_TOKEN, "Token set has no refresh token"
            )

        token_response = await self.server.request_token(
            RefreshTokenRequest(refresh_token=token_set.refresh_token)
        )

        if not token_response.is_success():
            raise RefreshError(
                token_response.error or "invalid_response",
                token_response.error_description,
            )

        refreshed = self._issue(token_response, previous=token_set)
        logger.info(
            "Access token refreshed"
            + (" with rotated refresh token" if token_response.refresh_token else "")
        )
        return refreshed

    async def revoke(self, token_set: TokenSet) -> None:
        """Revoke a token set, best effort.

        Failures are logged and never raised.
        """
        requests = [RevocationRequest(token_set.access_token, "access_token")]
        if token_set.refresh_token:
            requests.append(
                RevocationRequest(token_set.refresh_token, "refresh_token")
            )

        for revocation_request in requests:
            try:
                await self.server.revoke(revocation_request)
            except TransportError as e:
                logger.warning(
                    f"Revoking {revocation_request.token_type_hint} failed: {e}"
                )
            except Exception as e:
                logger.error(
                    f"Unexpected error revoking "
                    f"{revocation_request.token_type_hint}: {e}"
                )

    # Session-level operations

    async def authenticate(
        self,
        session: Session,
        code: str,
        redirect_uri: str,
        code_verifier: str | None = None,
    ) -> TokenSet:
        """Exchange a code and attach the resulting token set to a session."""
        session.state = LifecycleState.EXCHANGING
        try:
            token_set = await self.exchange_code(code, redirect_uri, code_verifier)
        except Exception:
            session.state = LifecycleState.UNAUTHENTICATED
            raise

        session.tokens.replace(token_set)
        session.state = LifecycleState.AUTHENTICATED
        return token_set

    async def ensure_fresh(self, session: Session) -> TokenSet:
        """Return a usable token set, refreshing it first if it has expired.

        Raises:
            RefreshError: If the session has no tokens or cannot be refreshed
        """
        token_set = session.token_set
        if token_set is None:
            raise RefreshError("unauthenticated", "Session has no token set")
        if self.is_expired(token_set):
            logger.debug(f"Token set of session {session.session_id} expired")
            return await self.refresh_session(session)
        return token_set

    async def refresh_session(self, session: Session) -> TokenSet:
        """Refresh the session's token set and swap it in.

        A RefreshError logs the session out locally before propagating.
        A TransportError leaves the current token set in place. If another
        flow swapped in a newer token set while this refresh was in flight,
        that token set wins and a failure here is ignored.
        """
        token_set = session.token_set
        if token_set is None:
            raise RefreshError("unauthenticated", "Session has no token set")

        session.state = LifecycleState.REFRESHING
        try:
            refreshed = await self.refresh(token_set)
        except RefreshError as e:
            current = session.token_set
            if current is not None and current is not token_set:
                logger.debug(
                    f"Refresh failed for session {session.session_id} ({e.reason}) "
                    f"after a concurrent refresh, keeping the newer tokens"
                )
                return current
            logger.info(
                f"Refresh failed for session {session.session_id} ({e.reason}), "
                f"logging out"
            )
            session.invalidate()
            raise
        except Exception:
            if session.token_set is token_set:
                session.state = LifecycleState.AUTHENTICATED
            raise

        session.tokens.replace(refreshed)
        session.state = LifecycleState.AUTHENTICATED
        return refreshed

    async def logout(self, session: Session) -> None:
        """Revoke the session's tokens and tear the session down.

        Local teardown always happens, whatever the revocation outcome.
        """
        token_set = session.token_set
        try:
            if token_set is not None:
                await self.revoke(token_set)
        finally:
            session.invalidate()
            logger.info(f"Session {session.session_id} logged out")

    def _issue(
        self, token_response: TokenResponse, previous: TokenSet | None = None
    ) -> TokenSet:
        issued_at = self._clock()
        return TokenSet(
            access_token=token_response.access_token,
            refresh_token=token_response.refresh_token
            or (previous.refresh_token if previous else None),
            id_token=token_response.id_token
            or (previous.id_token if previous else None),
            token_type=token_response.token_type,
            expires_at=token_response.calculate_expires_at(issued_at),
            scope=token_response.scope or (previous.scope if previous else None),
        )
