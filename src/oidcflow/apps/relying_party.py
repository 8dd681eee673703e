"""Relying-party client application.

Sends the browser to the authorization server, exchanges the returned
code for tokens, calls the protected API on the user's behalf and logs
out. The same app serves both the plain and the PKCE client; PKCE is a
setting.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response
from starlette.routing import Route

from oidcflow.apps.sessions import SessionRegistry
from oidcflow.auth.client.authorization_server import AuthorizationServerClient
from oidcflow.auth.models.errors import (
    ApiError,
    AuthError,
    RefreshError,
    StateValidationError,
    TransportError,
)
from oidcflow.auth.models.flow import AuthorizationRequest, AuthorizationResponse
from oidcflow.auth.models.security import StatePayload
from oidcflow.auth.models.session import Session
from oidcflow.auth.primitives.pkce import PKCEManager
from oidcflow.auth.primitives.state import (
    decode_state,
    encode_state,
    generate_nonce,
    validate_state,
)
from oidcflow.auth.services.lifecycle import TokenLifecycleManager
from oidcflow.auth.services.resources import ResourceAccessor
from oidcflow.config import RelyingPartySettings

logger = logging.getLogger(__name__)


class RelyingPartyApp:
    """HTTP front-end of a relying-party client."""

    def __init__(
        self,
        settings: RelyingPartySettings,
        server: AuthorizationServerClient | None = None,
        lifecycle: TokenLifecycleManager | None = None,
        accessor: ResourceAccessor | None = None,
        sessions: SessionRegistry | None = None,
    ) -> None:
        self.settings = settings
        self.server = server or AuthorizationServerClient(
            public_url=settings.public_url,
            credentials=settings.credentials,
            timeout=settings.http_timeout,
        )
        self.lifecycle = lifecycle or TokenLifecycleManager(self.server)
        self.accessor = accessor or ResourceAccessor(
            settings.protected_resource_url,
            self.lifecycle,
            timeout=settings.http_timeout,
        )
        self.sessions = sessions or SessionRegistry(
            settings.session_cookie, idle_timeout=settings.session_idle_timeout
        )
        self._pkce_manager = PKCEManager()

        self._app = Starlette(
            routes=[
                Route("/", self._handle_home, methods=["GET"]),
                Route("/login", self._handle_login, methods=["GET"]),
                Route("/callback", self._handle_callback, methods=["GET"]),
                Route("/login-failure", self._handle_login_failure, methods=["GET"]),
                Route("/protected-data", self._handle_protected_data, methods=["GET"]),
                Route("/profile", self._handle_profile, methods=["GET"]),
                Route("/logout", self._handle_logout, methods=["GET"]),
            ],
            lifespan=self._lifespan,
        )

    @property
    def app(self) -> Starlette:
        return self._app

    @asynccontextmanager
    async def _lifespan(self, app: Starlette):
        yield
        await self.accessor.close()
        await self.server.close()

    async def _handle_home(self, request: Request) -> Response:
        session = self.sessions.load(request)
        return JSONResponse(
            {
                "isAuthenticated": session.is_authenticated,
                "userInfo": session.user_info,
            }
        )

    async def _handle_login(self, request: Request) -> Response:
        """Start the authorization code flow."""
        session = self.sessions.load(request)

        nonce = generate_nonce()
        state = encode_state(
            StatePayload(return_to=session.return_to or "/", nonce=nonce)
        )
        session.pending_nonce = nonce

        code_challenge = None
        if self.settings.use_pkce:
            pkce_params = self._pkce_manager.generate_parameters()
            session.pending_code_verifier = pkce_params.code_verifier
            code_challenge = pkce_params.code_challenge

        auth_request = AuthorizationRequest(
            authorization_endpoint=self.server.authorization_endpoint,
            client_id=self.settings.client_id,
            redirect_uri=self.settings.redirect_uri,
            scope=self.settings.scope,
            state=state,
            code_challenge=code_challenge,
            code_challenge_method="S256" if code_challenge else None,
        )

        logger.debug(
            f"Redirecting session {session.session_id} to authorization endpoint"
        )
        return self.sessions.bind(
            RedirectResponse(auth_request.build_authorization_url(), status_code=302),
            session,
        )

    async def _handle_callback(self, request: Request) -> Response:
        """Exchange the authorization code and return to the original page."""
        session = self.sessions.load(request)
        params = request.query_params
        auth_response = AuthorizationResponse(
            code=params.get("code"),
            state=params.get("state"),
            error=params.get("error"),
            error_description=params.get("error_description"),
            error_uri=params.get("error_uri"),
        )

        if auth_response.is_error():
            logger.warning(
                f"Authorization failed: {auth_response.error} "
                f"({auth_response.error_description or ''})"
            )
            session.clear_pending()
            return RedirectResponse("/login-failure", status_code=302)

        if not auth_response.code:
            return JSONResponse({"error": "Authorization code missing"}, 400)

        try:
            return_to = self._consume_state(session, auth_response.state)
        except StateValidationError as e:
            logger.warning(f"Rejected callback for session {session.session_id}: {e}")
            session.clear_pending()
            return JSONResponse({"error": "invalid_state", "detail": str(e)}, 400)

        code_verifier = session.pending_code_verifier
        session.clear_pending()

        try:
            token_set = await self.lifecycle.authenticate(
                session,
                auth_response.code,
                self.settings.redirect_uri,
                code_verifier=code_verifier,
            )
        except AuthError as e:
            logger.warning(f"Code exchange rejected: {e}")
            return JSONResponse(
                {
                    "error": e.code,
                    "error_description": e.description,
                    "message": f"Authentication error: {e.description or e.code}",
                },
                401,
            )
        except TransportError as e:
            logger.error(f"Error in callback: {e}")
            return JSONResponse({"error": "authorization_server_unavailable"}, 503)

        try:
            session.user_info = await self.server.userinfo(token_set.access_token)
        except (ApiError, TransportError) as e:
            logger.warning(f"Error fetching user information: {e}")

        session.return_to = None
        return self.sessions.bind(RedirectResponse(return_to, status_code=302), session)

    async def _handle_login_failure(self, request: Request) -> Response:
        return JSONResponse(
            {"error": "Authentication failed. Please try again."}, 401
        )

    async def _handle_protected_data(self, request: Request) -> Response:
        session = self.sessions.load(request)
        if not session.is_authenticated:
            return self._require_login(request, session)

        try:
            data = await self.accessor.fetch_protected(session)
        except RefreshError as e:
            logger.info(f"Session {session.session_id} needs to log in again: {e}")
            return self._require_login(request, session)
        except ApiError as e:
            logger.error(f"Error accessing protected data: {e}")
            return JSONResponse(
                {
                    "error": "protected_resource_error",
                    "status": e.status_code,
                    "message": f"Error accessing protected resources: {e.detail}",
                },
                502,
            )
        except TransportError as e:
            logger.error(f"Error accessing protected data: {e}")
            return JSONResponse({"error": "protected_resource_unavailable"}, 503)

        return self.sessions.bind(JSONResponse({"data": data}), session)

    async def _handle_profile(self, request: Request) -> Response:
        session = self.sessions.load(request)
        if not session.is_authenticated:
            return self._require_login(request, session)

        try:
            token_set = await self.lifecycle.ensure_fresh(session)
        except RefreshError:
            return self._require_login(request, session)
        except TransportError as e:
            logger.error(f"Error refreshing token for profile: {e}")
            return JSONResponse({"error": "authorization_server_unavailable"}, 503)

        return self.sessions.bind(
            JSONResponse(
                {
                    "profile": session.user_info,
                    "tokenType": token_set.token_type,
                    "expiresAt": token_set.expires_at,
                    "scope": token_set.scope,
                    "hasRefreshToken": token_set.can_refresh(),
                    "hasIdToken": token_set.id_token is not None,
                }
            ),
            session,
        )

    async def _handle_logout(self, request: Request) -> Response:
        session = self.sessions.load(request)
        await self.lifecycle.logout(session)

        response = RedirectResponse("/", status_code=302)
        self.sessions.destroy(session, response)
        return response

    def _require_login(self, request: Request, session: Session) -> Response:
        """Remember where the user was going and send them to /login."""
        path = request.url.path
        if request.url.query:
            path = f"{path}?{request.url.query}"
        session.return_to = path
        return self.sessions.bind(RedirectResponse("/login", status_code=302), session)

    def _consume_state(self, session: Session, state: str | None) -> str:
        """Validate the callback state and return the post-login path.

        Without a pending nonce there is nothing to bind the state to, so a
        missing or malformed state falls back to ``/``.
        """
        expected_nonce = session.pending_nonce
        if expected_nonce is None:
            if not state:
                return "/"
            try:
                return decode_state(state).return_to
            except StateValidationError as e:
                logger.error(f"Error decoding state: {e}")
                return "/"

        if not state:
            raise StateValidationError("Callback missing required state parameter")
        payload = decode_state(state)
        validate_state(expected_nonce, payload.nonce)
        return payload.return_to
