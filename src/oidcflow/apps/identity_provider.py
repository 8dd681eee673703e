"""Identity provider front-end: login, consent and the protected API.

Login and consent pages are driven by challenges from the authorization
server. Rendering the forms is left to a UI layer; the GET handlers
return what such a form needs as JSON, and the POST handlers accept the
submitted form.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Awaitable, Callable

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response
from starlette.routing import Route

from oidcflow.auth.client.authorization_server import AuthorizationServerClient
from oidcflow.auth.models.challenges import (
    Accept,
    ChallengeKind,
    ChallengeOutcome,
    Reject,
)
from oidcflow.auth.models.errors import ApiError, ChallengeError, TransportError
from oidcflow.auth.services.challenges import (
    ChallengeResolver,
    pending_consent,
    pending_login,
)
from oidcflow.auth.services.guard import BearerTokenGuard
from oidcflow.config import IdentityProviderSettings

logger = logging.getLogger(__name__)

CredentialVerifier = Callable[[str, str], Awaitable["str | None"]]

LOGIN_REJECTED_DESCRIPTION = "The user cancelled the login"
CONSENT_REJECTED_DESCRIPTION = "The user denied access to their data"


async def accept_any_email(email: str, password: str) -> str | None:
    """Demo credential check: the submitted email becomes the subject."""
    return email.strip() or None


class IdentityProviderApp:
    """HTTP front-end for the login and consent steps of the flow.

    Also serves the protected API, verifying each bearer token by
    introspection.
    """

    def __init__(
        self,
        settings: IdentityProviderSettings,
        server: AuthorizationServerClient | None = None,
        credential_verifier: CredentialVerifier | None = None,
    ) -> None:
        self.settings = settings
        self.server = server or AuthorizationServerClient(
            admin_url=settings.admin_url, timeout=settings.http_timeout
        )
        self.resolver = ChallengeResolver(
            self.server,
            remember=settings.consent_remember,
            remember_for=settings.consent_remember_for,
        )
        self.guard = BearerTokenGuard(self.server, settings.introspection_scope)
        self.credential_verifier = credential_verifier or accept_any_email

        self._app = Starlette(
            routes=[
                Route("/login", self._handle_login_page, methods=["GET"]),
                Route("/login", self._handle_login_submit, methods=["POST"]),
                Route("/consent", self._handle_consent_page, methods=["GET"]),
                Route("/consent", self._handle_consent_submit, methods=["POST"]),
                Route(
                    "/api/protected-resources",
                    self._handle_protected_resources,
                    methods=["GET"],
                ),
            ],
            lifespan=self._lifespan,
        )

    @property
    def app(self) -> Starlette:
        return self._app

    @asynccontextmanager
    async def _lifespan(self, app: Starlette):
        yield
        await self.server.close()

    async def _handle_login_page(self, request: Request) -> Response:
        challenge = request.query_params.get("login_challenge")
        if not challenge:
            return JSONResponse({"error": "login_challenge is required"}, 400)

        return await self._settle(
            challenge, lambda: self.resolver.resolve_login(challenge)
        )

    async def _handle_login_submit(self, request: Request) -> Response:
        form = await request.form()
        challenge = str(form.get("challenge") or "")
        if not challenge:
            return JSONResponse({"error": "challenge is required"}, 400)

        if form.get("submit") == "reject":
            decision = Reject(error_description=LOGIN_REJECTED_DESCRIPTION)
        else:
            subject = await self.credential_verifier(
                str(form.get("email") or ""), str(form.get("password") or "")
            )
            if subject is None:
                # The challenge stays open so the user can try again.
                return JSONResponse(
                    {"error": "invalid_credentials", "challenge": challenge}, 401
                )
            decision = Accept(subject=subject)

        return await self._follow(
            challenge, lambda: self.resolver.decide_login(challenge, decision)
        )

    async def _handle_consent_page(self, request: Request) -> Response:
        challenge = request.query_params.get("consent_challenge")
        if not challenge:
            return JSONResponse({"error": "consent_challenge is required"}, 400)

        return await self._settle(
            challenge, lambda: self.resolver.resolve_consent(challenge)
        )

    async def _handle_consent_submit(self, request: Request) -> Response:
        form = await request.form()
        challenge = str(form.get("challenge") or "")
        if not challenge:
            return JSONResponse({"error": "challenge is required"}, 400)

        if form.get("submit") == "reject":
            decision = Reject(error_description=CONSENT_REJECTED_DESCRIPTION)
        else:
            decision = Accept(granted_scopes=[str(s) for s in form.getlist("scopes")])

        return await self._follow(
            challenge, lambda: self.resolver.decide_consent(challenge, decision)
        )

    async def _handle_protected_resources(self, request: Request) -> Response:
        try:
            introspection = await self.guard.verify(
                request.headers.get("authorization")
            )
        except ApiError as e:
            return JSONResponse({"error": e.detail}, e.status_code)
        except TransportError as e:
            logger.error(f"Error verifying token: {e}")
            return JSONResponse({"error": "Error validating token"}, 500)

        return JSONResponse(
            {
                "message": "Protected data accessed successfully!",
                "user": introspection.subject,
                "scope": introspection.scope,
                "data": {
                    "item1": "Protected value 1",
                    "item2": "Protected value 2",
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                },
            }
        )

    async def _settle(
        self, challenge: str, resolve: Callable[[], Awaitable[ChallengeOutcome]]
    ) -> Response:
        """Resolve a challenge and either redirect or describe the pending form."""
        try:
            outcome = await resolve()
        except ChallengeError as e:
            logger.warning(f"Challenge lookup failed: {e}")
            return JSONResponse({"error": "invalid_challenge", "detail": str(e)}, 400)
        except TransportError as e:
            logger.error(f"Authorization server unreachable: {e}")
            return JSONResponse({"error": "authorization_server_unavailable"}, 503)

        if not outcome.requires_interaction:
            return RedirectResponse(outcome.redirect_to, status_code=302)

        if outcome.kind is ChallengeKind.LOGIN:
            login_request = pending_login(outcome)
            return JSONResponse(
                {
                    "challenge": challenge,
                    "requested_scope": login_request.requested_scope,
                    "client": login_request.client,
                }
            )

        consent_request = pending_consent(outcome)
        return JSONResponse(
            {
                "challenge": challenge,
                "requested_scope": consent_request.requested_scope,
                "client": consent_request.client,
                "user": consent_request.subject,
            }
        )

    async def _follow(
        self, challenge: str, decide: Callable[[], Awaitable[str]]
    ) -> Response:
        """Send a decision and redirect wherever the server says."""
        try:
            redirect_to = await decide()
        except ChallengeError as e:
            logger.warning(f"Challenge decision failed: {e}")
            return JSONResponse({"error": "invalid_challenge", "detail": str(e)}, 400)
        except TransportError as e:
            logger.error(f"Authorization server unreachable: {e}")
            return JSONResponse({"error": "authorization_server_unavailable"}, 503)
        except ValueError as e:
            return JSONResponse({"error": "invalid_request", "detail": str(e)}, 400)

        return RedirectResponse(redirect_to, status_code=302)
