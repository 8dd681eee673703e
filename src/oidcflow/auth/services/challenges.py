"""Login and consent challenge resolution for the identity provider.

The authorization server redirects the browser to the identity provider
with a login or consent challenge. The resolver looks the challenge up,
settles it straight away when the server says the step can be skipped,
and otherwise forwards the user's decision. Either way the server answers
with a ``redirect_to`` that the browser must follow.
"""

from __future__ import annotations

import logging

from oidcflow.auth.client.authorization_server import AuthorizationServerClient
from oidcflow.auth.models.challenges import (
    Accept,
    ChallengeDecision,
    ChallengeKind,
    ChallengeOutcome,
    ConsentRequest,
    LoginRequest,
    Reject,
)
from oidcflow.auth.models.errors import ChallengeError

logger = logging.getLogger(__name__)


class ChallengeResolver:
    """Resolves login and consent challenges against the authorization server.

    Challenges are single-use and time-boxed by the server, so nothing here
    is retried: a failed lookup or decision surfaces to the caller.
    """

    def __init__(
        self,
        server: AuthorizationServerClient,
        remember: bool = False,
        remember_for: int = 3600,
    ):
        """Initialize the resolver.

        Args:
            server: Authorization server admin client
            remember: Whether the server should remember consent decisions
            remember_for: Seconds a remembered consent stays valid
        """
        self.server = server
        self.remember = remember
        self.remember_for = remember_for

    async def resolve_login(self, challenge: str) -> ChallengeOutcome:
        """Look up a login challenge and settle it if it can be skipped.

        Returns:
            ChallengeOutcome: ``redirect_to`` set when the subject was already
            authenticated, otherwise the login request for the login form

        Raises:
            ChallengeError: If the challenge is unknown or expired
            TransportError: If the server cannot be reached
        """
        login_request = await self.server.get_login_request(challenge)

        if login_request.skip:
            if not login_request.subject:
                raise ChallengeError(challenge, "skip requested without a subject")
            logger.info(f"Login challenge {challenge} skipped for known subject")
            redirect_to = await self.decide_login(
                challenge, Accept(subject=login_request.subject)
            )
            return ChallengeOutcome(
                challenge=challenge,
                kind=ChallengeKind.LOGIN,
                redirect_to=redirect_to,
                request=login_request,
            )

        return ChallengeOutcome(
            challenge=challenge, kind=ChallengeKind.LOGIN, request=login_request
        )

    async def resolve_consent(self, challenge: str) -> ChallengeOutcome:
        """Look up a consent challenge and settle it if it can be skipped.

        A skipped consent grants exactly the requested scope.
        """
        consent_request = await self.server.get_consent_request(challenge)

        if consent_request.skip:
            logger.info(f"Consent challenge {challenge} skipped, consent on record")
            redirect_to = await self.decide_consent(
                challenge, Accept(granted_scopes=consent_request.requested_scope)
            )
            return ChallengeOutcome(
                challenge=challenge,
                kind=ChallengeKind.CONSENT,
                redirect_to=redirect_to,
                request=consent_request,
            )

        return ChallengeOutcome(
            challenge=challenge, kind=ChallengeKind.CONSENT, request=consent_request
        )

    async def decide_login(self, challenge: str, decision: ChallengeDecision) -> str:
        """Send a login decision and return the redirect target."""
        if isinstance(decision, Reject):
            logger.info(f"Rejecting login challenge {challenge}: {decision.error_code}")
            completed = await self.server.reject_login_request(
                challenge, decision.error_code, decision.error_description
            )
            return completed.redirect_to

        if not decision.subject:
            raise ValueError("Accepting a login requires a subject")

        completed = await self.server.accept_login_request(challenge, decision.subject)
        logger.info(f"Accepted login challenge {challenge}")
        return completed.redirect_to

    async def decide_consent(self, challenge: str, decision: ChallengeDecision) -> str:
        """Send a consent decision and return the redirect target."""
        if isinstance(decision, Reject):
            logger.info(
                f"Rejecting consent challenge {challenge}: {decision.error_code}"
            )
            completed = await self.server.reject_consent_request(
                challenge, decision.error_code, decision.error_description
            )
            return completed.redirect_to

        completed = await self.server.accept_consent_request(
            challenge,
            grant_scope=decision.granted_scopes or [],
            remember=self.remember,
            remember_for=self.remember_for,
        )
        logger.info(
            f"Accepted consent challenge {challenge} "
            f"for scopes {decision.granted_scopes or []}"
        )
        return completed.redirect_to


def pending_login(outcome: ChallengeOutcome) -> LoginRequest:
    """Return the login request of an outcome that still needs the user."""
    if not isinstance(outcome.request, LoginRequest) or not outcome.requires_interaction:
        raise ValueError("Outcome is not a pending login")
    return outcome.request


def pending_consent(outcome: ChallengeOutcome) -> ConsentRequest:
    """Return the consent request of an outcome that still needs the user."""
    if (
        not isinstance(outcome.request, ConsentRequest)
        or not outcome.requires_interaction
    ):
        raise ValueError("Outcome is not a pending consent")
    return outcome.request
