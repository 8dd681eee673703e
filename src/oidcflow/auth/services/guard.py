"""Bearer token verification for the protected API.

Every request is checked with a fresh introspection call; results are
never cached, so a revoked token stops working immediately.
"""

from __future__ import annotations

import logging

from oidcflow.auth.client.authorization_server import AuthorizationServerClient
from oidcflow.auth.models.errors import ApiError
from oidcflow.auth.models.tokens import IntrospectionResult

logger = logging.getLogger(__name__)


def extract_bearer_token(authorization: str | None) -> str | None:
    """Return the token of a ``Bearer`` Authorization header, if any."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class BearerTokenGuard:
    """Verifies bearer tokens by introspecting them."""

    def __init__(self, server: AuthorizationServerClient, required_scope: str | None):
        self.server = server
        self.required_scope = required_scope

    async def verify(self, authorization: str | None) -> IntrospectionResult:
        """Verify an Authorization header value.

        Raises:
            ApiError: 401 if the token is missing or inactive
            TransportError: If introspection fails
        """
        token = extract_bearer_token(authorization)
        if token is None:
            raise ApiError(401, "Token not provided")

        result = await self.server.introspect(token, self.required_scope)
        if not result.active:
            logger.info("Rejected inactive or expired token")
            raise ApiError(401, "Invalid or expired token")

        logger.debug(f"Token active for subject {result.subject}")
        return result
