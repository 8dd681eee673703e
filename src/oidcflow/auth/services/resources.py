"""Protected API access for relying-party sessions."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from oidcflow.auth.models.errors import ApiError, TransportError
from oidcflow.auth.models.session import Session
from oidcflow.auth.models.tokens import TokenSet
from oidcflow.auth.services.lifecycle import TokenLifecycleManager

logger = logging.getLogger(__name__)


class ResourceAccessor:
    """Calls the protected API with the session's bearer token.

    A 401 triggers exactly one refresh followed by exactly one retry. A
    second 401, or any other non-success status, is an ApiError. Refresh
    failures propagate as RefreshError so the boundary can send the user
    back to login.
    """

    def __init__(
        self,
        resource_url: str,
        lifecycle: TokenLifecycleManager,
        timeout: float = 30.0,
    ):
        """Initialize the resource accessor.

        Args:
            resource_url: URL of the protected resource
            lifecycle: Token lifecycle manager used for refreshes
            timeout: HTTP request timeout in seconds
        """
        self.resource_url = resource_url
        self.lifecycle = lifecycle
        self.timeout = timeout
        self._http_client = httpx.AsyncClient(timeout=timeout)

    async def fetch_protected(self, session: Session) -> dict[str, Any]:
        """Fetch the protected resource for a session.

        Returns:
            Parsed JSON body of the protected resource

        Raises:
            RefreshError: If the session is unauthenticated or refresh fails
            ApiError: If the resource call fails for a non-expiry reason
            TransportError: If the resource server cannot be reached
        """
        token_set = await self.lifecycle.ensure_fresh(session)

        response = await self._call(token_set)
        if response.status_code == 401:
            logger.info(
                f"Protected resource rejected token for session "
                f"{session.session_id}, refreshing once"
            )
            token_set = await self.lifecycle.refresh_session(session)
            response = await self._call(token_set)

        if response.status_code != 200:
            raise ApiError(response.status_code, _detail(response))

        try:
            return response.json()
        except ValueError as e:
            raise ApiError(response.status_code, f"Invalid JSON body: {e}") from e

    async def close(self) -> None:
        """Close the HTTP client and clean up resources."""
        await self._http_client.aclose()

    async def _call(self, token_set: TokenSet) -> httpx.Response:
        try:
            return await self._http_client.get(
                self.resource_url,
                headers={
                    "Authorization": f"Bearer {token_set.access_token}",
                    "Accept": "application/json",
                },
            )
        except httpx.HTTPError as e:
            raise TransportError(
                f"HTTP error calling protected resource {self.resource_url}: {e}"
            ) from e


def _detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return f"HTTP {response.status_code}"
