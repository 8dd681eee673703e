"""Typed client for the external authorization server.

Wraps the admin API used by the identity provider (login and consent
challenges, token introspection) and the public API used by relying
parties (token, revocation and userinfo endpoints).

Every call is a single request with no internal retry. Network failures,
timeouts and 5xx responses raise TransportError; the calling component
decides what to do with them.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from oidcflow.auth.models.challenges import (
    CompletedRequest,
    ConsentRequest,
    LoginRequest,
)
from oidcflow.auth.models.errors import ApiError, ChallengeError, TransportError
from oidcflow.auth.models.security import ClientCredentials
from oidcflow.auth.models.tokens import (
    IntrospectionResult,
    RefreshTokenRequest,
    RevocationRequest,
    TokenRequest,
    TokenResponse,
)

logger = logging.getLogger(__name__)

LOGIN_REQUEST_PATH = "/oauth2/auth/requests/login"
LOGIN_ACCEPT_PATH = "/oauth2/auth/requests/login/accept"
LOGIN_REJECT_PATH = "/oauth2/auth/requests/login/reject"
CONSENT_REQUEST_PATH = "/oauth2/auth/requests/consent"
CONSENT_ACCEPT_PATH = "/oauth2/auth/requests/consent/accept"
CONSENT_REJECT_PATH = "/oauth2/auth/requests/consent/reject"
AUTHORIZE_PATH = "/oauth2/auth"
TOKEN_PATH = "/oauth2/token"
INTROSPECT_PATH = "/oauth2/introspect"
REVOKE_PATH = "/oauth2/revoke"
USERINFO_PATH = "/userinfo"

FORM_HEADERS = {
    "Content-Type": "application/x-www-form-urlencoded",
    "Accept": "application/json",
}
JSON_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}


class AuthorizationServerClient:
    """Thin client over the authorization server's HTTP surface.

    The admin URL is only needed for challenge and introspection calls, the
    public URL and client credentials only for token, revocation and
    userinfo calls.
    """

    def __init__(
        self,
        admin_url: str | None = None,
        public_url: str | None = None,
        credentials: ClientCredentials | None = None,
        timeout: float = 30.0,
    ):
        """Initialize the authorization server client.

        Args:
            admin_url: Base URL of the admin API
            public_url: Base URL of the public API
            credentials: Client credentials for token and revocation calls
            timeout: HTTP request timeout in seconds
        """
        self.admin_url = admin_url.rstrip("/") if admin_url else None
        self.public_url = public_url.rstrip("/") if public_url else None
        self.credentials = credentials
        self.timeout = timeout
        self._http_client = httpx.AsyncClient(timeout=timeout)

    @property
    def authorization_endpoint(self) -> str:
        return self._public(AUTHORIZE_PATH)

    # Login challenges

    async def get_login_request(self, challenge: str) -> LoginRequest:
        """Fetch the login request behind a login challenge.

        Raises:
            ChallengeError: If the challenge is unknown, expired or already used
            TransportError: If the server cannot be reached
        """
        response = await self._send(
            "GET",
            self._admin(LOGIN_REQUEST_PATH),
            params={"login_challenge": challenge},
            headers={"Accept": "application/json"},
        )
        data = self._challenge_payload(response, challenge)
        try:
            return LoginRequest(challenge=challenge, **_without(data, "challenge"))
        except ValidationError as e:
            raise ChallengeError(challenge, f"Invalid login request: {e}") from e

    async def accept_login_request(
        self,
        challenge: str,
        subject: str,
    ) -> CompletedRequest:
        response = await self._send(
            "PUT",
            self._admin(LOGIN_ACCEPT_PATH),
            params={"login_challenge": challenge},
            json={"subject": subject, "login_challenge": challenge},
            headers=JSON_HEADERS,
        )
        return self._completed(response, challenge)

    async def reject_login_request(
        self, challenge: str, error: str, error_description: str
    ) -> CompletedRequest:
        response = await self._send(
            "PUT",
            self._admin(LOGIN_REJECT_PATH),
            params={"login_challenge": challenge},
            json={
                "login_challenge": challenge,
                "error": error,
                "error_description": error_description,
            },
            headers=JSON_HEADERS,
        )
        return self._completed(response, challenge)

    # Consent challenges

    async def get_consent_request(self, challenge: str) -> ConsentRequest:
        """Fetch the consent request behind a consent challenge.

        Raises:
            ChallengeError: If the challenge is unknown, expired or already used
            TransportError: If the server cannot be reached
        """
        response = await self._send(
            "GET",
            self._admin(CONSENT_REQUEST_PATH),
            params={"challenge": challenge},
            headers={"Accept": "application/json"},
        )
        data = self._challenge_payload(response, challenge)
        try:
            return ConsentRequest(challenge=challenge, **_without(data, "challenge"))
        except ValidationError as e:
            raise ChallengeError(challenge, f"Invalid consent request: {e}") from e

    async def accept_consent_request(
        self,
        challenge: str,
        grant_scope: list[str],
        remember: bool,
        remember_for: int,
    ) -> CompletedRequest:
        response = await self._send(
            "PUT",
            self._admin(CONSENT_ACCEPT_PATH),
            params={"challenge": challenge},
            json={
                "grant_scope": list(grant_scope),
                "remember": remember,
                "remember_for": remember_for,
            },
            headers=JSON_HEADERS,
        )
        return self._completed(response, challenge)

    async def reject_consent_request(
        self, challenge: str, error: str, error_description: str
    ) -> CompletedRequest:
        response = await self._send(
            "PUT",
            self._admin(CONSENT_REJECT_PATH),
            json={
                "consent_challenge": challenge,
                "error": error,
                "error_description": error_description,
            },
            headers=JSON_HEADERS,
        )
        return self._completed(response, challenge)

    # Tokens

    async def request_token(
        self, token_request: TokenRequest | RefreshTokenRequest
    ) -> TokenResponse:
        """Call the token endpoint for a code exchange or refresh.

        OAuth error responses (4xx) come back as an error TokenResponse;
        deciding what they mean is the caller's job.

        Raises:
            TransportError: On network failure, 5xx or an unparseable body
        """
        form_data = token_request.to_form_data()
        headers = dict(FORM_HEADERS)
        if self.credentials:
            self.credentials.apply(form_data, headers)

        logger.debug(
            f"Token request: grant_type={form_data['grant_type']}, "
            f"client_auth={'basic' if 'Authorization' in headers else 'body'}"
        )

        response = await self._send(
            "POST", self._public(TOKEN_PATH), data=form_data, headers=headers
        )
        return self._parse_token_response(response)

    async def introspect(
        self, token: str, scope: str | None = None
    ) -> IntrospectionResult:
        """Introspect a token (RFC 7662). Results are never cached."""
        form_data = {"token": token}
        if scope:
            form_data["scope"] = scope

        response = await self._send(
            "POST", self._admin(INTROSPECT_PATH), data=form_data, headers=FORM_HEADERS
        )
        if response.status_code != 200:
            raise TransportError(
                f"Introspection failed with status {response.status_code}"
            )
        try:
            return IntrospectionResult(**self._json(response))
        except ValidationError as e:
            raise TransportError(f"Invalid introspection response: {e}") from e

    async def revoke(self, revocation_request: RevocationRequest) -> None:
        """Revoke a token (RFC 7009).

        Raises:
            TransportError: On network failure or any non-200 response
        """
        form_data = revocation_request.to_form_data()
        headers = dict(FORM_HEADERS)
        if self.credentials:
            self.credentials.apply(form_data, headers)

        response = await self._send(
            "POST", self._public(REVOKE_PATH), data=form_data, headers=headers
        )
        if response.status_code != 200:
            raise TransportError(f"Revocation failed with status {response.status_code}")

    async def userinfo(self, access_token: str) -> dict[str, Any]:
        """Fetch OIDC profile claims for an access token.

        Raises:
            ApiError: If the endpoint answers with a 4xx status
            TransportError: On network failure or 5xx
        """
        response = await self._send(
            "GET",
            self._public(USERINFO_PATH),
            headers={
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/json",
            },
        )
        if response.status_code != 200:
            raise ApiError(response.status_code, "userinfo request rejected")
        return self._json(response)

    async def close(self) -> None:
        """Close the HTTP client and clean up resources."""
        await self._http_client.aclose()

    # Internals

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        logger.debug(f"{method} {url}")
        try:
            response = await self._http_client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise TransportError(f"Timeout during {method} {url}: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"HTTP error during {method} {url}: {e}") from e

        if response.status_code >= 500:
            raise TransportError(
                f"{method} {url} failed with server error {response.status_code}"
            )
        return response

    def _json(self, response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            raise TransportError(f"Invalid JSON response: {e}") from e
        if not isinstance(data, dict):
            raise TransportError("Expected a JSON object in response")
        return data

    def _challenge_payload(
        self, response: httpx.Response, challenge: str
    ) -> dict[str, Any]:
        if response.status_code >= 400:
            raise ChallengeError(
                challenge,
                f"lookup failed with status {response.status_code}: "
                f"{_error_description(response)}",
            )
        return self._json(response)

    def _completed(self, response: httpx.Response, challenge: str) -> CompletedRequest:
        if response.status_code >= 400:
            raise ChallengeError(
                challenge,
                f"decision rejected with status {response.status_code}: "
                f"{_error_description(response)}",
            )
        try:
            return CompletedRequest(**self._json(response))
        except ValidationError as e:
            raise ChallengeError(challenge, f"response missing redirect_to: {e}") from e

    def _parse_token_response(self, response: httpx.Response) -> TokenResponse:
        """Parse a token endpoint response (RFC 6749 Section 5)."""
        if response.status_code == 200:
            data = self._json(response)
            if "access_token" not in data:
                raise TransportError("Token response missing required access_token")
            try:
                return TokenResponse(**data)
            except ValidationError as e:
                raise TransportError(f"Invalid token response format: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = None
        if not isinstance(data, dict) or "error" not in data:
            data = {
                "error": f"http_{response.status_code}",
                "error_description": "Token endpoint returned a non-OAuth error",
            }

        logger.warning(
            f"Token request failed with {response.status_code}: "
            f"{data.get('error')} - {data.get('error_description')}"
        )
        return TokenResponse(
            error=str(data["error"]),
            error_description=_optional_str(data.get("error_description")),
            error_uri=_optional_str(data.get("error_uri")),
        )

    def _admin(self, path: str) -> str:
        if not self.admin_url:
            raise ValueError("Admin URL is not configured")
        return f"{self.admin_url}{path}"

    def _public(self, path: str) -> str:
        if not self.public_url:
            raise ValueError("Public URL is not configured")
        return f"{self.public_url}{path}"


def _without(data: dict[str, Any], key: str) -> dict[str, Any]:
    return {k: v for k, v in data.items() if k != key}


def _optional_str(value: Any) -> str | None:
    return None if value is None else str(value)


def _error_description(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return "no details"
    if isinstance(data, dict):
        return str(data.get("error_description") or data.get("error") or "no details")
    return "no details"
