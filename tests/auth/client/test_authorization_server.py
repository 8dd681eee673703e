"""Tests for the authorization server client.

High-impact tests covering the wire contract with the authorization server:
- Challenge lookups, accept and reject calls
- Token endpoint form encoding and client authentication
- Introspection, revocation and userinfo
- Transport failures surfacing as TransportError
"""

import base64
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from oidcflow.auth.client.authorization_server import AuthorizationServerClient
from oidcflow.auth.models.errors import ApiError, ChallengeError, TransportError
from oidcflow.auth.models.security import CLIENT_SECRET_POST, ClientCredentials
from oidcflow.auth.models.tokens import (
    RefreshTokenRequest,
    RevocationRequest,
    TokenRequest,
)


def make_response(status_code: int, body=None) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    if isinstance(body, Exception):
        response.json.side_effect = body
    else:
        response.json.return_value = body
    return response


class TestLoginChallenges:
    """Test login challenge lookup and decisions."""

    def setup_method(self):
        # Arrange
        self.client = AuthorizationServerClient(admin_url="http://hydra:4445/")
        self.client._http_client = AsyncMock()

    async def test_get_login_request_parses_details(self):
        # Arrange
        self.client._http_client.request.return_value = make_response(
            200,
            {
                "challenge": "abc",
                "skip": False,
                "subject": "",
                "requested_scope": ["openid", "email"],
                "client": {"client_id": "someidforthisclient"},
            },
        )

        # Act
        login_request = await self.client.get_login_request("abc")

        # Assert
        assert login_request.challenge == "abc"
        assert login_request.skip is False
        assert login_request.requested_scope == ["openid", "email"]
        assert login_request.client["client_id"] == "someidforthisclient"

        call_args = self.client._http_client.request.call_args
        assert call_args[0] == (
            "GET",
            "http://hydra:4445/oauth2/auth/requests/login",
        )
        assert call_args[1]["params"] == {"login_challenge": "abc"}

    async def test_null_requested_scope_becomes_empty_list(self):
        # Arrange
        self.client._http_client.request.return_value = make_response(
            200, {"skip": False, "requested_scope": None, "client": None}
        )

        # Act
        login_request = await self.client.get_login_request("abc")

        # Assert
        assert login_request.requested_scope == []
        assert login_request.client == {}

    async def test_unknown_challenge_raises_challenge_error(self):
        # Arrange
        self.client._http_client.request.return_value = make_response(
            404, {"error": "Not Found", "error_description": "Unable to locate"}
        )

        # Act & Assert
        with pytest.raises(ChallengeError) as exc_info:
            await self.client.get_login_request("expired")

        assert exc_info.value.challenge == "expired"
        assert "Unable to locate" in str(exc_info.value)

    async def test_accept_login_sends_subject_and_challenge(self):
        # Arrange
        self.client._http_client.request.return_value = make_response(
            200, {"redirect_to": "http://auth/consent?consent_challenge=xyz"}
        )

        # Act
        completed = await self.client.accept_login_request("abc", "alice@example.com")

        # Assert
        assert completed.redirect_to == "http://auth/consent?consent_challenge=xyz"
        call_args = self.client._http_client.request.call_args
        assert call_args[0] == (
            "PUT",
            "http://hydra:4445/oauth2/auth/requests/login/accept",
        )
        assert call_args[1]["json"] == {
            "subject": "alice@example.com",
            "login_challenge": "abc",
        }
        assert call_args[1]["headers"]["Content-Type"] == "application/json"

    async def test_reject_login_sends_error(self):
        # Arrange
        self.client._http_client.request.return_value = make_response(
            200, {"redirect_to": "http://client/callback?error=access_denied"}
        )

        # Act
        completed = await self.client.reject_login_request(
            "abc", "access_denied", "The user cancelled the login"
        )

        # Assert
        assert completed.redirect_to.endswith("error=access_denied")
        call_args = self.client._http_client.request.call_args
        assert call_args[0][1].endswith("/oauth2/auth/requests/login/reject")
        assert call_args[1]["json"] == {
            "login_challenge": "abc",
            "error": "access_denied",
            "error_description": "The user cancelled the login",
        }

    async def test_decision_without_redirect_raises_challenge_error(self):
        # Arrange
        self.client._http_client.request.return_value = make_response(200, {})

        # Act & Assert
        with pytest.raises(ChallengeError):
            await self.client.accept_login_request("abc", "alice@example.com")

    async def test_network_failure_raises_transport_error(self):
        # Arrange
        self.client._http_client.request.side_effect = httpx.ConnectError(
            "connection refused"
        )

        # Act & Assert
        with pytest.raises(TransportError):
            await self.client.get_login_request("abc")

    async def test_timeout_raises_transport_error(self):
        # Arrange
        self.client._http_client.request.side_effect = httpx.ReadTimeout("too slow")

        # Act & Assert
        with pytest.raises(TransportError, match="Timeout"):
            await self.client.get_login_request("abc")

    async def test_server_error_raises_transport_error(self):
        # Arrange
        self.client._http_client.request.return_value = make_response(503, {})

        # Act & Assert
        with pytest.raises(TransportError):
            await self.client.get_login_request("abc")


class TestConsentChallenges:
    """Test consent challenge lookup and decisions."""

    def setup_method(self):
        # Arrange
        self.client = AuthorizationServerClient(admin_url="http://hydra:4445")
        self.client._http_client = AsyncMock()

    async def test_get_consent_request_uses_challenge_query(self):
        # Arrange
        self.client._http_client.request.return_value = make_response(
            200,
            {
                "skip": True,
                "subject": "alice@example.com",
                "requested_scope": ["openid", "profile"],
                "client": {"client_id": "c1"},
            },
        )

        # Act
        consent_request = await self.client.get_consent_request("xyz")

        # Assert
        assert consent_request.skip is True
        assert consent_request.subject == "alice@example.com"
        call_args = self.client._http_client.request.call_args
        assert call_args[0][1] == "http://hydra:4445/oauth2/auth/requests/consent"
        assert call_args[1]["params"] == {"challenge": "xyz"}

    async def test_accept_consent_sends_scope_and_remember(self):
        # Arrange
        self.client._http_client.request.return_value = make_response(
            200, {"redirect_to": "http://client/callback?code=c"}
        )

        # Act
        await self.client.accept_consent_request(
            "xyz", ["openid", "email"], remember=True, remember_for=600
        )

        # Assert
        call_args = self.client._http_client.request.call_args
        assert call_args[0] == (
            "PUT",
            "http://hydra:4445/oauth2/auth/requests/consent/accept",
        )
        assert call_args[1]["params"] == {"challenge": "xyz"}
        assert call_args[1]["json"] == {
            "grant_scope": ["openid", "email"],
            "remember": True,
            "remember_for": 600,
        }

    async def test_reject_consent_sends_consent_challenge_in_body(self):
        # Arrange
        self.client._http_client.request.return_value = make_response(
            200, {"redirect_to": "http://client/callback?error=access_denied"}
        )

        # Act
        await self.client.reject_consent_request(
            "xyz", "access_denied", "The user denied access to their data"
        )

        # Assert
        call_args = self.client._http_client.request.call_args
        assert call_args[0][1].endswith("/oauth2/auth/requests/consent/reject")
        assert call_args[1]["json"]["consent_challenge"] == "xyz"
        assert call_args[1]["json"]["error"] == "access_denied"


class TestTokenEndpoint:
    """Test token endpoint requests and client authentication."""

    def setup_method(self):
        # Arrange
        self.client = AuthorizationServerClient(
            public_url="http://hydra:4444",
            credentials=ClientCredentials("someidforthisclient", "my-secret"),
        )
        self.client._http_client = AsyncMock()

    async def test_code_exchange_uses_basic_auth(self):
        # Arrange
        self.client._http_client.request.return_value = make_response(
            200,
            {
                "access_token": "at-1",
                "refresh_token": "rt-1",
                "id_token": "id-1",
                "token_type": "bearer",
                "expires_in": 3600,
            },
        )

        # Act
        token_response = await self.client.request_token(
            TokenRequest(code="code-123", redirect_uri="http://localhost:5555/callback")
        )

        # Assert
        assert token_response.is_success()
        assert token_response.id_token == "id-1"

        call_args = self.client._http_client.request.call_args
        assert call_args[0] == ("POST", "http://hydra:4444/oauth2/token")
        form_data = call_args[1]["data"]
        assert form_data == {
            "grant_type": "authorization_code",
            "code": "code-123",
            "redirect_uri": "http://localhost:5555/callback",
        }
        headers = call_args[1]["headers"]
        expected = base64.b64encode(b"someidforthisclient:my-secret").decode("ascii")
        assert headers["Authorization"] == f"Basic {expected}"
        assert headers["Content-Type"] == "application/x-www-form-urlencoded"

    async def test_refresh_with_body_credentials(self):
        # Arrange
        self.client.credentials = ClientCredentials(
            "idoftheclient3", "my-secret", auth_method=CLIENT_SECRET_POST
        )
        self.client._http_client.request.return_value = make_response(
            200, {"access_token": "at-2", "expires_in": 60}
        )

        # Act
        await self.client.request_token(RefreshTokenRequest(refresh_token="rt-1"))

        # Assert
        call_args = self.client._http_client.request.call_args
        form_data = call_args[1]["data"]
        assert form_data == {
            "grant_type": "refresh_token",
            "refresh_token": "rt-1",
            "client_id": "idoftheclient3",
            "client_secret": "my-secret",
        }
        assert "Authorization" not in call_args[1]["headers"]

    async def test_pkce_verifier_is_sent(self):
        # Arrange
        self.client._http_client.request.return_value = make_response(
            200, {"access_token": "at-1"}
        )

        # Act
        await self.client.request_token(
            TokenRequest(code="c", redirect_uri="http://x/cb", code_verifier="v" * 43)
        )

        # Assert
        form_data = self.client._http_client.request.call_args[1]["data"]
        assert form_data["code_verifier"] == "v" * 43

    async def test_oauth_error_is_returned_not_raised(self):
        # Arrange
        self.client._http_client.request.return_value = make_response(
            400,
            {
                "error": "invalid_grant",
                "error_description": "Authorization code has expired",
            },
        )

        # Act
        token_response = await self.client.request_token(
            TokenRequest(code="expired", redirect_uri="http://x/cb")
        )

        # Assert
        assert token_response.is_error()
        assert token_response.error == "invalid_grant"
        assert token_response.error_description == "Authorization code has expired"

    async def test_non_json_error_body_becomes_http_error(self):
        # Arrange
        self.client._http_client.request.return_value = make_response(
            401, ValueError("not json")
        )

        # Act
        token_response = await self.client.request_token(
            TokenRequest(code="c", redirect_uri="http://x/cb")
        )

        # Assert
        assert token_response.error == "http_401"

    async def test_non_string_error_fields_are_coerced(self):
        # Arrange
        self.client._http_client.request.return_value = make_response(
            400,
            {
                "error": "invalid_grant",
                "error_description": {"hint": "code reused"},
                "error_uri": 42,
            },
        )

        # Act
        token_response = await self.client.request_token(
            TokenRequest(code="c", redirect_uri="http://x/cb")
        )

        # Assert
        assert token_response.error == "invalid_grant"
        assert "code reused" in token_response.error_description
        assert token_response.error_uri == "42"

    async def test_success_without_access_token_raises(self):
        # Arrange
        self.client._http_client.request.return_value = make_response(
            200, {"token_type": "bearer"}
        )

        # Act & Assert
        with pytest.raises(TransportError, match="access_token"):
            await self.client.request_token(
                TokenRequest(code="c", redirect_uri="http://x/cb")
            )


class TestIntrospectionRevocationUserinfo:
    """Test introspection, revocation and userinfo calls."""

    def setup_method(self):
        # Arrange
        self.client = AuthorizationServerClient(
            admin_url="http://hydra:4445",
            public_url="http://hydra:4444",
            credentials=ClientCredentials("client", "secret"),
        )
        self.client._http_client = AsyncMock()

    async def test_introspect_sends_token_and_scope(self):
        # Arrange
        self.client._http_client.request.return_value = make_response(
            200, {"active": True, "sub": "alice", "scope": "openid email"}
        )

        # Act
        result = await self.client.introspect("at-1", "openid profile email")

        # Assert
        assert result.active is True
        assert result.subject == "alice"
        call_args = self.client._http_client.request.call_args
        assert call_args[0] == ("POST", "http://hydra:4445/oauth2/introspect")
        assert call_args[1]["data"] == {
            "token": "at-1",
            "scope": "openid profile email",
        }

    async def test_introspect_failure_raises_transport_error(self):
        # Arrange
        self.client._http_client.request.return_value = make_response(401, {})

        # Act & Assert
        with pytest.raises(TransportError):
            await self.client.introspect("at-1")

    async def test_revoke_is_client_authenticated(self):
        # Arrange
        self.client._http_client.request.return_value = make_response(200, None)

        # Act
        await self.client.revoke(RevocationRequest("at-1", "access_token"))

        # Assert
        call_args = self.client._http_client.request.call_args
        assert call_args[0] == ("POST", "http://hydra:4444/oauth2/revoke")
        assert call_args[1]["data"] == {
            "token": "at-1",
            "token_type_hint": "access_token",
        }
        assert call_args[1]["headers"]["Authorization"].startswith("Basic ")

    async def test_revoke_non_200_raises(self):
        # Arrange
        self.client._http_client.request.return_value = make_response(401, {})

        # Act & Assert
        with pytest.raises(TransportError):
            await self.client.revoke(RevocationRequest("at-1"))

    async def test_userinfo_uses_bearer_token(self):
        # Arrange
        self.client._http_client.request.return_value = make_response(
            200, {"sub": "alice", "email": "alice@example.com"}
        )

        # Act
        claims = await self.client.userinfo("at-1")

        # Assert
        assert claims["email"] == "alice@example.com"
        call_args = self.client._http_client.request.call_args
        assert call_args[0] == ("GET", "http://hydra:4444/userinfo")
        assert call_args[1]["headers"]["Authorization"] == "Bearer at-1"

    async def test_userinfo_rejected_raises_api_error(self):
        # Arrange
        self.client._http_client.request.return_value = make_response(401, {})

        # Act & Assert
        with pytest.raises(ApiError) as exc_info:
            await self.client.userinfo("at-1")
        assert exc_info.value.status_code == 401

    def test_authorization_endpoint(self):
        assert self.client.authorization_endpoint == "http://hydra:4444/oauth2/auth"

    async def test_missing_admin_url_is_a_configuration_error(self):
        # Arrange
        client = AuthorizationServerClient(public_url="http://hydra:4444")
        client._http_client = AsyncMock()

        # Act & Assert
        with pytest.raises(ValueError, match="Admin URL"):
            await client.get_login_request("abc")
