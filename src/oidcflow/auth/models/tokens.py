"""Token models for the authorization code flow.

Contains the immutable token set held by a session, the token endpoint
request/response payloads, and the introspection result.
"""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel


@dataclass(frozen=True)
class TokenSet:
    """Tokens issued to one session.

    Immutable so a refresh can swap the whole set in a single assignment;
    no caller ever observes a half-updated set.
    """

    access_token: str
    refresh_token: str | None = None
    id_token: str | None = None
    token_type: str = "Bearer"
    expires_at: float | None = None  # Unix timestamp, None means no expiry
    scope: str | None = None

    def can_refresh(self) -> bool:
        """Check if token set can be refreshed."""
        return bool(self.refresh_token)


@dataclass(frozen=True)
class TokenRequest:
    """Authorization code exchange parameters (RFC 6749 Section 4.1.3).

    Client credentials are not part of the request; the authorization
    server client adds them in the configured form.
    """

    code: str
    redirect_uri: str

    # Optional fields with defaults last
    code_verifier: str | None = None  # RFC 7636 PKCE
    grant_type: str = "authorization_code"

    def to_form_data(self) -> dict[str, str]:
        """Convert to form data for application/x-www-form-urlencoded request."""
        data = {
            "grant_type": self.grant_type,
            "code": self.code,
            "redirect_uri": self.redirect_uri,
        }
        if self.code_verifier:
            data["code_verifier"] = self.code_verifier
        return data


@dataclass(frozen=True)
class RefreshTokenRequest:
    """Refresh token request parameters (RFC 6749 Section 6)."""

    refresh_token: str

    grant_type: str = "refresh_token"

    def to_form_data(self) -> dict[str, str]:
        """Convert to form data for application/x-www-form-urlencoded request."""
        return {
            "grant_type": self.grant_type,
            "refresh_token": self.refresh_token,
        }


@dataclass(frozen=True)
class RevocationRequest:
    """Token revocation parameters (RFC 7009 Section 2.1)."""

    token: str
    token_type_hint: str = "access_token"

    def to_form_data(self) -> dict[str, str]:
        return {"token": self.token, "token_type_hint": self.token_type_hint}


class TokenResponse(BaseModel):
    """Token endpoint response (RFC 6749 Section 5).

    Represents both successful responses (Section 5.1) and error
    responses (Section 5.2).
    """

    # Success response fields (RFC 6749 Section 5.1)
    access_token: str | None = None
    token_type: str = "Bearer"
    expires_in: int | None = None  # Seconds until expiry
    refresh_token: str | None = None
    id_token: str | None = None  # OpenID Connect Core Section 3.1.3.3
    scope: str | None = None

    # Error response fields (RFC 6749 Section 5.2)
    error: str | None = None
    error_description: str | None = None
    error_uri: str | None = None

    def is_success(self) -> bool:
        """Check if token response indicates success."""
        return self.error is None and self.access_token is not None

    def is_error(self) -> bool:
        """Check if token response indicates an error."""
        return self.error is not None

    def calculate_expires_at(self, issued_at: float) -> float | None:
        """Calculate absolute expiry timestamp from expires_in.

        Args:
            issued_at: Unix timestamp at which the response was received

        Returns:
            Unix timestamp when token expires, or None if no expiry
        """
        if self.expires_in is None:
            return None
        return issued_at + self.expires_in


class IntrospectionResult(BaseModel):
    """Token introspection response (RFC 7662 Section 2.2)."""

    active: bool = False
    sub: str | None = None
    scope: str | None = None
    client_id: str | None = None
    exp: int | None = None

    @property
    def subject(self) -> str | None:
        return self.sub
