"""Exception hierarchy for the OAuth 2.0 / OIDC authorization code flow.

Each failure mode of the flow has its own type so the HTTP front-ends can
map it to the right response: a failure page, a JSON error object, or a
redirect back to login.
"""

from __future__ import annotations


class OAuth2Error(Exception):
    """Base exception for all OAuth 2.0 related errors."""

    pass


class TransportError(OAuth2Error):
    """Raised when an external call fails at the network level.

    Covers connection failures, timeouts, 5xx responses and bodies that
    cannot be parsed. Never retried inside the transport.
    """

    pass


class ChallengeError(OAuth2Error):
    """Raised when a login or consent challenge cannot be resolved.

    Challenges are single-use and time-boxed by the authorization server,
    so this is always fatal for the current flow.
    """

    def __init__(self, challenge: str, message: str):
        super().__init__(f"Challenge {challenge!r}: {message}")
        self.challenge = challenge


class AuthError(OAuth2Error):
    """Raised when the authorization code exchange is rejected."""

    def __init__(self, code: str, description: str | None = None):
        super().__init__(f"{code}: {description or 'No description provided'}")
        self.code = code
        self.description = description


class RefreshError(OAuth2Error):
    """Raised when a token set cannot be refreshed.

    Callers treat this as equivalent to a full logout.
    """

    NO_REFRESH_TOKEN = "no_refresh_token"

    def __init__(self, reason: str, description: str | None = None):
        super().__init__(f"Token refresh failed: {reason} ({description or ''})")
        self.reason = reason
        self.description = description


class ApiError(OAuth2Error):
    """Raised when a protected-resource call fails for reasons other than expiry."""

    def __init__(self, status_code: int, detail: str | None = None):
        super().__init__(f"Protected resource call failed with {status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class PKCEError(OAuth2Error):
    """Raised when PKCE parameter generation fails."""

    pass


class StateValidationError(OAuth2Error):
    """Raised when OAuth state parameter validation fails.

    This indicates either a missing state parameter or a state mismatch,
    which could indicate a CSRF attack or authorization server issue.
    """

    pass
