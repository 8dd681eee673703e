"""Security-related models for the authorization code flow.

Contains client credentials, PKCE parameters and the state payload
round-tripped through the authorization server.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from urllib.parse import quote

CLIENT_SECRET_BASIC = "client_secret_basic"
CLIENT_SECRET_POST = "client_secret_post"


@dataclass(frozen=True)
class ClientCredentials:
    """Relying-party credentials for the token and revocation endpoints.

    ``auth_method`` selects RFC 6749 Section 2.3.1 Basic authentication or
    credentials in the request body.
    """

    client_id: str
    client_secret: str | None = None
    auth_method: str = CLIENT_SECRET_BASIC

    def __post_init__(self) -> None:
        if self.auth_method not in (CLIENT_SECRET_BASIC, CLIENT_SECRET_POST):
            raise ValueError(f"Unsupported client auth method: {self.auth_method}")

    def apply(self, form_data: dict[str, str], headers: dict[str, str]) -> None:
        """Add the credentials to an outgoing form request in place."""
        if self.auth_method == CLIENT_SECRET_BASIC and self.client_secret is not None:
            pair = f"{quote(self.client_id, safe='')}:{quote(self.client_secret, safe='')}"
            encoded = base64.b64encode(pair.encode("utf-8")).decode("ascii")
            headers["Authorization"] = f"Basic {encoded}"
            return

        form_data["client_id"] = self.client_id
        if self.client_secret is not None:
            form_data["client_secret"] = self.client_secret


@dataclass(frozen=True)
class PKCEParameters:
    """PKCE (Proof Key for Code Exchange) parameters (RFC 7636).

    Generated once per authorization flow; the verifier stays in the
    session until the code exchange.
    """

    code_verifier: str = field()
    code_challenge: str = field()
    code_challenge_method: str = field(default="S256")

    def __post_init__(self) -> None:
        """Validate PKCE parameters meet RFC 7636 requirements."""
        if not (43 <= len(self.code_verifier) <= 128):
            raise ValueError("code_verifier must be 43-128 characters")
        if not (43 <= len(self.code_challenge) <= 128):
            raise ValueError("code_challenge must be 43-128 characters")
        if self.code_challenge_method != "S256":
            raise ValueError("Only S256 code challenge method is supported")


@dataclass(frozen=True)
class StatePayload:
    """Opaque payload carried in the ``state`` parameter."""

    return_to: str = "/"
    nonce: str | None = None  # CSRF binding to the session
