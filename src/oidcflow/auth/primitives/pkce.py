"""PKCE (Proof Key for Code Exchange) parameter generation.

Implements RFC 7636 so a public or confidential client can prove at code
exchange time that it started the authorization request.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
import string

from oidcflow.auth.models.errors import PKCEError
from oidcflow.auth.models.security import PKCEParameters


class PKCEManager:
    """Generates PKCE parameters for authorization code flows.

    Uses the S256 code challenge method (SHA256 + base64url) with a
    cryptographically secure code verifier.
    """

    def __init__(self, verifier_length: int = 128):
        if not (43 <= verifier_length <= 128):
            raise ValueError("verifier_length must be 43-128 characters")
        self.verifier_length = verifier_length

    def generate_parameters(self) -> PKCEParameters:
        """Generate new PKCE parameters for an authorization flow.

        Returns:
            PKCEParameters: Immutable parameters for the authorization flow

        Raises:
            PKCEError: If parameter generation fails
        """
        try:
            code_verifier = self._generate_code_verifier()
            return PKCEParameters(
                code_verifier=code_verifier,
                code_challenge=self.code_challenge_for(code_verifier),
                code_challenge_method="S256",
            )
        except ValueError as e:
            raise PKCEError(f"Failed to generate PKCE parameters: {e}") from e

    @staticmethod
    def code_challenge_for(code_verifier: str) -> str:
        """Derive the S256 code challenge for a verifier.

        RFC 7636 Section 4.2: BASE64URL-ENCODE(SHA256(ASCII(code_verifier)))
        """
        digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
        return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")

    def _generate_code_verifier(self) -> str:
        """Generate a code verifier from the RFC 7636 unreserved alphabet.

        [A-Z] / [a-z] / [0-9] / "-" / "." / "_" / "~"
        """
        alphabet = string.ascii_letters + string.digits + "-._~"
        return "".join(secrets.choice(alphabet) for _ in range(self.verifier_length))
