"""Encoding and validation of the OAuth ``state`` parameter.

The state is base64url-encoded JSON carrying the post-login return path
and a per-session nonce. The authorization server round-trips it
unmodified.
"""

from __future__ import annotations

import base64
import binascii
import json
import secrets
import string

from oidcflow.auth.models.errors import StateValidationError
from oidcflow.auth.models.security import StatePayload


def generate_nonce() -> str:
    """Generate a cryptographically secure 32 character nonce."""
    alphabet = string.ascii_letters + string.digits + "-._~"
    return "".join(secrets.choice(alphabet) for _ in range(32))


def encode_state(payload: StatePayload) -> str:
    data: dict[str, str] = {"returnTo": payload.return_to}
    if payload.nonce:
        data["nonce"] = payload.nonce
    raw = json.dumps(data, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii")


def decode_state(state: str) -> StatePayload:
    """Decode a state parameter produced by ``encode_state``.

    Raises:
        StateValidationError: If the state is not base64url JSON
    """
    try:
        padded = state + "=" * (-len(state) % 4)
        data = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (ValueError, binascii.Error, UnicodeError) as e:
        raise StateValidationError(f"Malformed state parameter: {e}") from e

    if not isinstance(data, dict):
        raise StateValidationError("State payload is not an object")

    return_to = data.get("returnTo") or "/"
    if not isinstance(return_to, str) or not _is_local_path(return_to):
        return_to = "/"
    nonce = data.get("nonce")
    return StatePayload(
        return_to=return_to, nonce=nonce if isinstance(nonce, str) else None
    )


def validate_state(expected: str, actual: str | None) -> None:
    """Validate the state nonce matches the one stored in the session.

    Raises:
        StateValidationError: If the nonces don't match
    """
    if actual is None or not secrets.compare_digest(expected, actual):
        raise StateValidationError("State parameter mismatch - possible CSRF attack")


def _is_local_path(path: str) -> bool:
    # Open redirect guard: only same-origin absolute paths
    return path.startswith("/") and not path.startswith("//")
