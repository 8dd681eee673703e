"""Login and consent challenge models.

The authorization server hands the identity provider an opaque challenge
for every login and consent step. These models describe what the server
tells us about a challenge, the decision we send back, and the outcome
of resolving it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from pydantic import BaseModel, Field, field_validator


class ChallengeKind(str, Enum):
    LOGIN = "login"
    CONSENT = "consent"


class _ChallengeRequest(BaseModel):
    challenge: str | None = None
    skip: bool = False
    subject: str | None = None
    requested_scope: list[str] = Field(default_factory=list)
    client: dict[str, Any] = Field(default_factory=dict)

    @field_validator("requested_scope", "client", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any, info: Any) -> Any:
        if value is None:
            return [] if info.field_name == "requested_scope" else {}
        return value


class LoginRequest(_ChallengeRequest):
    """Login request details for a login challenge."""


class ConsentRequest(_ChallengeRequest):
    """Consent request details for a consent challenge."""


class CompletedRequest(BaseModel):
    """Reply to an accept or reject call.

    The redirect target is the only thing that advances the authorization
    server's flow, so it is required.
    """

    redirect_to: str


@dataclass(frozen=True)
class Accept:
    """Accept a challenge.

    For login, ``subject`` identifies the authenticated user. For consent,
    ``granted_scopes`` lists the scopes the user agreed to.
    """

    subject: str | None = None
    granted_scopes: list[str] | None = None


@dataclass(frozen=True)
class Reject:
    """Reject a challenge with an OAuth error code."""

    error_description: str
    error_code: str = "access_denied"


ChallengeDecision = Union[Accept, Reject]


@dataclass(frozen=True)
class ChallengeOutcome:
    """Result of looking up a challenge.

    Either the challenge was settled without user interaction and
    ``redirect_to`` is set, or ``request`` holds the details the decision
    UI needs to ask the user.
    """

    challenge: str
    kind: ChallengeKind
    redirect_to: str | None = None
    request: LoginRequest | ConsentRequest | None = field(default=None)

    @property
    def requires_interaction(self) -> bool:
        return self.redirect_to is None
