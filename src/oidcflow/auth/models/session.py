"""Per-user-agent session state for the relying party."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from oidcflow.auth.models.tokens import TokenSet


class LifecycleState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    EXCHANGING = "exchanging"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"


class TokenStore:
    """Holds the current token set of one session.

    At most one token set is attached at a time. ``replace`` swaps the
    reference in one assignment.
    """

    def __init__(self) -> None:
        self._token_set: TokenSet | None = None

    @property
    def current(self) -> TokenSet | None:
        return self._token_set

    def replace(self, token_set: TokenSet) -> None:
        self._token_set = token_set

    def clear(self) -> None:
        self._token_set = None

    def __bool__(self) -> bool:
        return self._token_set is not None


@dataclass
class Session:
    """Binds one browser user-agent to its tokens and pending redirect.

    ``tokens`` is written only by the token lifecycle manager. The
    ``pending_*`` fields live between ``/login`` and ``/callback``.
    """

    session_id: str
    tokens: TokenStore = field(default_factory=TokenStore)
    state: LifecycleState = LifecycleState.UNAUTHENTICATED
    return_to: str | None = None
    user_info: dict[str, Any] | None = None
    pending_nonce: str | None = None
    pending_code_verifier: str | None = None
    last_seen_at: float = field(default_factory=time.time)

    @property
    def token_set(self) -> TokenSet | None:
        return self.tokens.current

    @property
    def is_authenticated(self) -> bool:
        return bool(self.tokens)

    def clear_pending(self) -> None:
        self.pending_nonce = None
        self.pending_code_verifier = None

    def invalidate(self) -> None:
        """Drop everything bound to this user-agent."""
        self.tokens.clear()
        self.state = LifecycleState.UNAUTHENTICATED
        self.user_info = None
        self.return_to = None
        self.clear_pending()
