"""Session state for a MIDATA client.

Contains the mutable session (tokens, transient PKCE state, user record,
discovered endpoints) that the session manager and request wrapper share.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Literal

from midata.auth.models.security import PKCEParameters

Language = Literal["en", "de", "it", "fr"]


class SessionState(str, Enum):
    ANONYMOUS = "anonymous"
    AUTHORIZING = "authorizing"
    EXCHANGING = "exchanging"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"


@dataclass
class User:
    """The current platform user.

    Fields are filled in incrementally as different flows learn them: id from
    token responses, name from login input, email from the profile lookup.
    """

    name: str | None = None
    id: str | None = None
    email: str | None = None
    language: Language | None = None


@dataclass
class Session:
    """Mutable session state.

    Created once per client and reset in place. Token endpoints survive
    logout; everything tied to a login does not.
    """

    access_token: str | None = None
    refresh_token: str | None = None
    authorization_code: str | None = None
    pkce: PKCEParameters | None = None
    user: User | None = None

    token_endpoint: str | None = None
    authorize_endpoint: str | None = None

    state: SessionState = SessionState.ANONYMOUS

    @property
    def logged_in(self) -> bool:
        return self.access_token is not None

    @property
    def pkce_state(self) -> str | None:
        return self.pkce.state if self.pkce else None

    @property
    def pkce_verifier(self) -> str | None:
        return self.pkce.code_verifier if self.pkce else None

    @property
    def pkce_challenge(self) -> str | None:
        return self.pkce.code_challenge if self.pkce else None

    @property
    def has_endpoints(self) -> bool:
        return bool(self.token_endpoint and self.authorize_endpoint)

    def set_tokens(self, access_token: str, refresh_token: str | None) -> None:
        """Store a new token pair, replacing both previous tokens."""
        self.access_token = access_token
        self.refresh_token = refresh_token

    def merge_user(self, **fields: str | None) -> User:
        """Merge the given fields into the user record, creating it if needed."""
        if self.user is None:
            self.user = User()
        for name, value in fields.items():
            setattr(self.user, name, value)
        return self.user

    def clear_authorization(self) -> None:
        """Drop the transient state of an authorization attempt."""
        self.pkce = None
        self.authorization_code = None

    def clear(self) -> None:
        """Clear all login data. Endpoints are kept."""
        self.access_token = None
        self.refresh_token = None
        self.pkce = None
        self.authorization_code = None
        self.user = None
        self.state = SessionState.ANONYMOUS

    def clear_endpoints(self) -> None:
        self.token_endpoint = None
        self.authorize_endpoint = None
