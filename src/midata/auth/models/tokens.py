"""Token request and response models.

Contains the password-grant login request used by ``/v1/auth``, the OAuth2
token endpoint requests (code exchange and refresh), and their responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

UserRole = Literal["MEMBER", "PROVIDER", "DEVELOPER", "RESEARCH"]


@dataclass(frozen=True)
class AuthRequest:
    """Password-grant login request for the platform's ``/v1/auth`` endpoint."""

    username: str
    password: str
    app_name: str
    secret: str | None = None
    role: UserRole | None = None

    def to_payload(self) -> dict[str, Any]:
        """Convert to the JSON body expected by the platform."""
        payload: dict[str, Any] = {
            "username": self.username,
            "password": self.password,
            "appname": self.app_name,
        }

        if self.secret is not None:
            payload["secret"] = self.secret
        if self.role is not None:
            payload["role"] = self.role

        return payload


class AuthResponse(BaseModel):
    """Successful response of a password-grant login."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    owner: str
    auth_token: str = Field(alias="authToken")
    refresh_token: str | None = Field(default=None, alias="refreshToken")


@dataclass(frozen=True)
class TokenRequest:
    """Authorization code exchange request (RFC 6749 Section 4.1.3).

    Carries the PKCE code_verifier (RFC 7636), never the challenge.
    """

    token_endpoint: str
    code: str
    redirect_uri: str
    client_id: str
    code_verifier: str

    grant_type: str = "authorization_code"

    def to_form_data(self) -> dict[str, str]:
        """Convert to form data for application/x-www-form-urlencoded request."""
        return {
            "grant_type": self.grant_type,
            "code": self.code,
            "redirect_uri": self.redirect_uri,
            "client_id": self.client_id,
            "code_verifier": self.code_verifier,
        }


@dataclass(frozen=True)
class RefreshTokenRequest:
    """Refresh token request (RFC 6749 Section 6)."""

    token_endpoint: str
    refresh_token: str

    grant_type: str = "refresh_token"

    def to_form_data(self) -> dict[str, str]:
        """Convert to form data for application/x-www-form-urlencoded request."""
        return {
            "grant_type": self.grant_type,
            "refresh_token": self.refresh_token,
        }


class TokenResponse(BaseModel):
    """Token endpoint response for code exchange and refresh.

    MIDATA adds the ``patient`` claim identifying the logged-in user's
    patient record.
    """

    model_config = ConfigDict(extra="allow")

    access_token: str
    refresh_token: str | None = None
    token_type: str = "Bearer"
    expires_in: int | None = None
    scope: str | None = None
    state: str | None = None
    patient: str | None = None
