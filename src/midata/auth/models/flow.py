"""Authorization flow models.

Contains models for authorization requests and the redirect carrying the
authorization code.
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import parse_qs, urlencode, urlparse


@dataclass(frozen=True)
class AuthorizationRequest:
    """Authorization request parameters for the PKCE code flow."""

    authorization_endpoint: str
    client_id: str
    redirect_uri: str
    audience: str
    scope: str
    state: str
    code_challenge: str
    code_challenge_method: str = "S256"

    # Optional hints for the platform's login page
    email: str | None = None
    language: str | None = None

    def build_authorization_url(self) -> str:
        """Build the complete authorization URL."""
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "aud": self.audience,
            "scope": self.scope,
            "state": self.state,
            "code_challenge": self.code_challenge,
            "code_challenge_method": self.code_challenge_method,
        }

        if self.email:
            params["email"] = self.email
        if self.language:
            params["language"] = self.language

        return f"{self.authorization_endpoint}?{urlencode(params)}"


@dataclass(frozen=True)
class AuthorizationResponse:
    code: str | None = None
    state: str | None = None
    error: str | None = None
    error_description: str | None = None

    @classmethod
    def from_redirect_url(cls, url: str) -> AuthorizationResponse:
        """Parse the query string of a redirect URL."""
        query_params = parse_qs(urlparse(url).query)

        def get_single_param(key: str) -> str | None:
            values = query_params.get(key, [])
            return values[0] if values else None

        return cls(
            code=get_single_param("code"),
            state=get_single_param("state"),
            error=get_single_param("error"),
            error_description=get_single_param("error_description"),
        )

    def is_success(self) -> bool:
        return self.error is None and self.code is not None

    def is_error(self) -> bool:
        return self.error is not None
