"""Token acquisition against the MIDATA platform.

Implements the password-grant login (``/v1/auth``) and the RFC 6749 token
endpoint interactions: authorization code exchange with PKCE (RFC 7636)
and refresh.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlencode

from pydantic import ValidationError

from midata.auth.models.errors import ServerError
from midata.auth.models.tokens import (
    AuthRequest,
    AuthResponse,
    RefreshTokenRequest,
    TokenRequest,
    TokenResponse,
)
from midata.transport.http import HttpRequestExecutor, HttpResponse

logger = logging.getLogger(__name__)

FORM_HEADERS = {
    "Content-Type": "application/x-www-form-urlencoded",
    "Accept": "application/json",
}


class OAuth2TokenManager:
    """Sends token requests and parses their responses.

    Token endpoint requests use application/x-www-form-urlencoded encoding
    as required by RFC 6749; the platform's own login endpoint takes JSON.
    Transport and status errors raised by the executor propagate unchanged.
    """

    def __init__(self, executor: HttpRequestExecutor):
        self._executor = executor

    async def login(self, auth_url: str, auth_request: AuthRequest) -> AuthResponse:
        """Log in with username and password.

        Args:
            auth_url: The platform's ``/v1/auth`` URL
            auth_request: Login credentials and application identity

        Returns:
            AuthResponse: Owner id and the issued token pair
        """
        logger.debug(
            f"Login request: app={auth_request.app_name}, "
            f"role={auth_request.role or 'default'}"
        )

        response = await self._executor.execute(
            "POST",
            auth_url,
            headers={"Content-Type": "application/json"},
            payload=auth_request.to_payload(),
        )
        return self._parse(response, AuthResponse, "login")

    async def exchange_code_for_token(
        self, token_request: TokenRequest
    ) -> TokenResponse:
        """Exchange an authorization code for access and refresh tokens."""
        logger.debug(
            f"Exchanging authorization code at {token_request.token_endpoint} "
            f"for client {token_request.client_id}"
        )

        response = await self._executor.execute(
            "POST",
            token_request.token_endpoint,
            headers=dict(FORM_HEADERS),
            payload=urlencode(token_request.to_form_data()),
        )
        return self._parse(response, TokenResponse, "token exchange")

    async def refresh_access_token(
        self, refresh_request: RefreshTokenRequest
    ) -> TokenResponse:
        """Obtain a new token pair with a refresh token."""
        logger.debug(f"Refreshing access token at {refresh_request.token_endpoint}")

        response = await self._executor.execute(
            "POST",
            refresh_request.token_endpoint,
            headers=dict(FORM_HEADERS),
            payload=urlencode(refresh_request.to_form_data()),
        )
        return self._parse(response, TokenResponse, "token refresh")

    def _parse(self, response: HttpResponse, model: Any, operation: str) -> Any:
        """Validate a successful response body against ``model``.

        Raises:
            ServerError: If the body isn't a valid token response
        """
        try:
            parsed = model.model_validate(response.body)
        except ValidationError as e:
            logger.warning(f"Invalid {operation} response: {e.error_count()} errors")
            raise ServerError(
                response.status, f"Invalid {operation} response", response.body
            ) from e

        logger.info(f"{operation.capitalize()} successful")
        return parsed
