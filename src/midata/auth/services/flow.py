"""Authorization code flow orchestration.

Builds the authorization URL with fresh PKCE parameters, drives the
redirect listener and extracts the authorization code from the redirect.
"""

from __future__ import annotations

import logging

from midata.auth.models.errors import (
    AuthorizationCancelledError,
    AuthorizationError,
    RedirectListenerError,
)
from midata.auth.models.flow import AuthorizationRequest, AuthorizationResponse
from midata.auth.models.security import PKCEParameters
from midata.auth.models.session import User
from midata.auth.primitives.pkce import PKCEManager
from midata.auth.services.security import validate_state
from midata.transport.redirect import RedirectHandle, RedirectListener

logger = logging.getLogger(__name__)


class OAuth2FlowManager:
    """Orchestrates the user-facing part of the authorization code flow.

    Handles:
    - PKCE parameter generation
    - Authorization URL construction
    - Watching navigation events for the redirect
    - State validation (CSRF protection)
    """

    def __init__(self, pkce_length: int = 128):
        self._pkce_manager = PKCEManager(length=pkce_length)

    def start_authorization_flow(
        self,
        authorization_endpoint: str,
        client_id: str,
        redirect_uri: str,
        audience: str,
        scope: str,
        user: User | None = None,
    ) -> tuple[str, PKCEParameters]:
        """Generate PKCE parameters and the authorization URL.

        The user's email and language, when known, are passed as hints to
        the platform's login page.

        Returns:
            Tuple of (authorization_url, pkce_parameters)
        """
        pkce_params = self._pkce_manager.generate_parameters()

        auth_request = AuthorizationRequest(
            authorization_endpoint=authorization_endpoint,
            client_id=client_id,
            redirect_uri=redirect_uri,
            audience=audience,
            scope=scope,
            state=pkce_params.state,
            code_challenge=pkce_params.code_challenge,
            code_challenge_method=pkce_params.code_challenge_method,
            email=user.email if user else None,
            language=user.language if user else None,
        )

        logger.info(f"Generated authorization URL for client {client_id}")
        return auth_request.build_authorization_url(), pkce_params

    async def wait_for_authorization_code(
        self,
        listener: RedirectListener,
        authorization_url: str,
        redirect_uri: str,
        expected_state: str,
    ) -> str:
        """Open the authorization view and wait for the redirect.

        Only the first navigation to ``redirect_uri`` is considered; the
        view is closed as soon as it arrives.

        Returns:
            The authorization code

        Raises:
            StateMismatchError: If the redirect's state doesn't match
            AuthorizationError: If the platform returned an error
            AuthorizationCancelledError: If the view closed without a redirect
            RedirectListenerError: If the view failed
        """
        try:
            handle = await listener.open(authorization_url)
        except AuthorizationError:
            raise
        except Exception as e:
            raise RedirectListenerError(
                f"Failed to open authorization view: {e}"
            ) from e

        try:
            response = await self._next_redirect(handle, redirect_uri)
        finally:
            await handle.close()

        validate_state(expected_state, response.state)

        if response.is_error():
            raise AuthorizationError(
                f"Authorization failed: {response.error} "
                f"({response.error_description or ''})"
            )
        if response.code is None:
            raise AuthorizationError("Redirect is missing the authorization code")

        logger.info("Received authorization code")
        return response.code

    async def _next_redirect(
        self, handle: RedirectHandle, redirect_uri: str
    ) -> AuthorizationResponse:
        try:
            async for event in handle.events():
                if event.url.startswith(redirect_uri):
                    logger.debug("Authorization view navigated to the redirect URI")
                    return AuthorizationResponse.from_redirect_url(event.url)
        except AuthorizationError:
            raise
        except Exception as e:
            raise RedirectListenerError(f"Authorization view failed: {e}") from e

        raise AuthorizationCancelledError(
            "Authorization view closed before redirecting"
        )
