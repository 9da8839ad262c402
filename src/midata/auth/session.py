"""Session lifecycle management for the MIDATA platform.

Coordinates password-grant login, the PKCE authorization code flow, token
refresh and logout on a single, explicitly owned ``Session``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass

from midata.auth.models.errors import (
    AuthorizationCancelledError,
    MidataError,
    MissingCredentialsError,
    NotAuthenticatedError,
    RedirectListenerError,
)
from midata.auth.models.session import Language, Session, SessionState, User
from midata.auth.models.tokens import (
    AuthRequest,
    AuthResponse,
    RefreshTokenRequest,
    TokenRequest,
    TokenResponse,
    UserRole,
)
from midata.auth.services.conformance import ConformanceResolver
from midata.auth.services.flow import OAuth2FlowManager
from midata.auth.services.tokens import OAuth2TokenManager
from midata.config import MidataConfig
from midata.transport.http import HttpRequestExecutor
from midata.transport.redirect import RedirectListener

logger = logging.getLogger(__name__)

# Resolves a patient id to the patient's email address
ProfileLookup = Callable[[str], Awaitable[str]]


@dataclass(frozen=True)
class AuthOutcome:
    """Result of a successful login, authentication or refresh.

    ``profile_error`` is set when the follow-up profile lookup failed. The
    session is logged in regardless; callers may ignore it.
    """

    response: AuthResponse | TokenResponse
    user: User | None
    profile_error: MidataError | None = None


class SessionManager:
    """Owns the session state machine.

    States: ANONYMOUS, AUTHORIZING (waiting for the redirect), EXCHANGING
    (trading the code for tokens), AUTHENTICATED and REFRESHING.

    ``login``, ``authenticate`` and ``refresh`` are serialized: a second
    caller waits until the running operation finished. Calls made from
    within a running operation (the profile lookup refreshing an expired
    token, for instance) don't wait on themselves.
    """

    def __init__(
        self,
        session: Session,
        config: MidataConfig,
        executor: HttpRequestExecutor,
        conformance: ConformanceResolver,
        redirect_listener: RedirectListener | None = None,
        profile_lookup: ProfileLookup | None = None,
    ):
        self.session = session
        self.config = config
        self.redirect_listener = redirect_listener
        self.profile_lookup = profile_lookup

        self._conformance = conformance
        self._token_manager = OAuth2TokenManager(executor)
        self._flow_manager = OAuth2FlowManager(pkce_length=config.pkce_length)

        self._lock = asyncio.Lock()
        self._lock_owner: asyncio.Task | None = None

    @asynccontextmanager
    async def _exclusive(self) -> AsyncIterator[None]:
        current = asyncio.current_task()
        if self._lock_owner is not None and self._lock_owner is current:
            yield
            return

        async with self._lock:
            self._lock_owner = current
            try:
                yield
            finally:
                self._lock_owner = None

    # ================================
    # Operations
    # ================================

    async def login(
        self, username: str, password: str, role: UserRole | None = None
    ) -> AuthOutcome:
        """Log in with username and password (password grant).

        Only use this if the application can't support the OAuth2 flow of
        ``authenticate()``.

        Args:
            username: The user's identifier, most likely an email address
            password: The user's password
            role: Role to log in with

        Raises:
            MissingCredentialsError: If username or password is missing
            ApiError: If the platform rejected the login
        """
        if not username or not password:
            raise MissingCredentialsError(
                "You need to supply a username and a password"
            )

        async with self._exclusive():
            auth_request = AuthRequest(
                username=username,
                password=password,
                app_name=self.config.app_name,
                secret=self.config.secret,
                role=role,
            )
            response = await self._token_manager.login(
                f"{self.config.base_url}/v1/auth", auth_request
            )

            self.session.set_tokens(response.auth_token, response.refresh_token)
            self.session.merge_user(id=response.owner, name=username)
            self.session.state = SessionState.AUTHENTICATED
            logger.info(f"Logged in as patient {response.owner}")

            profile_error = await self._lookup_profile()
            return AuthOutcome(response, self.session.user, profile_error)

    async def authenticate(self) -> AuthOutcome:
        """Log in through the OAuth2 authorization code flow with PKCE.

        Opens the redirect listener at the platform's authorization page,
        waits for the redirect carrying the authorization code and
        exchanges it for tokens. Any failure leaves the session logged out.

        Raises:
            ConformanceUnavailableError: If the OAuth endpoints are unknown
            StateMismatchError: If the redirect's state doesn't match
            AuthorizationError: If authorization failed or was cancelled
            ApiError: If the token exchange failed
        """
        async with self._exclusive():
            succeeded = False
            try:
                outcome = await self._authorize_and_exchange()
                succeeded = True
                return outcome
            finally:
                if not succeeded:
                    logger.warning("Authentication failed, resetting session")
                    self.logout()

    async def _authorize_and_exchange(self) -> AuthOutcome:
        if self.redirect_listener is None:
            raise RedirectListenerError("No redirect listener configured")

        endpoints = await self._conformance.ensure_endpoints(
            self.config.conformance_statement_endpoint
        )

        authorization_url, pkce = self._flow_manager.start_authorization_flow(
            authorization_endpoint=endpoints.authorize_endpoint,
            client_id=self.config.app_name,
            redirect_uri=self.config.redirect_uri,
            audience=self.config.fhir_url,
            scope=self.config.scope,
            user=self.session.user,
        )
        self.session.authorization_code = None
        self.session.pkce = pkce
        self.session.state = SessionState.AUTHORIZING

        code = await self._flow_manager.wait_for_authorization_code(
            self.redirect_listener,
            authorization_url,
            self.config.redirect_uri,
            expected_state=pkce.state,
        )

        # logout() while waiting discards this attempt
        if self.session.pkce is not pkce:
            raise AuthorizationCancelledError("Session was reset during authorization")

        self.session.authorization_code = code
        self.session.state = SessionState.EXCHANGING

        token_request = TokenRequest(
            token_endpoint=endpoints.token_endpoint,
            code=code,
            redirect_uri=self.config.redirect_uri,
            client_id=self.config.app_name,
            code_verifier=pkce.code_verifier,
        )
        response = await self._token_manager.exchange_code_for_token(token_request)

        self.session.clear_authorization()
        self._store_token_response(response)
        logger.info(f"Authenticated patient {response.patient}")

        profile_error = await self._lookup_profile()
        return AuthOutcome(response, self.session.user, profile_error)

    async def refresh(self, refresh_token: str | None = None) -> AuthOutcome:
        """Replace the token pair using a refresh token.

        The old refresh token becomes invalid on the server. Previously
        issued access tokens stay valid until they expire but are dropped
        here. A failed refresh doesn't log out, so callers can retry with an
        explicit token.

        Args:
            refresh_token: Token to use instead of the session's own

        Raises:
            NotAuthenticatedError: If no refresh token is available
            ConformanceUnavailableError: If the token endpoint is unknown
            ApiError: If the platform rejected the refresh
        """
        async with self._exclusive():
            token = refresh_token or self.session.refresh_token
            if not token:
                raise NotAuthenticatedError("No refresh token available")

            endpoints = await self._conformance.ensure_endpoints(
                self.config.conformance_statement_endpoint
            )

            self.session.state = SessionState.REFRESHING
            try:
                response = await self._token_manager.refresh_access_token(
                    RefreshTokenRequest(
                        token_endpoint=endpoints.token_endpoint, refresh_token=token
                    )
                )
            except BaseException:
                self.session.state = (
                    SessionState.AUTHENTICATED
                    if self.session.logged_in
                    else SessionState.ANONYMOUS
                )
                raise

            self._store_token_response(response)
            logger.info("Session tokens refreshed")

            profile_error = await self._lookup_profile()
            return AuthOutcome(response, self.session.user, profile_error)

    def logout(self) -> None:
        """Destroy all authentication information. Endpoints are kept."""
        self.session.clear()
        logger.info("Logged out")

    def set_user_email(self, email: str) -> None:
        self.session.merge_user(email=email)

    def set_user_language(self, language: Language) -> None:
        self.session.merge_user(language=language)

    def change_platform(self, config: MidataConfig) -> None:
        """Switch to another platform host.

        Forces a logout and forgets the discovered endpoints.
        """
        self.config = config
        self._flow_manager = OAuth2FlowManager(pkce_length=config.pkce_length)
        self.session.clear_endpoints()
        self.logout()

    # ================================
    # Helpers
    # ================================

    def _store_token_response(self, response: TokenResponse) -> None:
        self.session.set_tokens(response.access_token, response.refresh_token)
        if response.patient is not None:
            self.session.merge_user(id=response.patient)
        self.session.state = SessionState.AUTHENTICATED

    async def _lookup_profile(self) -> MidataError | None:
        """Best-effort lookup of the user's email address."""
        user = self.session.user
        if self.profile_lookup is None or user is None or user.id is None:
            return None

        try:
            email = await self.profile_lookup(user.id)
        except MidataError as e:
            logger.warning(f"Error setting user email address: {e}")
            return e

        # logout() while waiting drops the result
        if self.session.user is user:
            self.set_user_email(email)
        return None
