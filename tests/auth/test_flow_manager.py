"""Tests for the authorization flow.

High-impact tests covering:
- Authorization URL generation with PKCE and platform hints
- Redirect detection among navigation events
- State validation and error redirects
"""

from urllib.parse import parse_qs, urlparse

import pytest
from fakes import (
    AUTHORIZE_ENDPOINT,
    FHIR_URL,
    HOST,
    REDIRECT_URI,
    ScriptedRedirectListener,
    redirect_with_code,
    state_of,
)

from midata.auth.models.errors import (
    AuthorizationCancelledError,
    AuthorizationError,
    RedirectListenerError,
    StateMismatchError,
)
from midata.auth.models.session import User
from midata.auth.primitives.pkce import build_code_challenge
from midata.auth.services.flow import OAuth2FlowManager


class TestStartAuthorizationFlow:
    def setup_method(self):
        self.flow_manager = OAuth2FlowManager()

    def _start(self, user: User | None = None) -> tuple:
        return self.flow_manager.start_authorization_flow(
            authorization_endpoint=AUTHORIZE_ENDPOINT,
            client_id="test-app",
            redirect_uri=REDIRECT_URI,
            audience=FHIR_URL,
            scope="user/*.*",
            user=user,
        )

    def test_url_contains_pkce_parameters(self):
        # Act
        auth_url, pkce = self._start()

        # Assert
        parsed = urlparse(auth_url)
        query_params = parse_qs(parsed.query)

        assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == AUTHORIZE_ENDPOINT
        assert query_params["response_type"] == ["code"]
        assert query_params["client_id"] == ["test-app"]
        assert query_params["redirect_uri"] == [REDIRECT_URI]
        assert query_params["aud"] == [FHIR_URL]
        assert query_params["scope"] == ["user/*.*"]
        assert query_params["state"] == [pkce.state]
        assert query_params["code_challenge"] == [pkce.code_challenge]
        assert query_params["code_challenge_method"] == ["S256"]
        assert pkce.code_challenge == build_code_challenge(pkce.code_verifier)

        # The verifier never leaves the client
        assert pkce.code_verifier not in auth_url
        assert "email" not in query_params
        assert "language" not in query_params

    def test_url_contains_user_hints(self):
        # Act
        auth_url, _ = self._start(User(email="a@b.com", language="de"))

        # Assert
        query_params = parse_qs(urlparse(auth_url).query)
        assert query_params["email"] == ["a@b.com"]
        assert query_params["language"] == ["de"]

    def test_each_flow_gets_fresh_parameters(self):
        _, first = self._start()
        _, second = self._start()
        assert first.state != second.state
        assert first.code_verifier != second.code_verifier


class TestWaitForAuthorizationCode:
    def setup_method(self):
        self.flow_manager = OAuth2FlowManager()
        self.auth_url = f"{AUTHORIZE_ENDPOINT}?state=expected-state"

    async def test_returns_code_and_closes_listener(self):
        # Arrange
        listener = redirect_with_code("auth-code-123")

        # Act
        code = await self.flow_manager.wait_for_authorization_code(
            listener, self.auth_url, REDIRECT_URI, "expected-state"
        )

        # Assert
        assert code == "auth-code-123"
        assert listener.opened == [self.auth_url]
        assert listener.handles[0].closed

    async def test_only_first_redirect_is_used(self):
        # Arrange
        listener = ScriptedRedirectListener(
            lambda url: [
                f"{HOST}/#/portal/login",
                f"{REDIRECT_URI}?state={state_of(url)}&code=first",
                f"{REDIRECT_URI}?state={state_of(url)}&code=second",
            ]
        )

        # Act
        code = await self.flow_manager.wait_for_authorization_code(
            listener, self.auth_url, REDIRECT_URI, "expected-state"
        )

        # Assert
        assert code == "first"
        assert len(listener.handles[0].emitted) == 2

    async def test_state_mismatch_raises_and_closes_listener(self):
        # Arrange
        listener = ScriptedRedirectListener(
            lambda url: [f"{REDIRECT_URI}?state=forged&code=stolen"]
        )

        # Act / Assert
        with pytest.raises(StateMismatchError):
            await self.flow_manager.wait_for_authorization_code(
                listener, self.auth_url, REDIRECT_URI, "expected-state"
            )
        assert listener.handles[0].closed

    async def test_missing_state_raises(self):
        listener = ScriptedRedirectListener(lambda url: [f"{REDIRECT_URI}?code=x"])

        with pytest.raises(StateMismatchError):
            await self.flow_manager.wait_for_authorization_code(
                listener, self.auth_url, REDIRECT_URI, "expected-state"
            )

    async def test_error_redirect_raises_authorization_error(self):
        # Arrange
        listener = ScriptedRedirectListener(
            lambda url: [
                f"{REDIRECT_URI}?state={state_of(url)}&error=access_denied"
                "&error_description=User+denied"
            ]
        )

        # Act / Assert
        with pytest.raises(AuthorizationError, match="access_denied"):
            await self.flow_manager.wait_for_authorization_code(
                listener, self.auth_url, REDIRECT_URI, "expected-state"
            )

    async def test_listener_closed_without_redirect(self):
        listener = ScriptedRedirectListener(lambda url: [f"{HOST}/#/portal/login"])

        with pytest.raises(AuthorizationCancelledError):
            await self.flow_manager.wait_for_authorization_code(
                listener, self.auth_url, REDIRECT_URI, "expected-state"
            )

    async def test_listener_failure_raises_listener_error(self):
        # Arrange
        class FailingListener:
            async def open(self, url):
                raise OSError("web view unavailable")

        # Act / Assert
        with pytest.raises(RedirectListenerError):
            await self.flow_manager.wait_for_authorization_code(
                FailingListener(), self.auth_url, REDIRECT_URI, "expected-state"
            )
