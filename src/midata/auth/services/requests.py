"""Authenticated request execution with one-shot token recovery."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from midata.auth.models.errors import (
    MidataError,
    NotAuthenticatedError,
    SessionExpiredError,
    UnauthorizedError,
)
from midata.transport.http import HttpMethod, HttpRequestExecutor, HttpResponse

if TYPE_CHECKING:
    from midata.auth.session import SessionManager

logger = logging.getLogger(__name__)

FHIR_CONTENT_TYPE = "application/json+fhir;charset=utf-8"

RELOGIN_HINT = "Please login again using authenticate()"


@dataclass(frozen=True)
class ApiRequest:
    """A protected request, without the Authorization header."""

    method: HttpMethod
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    payload: Any = None


class AuthenticatedRequestWrapper:
    """Executes protected requests on behalf of the current session.

    A 401 response is recovered at most once: the session is refreshed and
    the request retried with the new access token. When recovery isn't
    possible the session is logged out and ``SessionExpiredError`` raised.
    """

    def __init__(self, executor: HttpRequestExecutor, session_manager: SessionManager):
        self._executor = executor
        self._session_manager = session_manager

    async def execute(
        self, request: ApiRequest, *, allow_refresh: bool = True
    ) -> HttpResponse:
        """Execute ``request`` with the session's bearer token.

        Args:
            request: The request to execute
            allow_refresh: Whether a 401 may trigger refresh-and-retry

        Raises:
            NotAuthenticatedError: If no user is logged in
            SessionExpiredError: If a 401 couldn't be recovered
            ApiError: Any other failure, unchanged
        """
        session = self._session_manager.session
        if session.access_token is None:
            raise NotAuthenticatedError(
                f"Can't call {request.method} {request.url} when no user is "
                "logged in. Call authenticate() or login() first."
            )

        try:
            return await self._send(request, session.access_token)
        except UnauthorizedError as e:
            if not allow_refresh:
                raise
            logger.warning(f"Access token rejected ({e.message}), trying to refresh")
            return await self._recover(request)

    async def _recover(self, request: ApiRequest) -> HttpResponse:
        session = self._session_manager.session

        if not session.refresh_token:
            self._session_manager.logout()
            logger.warning(f"Refresh token not available. {RELOGIN_HINT}")
            raise SessionExpiredError("Session expired and no refresh token is held")

        try:
            await self._session_manager.refresh()
        except MidataError as e:
            self._session_manager.logout()
            logger.warning(f"Error during refresh process. {RELOGIN_HINT}")
            raise SessionExpiredError(
                f"Session expired and refresh failed: {e}", refresh_error=e
            ) from e

        if session.access_token is None:
            raise NotAuthenticatedError(
                f"Session was logged out before retrying {request.method} "
                f"{request.url}"
            )

        logger.info("Tokens refreshed, retrying request")
        return await self._send(request, session.access_token)

    async def _send(self, request: ApiRequest, access_token: str) -> HttpResponse:
        headers = {**request.headers, "Authorization": f"Bearer {access_token}"}
        return await self._executor.execute(
            request.method, request.url, headers=headers, payload=request.payload
        )
