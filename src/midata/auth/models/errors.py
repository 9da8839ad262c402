"""Exception hierarchy for MIDATA session and API errors.

Provides specific exception types for different failure modes to enable
precise error handling and recovery strategies.
"""

from __future__ import annotations

from typing import Any


class MidataError(Exception):
    """Base exception for all MIDATA client errors."""

    pass


class InvalidLengthError(MidataError):
    """Raised when a random string is requested with an invalid length."""

    pass


class NotAuthenticatedError(MidataError):
    """Raised when a protected call is attempted without an access token."""

    pass


class MissingCredentialsError(MidataError):
    """Raised when login is called without a username or password."""

    pass


class ConformanceUnavailableError(MidataError):
    """Raised when the conformance statement cannot be fetched or parsed."""

    pass


class ProfileLookupError(MidataError):
    """Raised when the current user's profile record cannot be read."""

    pass


class SessionExpiredError(MidataError):
    """Raised when a 401 could not be recovered by refreshing the session.

    The session has been logged out by the time this is raised.
    ``refresh_error`` holds the refresh failure, or ``None`` when no
    refresh token was available.
    """

    def __init__(self, message: str, refresh_error: Exception | None = None):
        super().__init__(message)
        self.refresh_error = refresh_error


class ApiError(MidataError):
    """Raised when an HTTP request fails.

    Args:
        status: HTTP status code, or 0 for network-level failures.
        message: Human-readable description (usually the reason phrase).
        body: Decoded response body, if any.
    """

    def __init__(self, status: int, message: str, body: Any = None):
        super().__init__(f"{status}: {message}" if status else message)
        self.status = status
        self.message = message
        self.body = body


class NetworkError(ApiError):
    """Raised when the request never produced an HTTP response."""

    def __init__(self, message: str = "Network error"):
        super().__init__(0, message, "")


class UnauthorizedError(ApiError):
    """Raised for 401 responses (expired or revoked access token)."""

    pass


class ServerError(ApiError):
    """Raised for non-2xx responses other than 401."""

    pass


class AuthorizationError(MidataError):
    """Raised when the authorization code flow fails."""

    pass


class StateMismatchError(AuthorizationError):
    """Raised when the redirect's state parameter doesn't match.

    This could indicate a CSRF attack or authorization server issue.
    """

    pass


class AuthorizationCancelledError(AuthorizationError):
    """Raised when the redirect listener closes before a redirect arrives."""

    pass


class RedirectListenerError(AuthorizationError):
    """Raised when the redirect listener itself fails."""

    pass
