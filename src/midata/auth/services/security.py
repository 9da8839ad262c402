"""Security checks for the authorization code flow."""

from __future__ import annotations

import secrets

from midata.auth.models.errors import StateMismatchError


def validate_state(expected: str, actual: str | None) -> None:
    """Validate the redirect's state parameter matches the one we sent.

    Raises:
        StateMismatchError: If the state is missing or doesn't match
    """
    if actual is None:
        raise StateMismatchError("Redirect is missing the state parameter")
    if not secrets.compare_digest(expected.encode(), actual.encode()):
        raise StateMismatchError("State parameter mismatch - possible CSRF attack")
