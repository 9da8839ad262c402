"""PKCE (Proof Key for Code Exchange) primitives.

Random state/verifier generation and S256 code challenge derivation
(RFC 7636) used by the authorization code flow.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
import string

from midata.auth.models.errors import InvalidLengthError
from midata.auth.models.security import PKCEParameters

# RFC 7636 Section 4.1 unreserved characters
UNRESERVED_CHARACTERS = string.ascii_letters + string.digits + "-._~"

DEFAULT_LENGTH = 128


def generate_random_string(length: int | None) -> str:
    """Generate a random string from the unreserved character set.

    Args:
        length: Number of characters to generate

    Returns:
        A string of exactly ``length`` characters

    Raises:
        InvalidLengthError: If length is missing, not an integer or negative
    """
    if length is None or isinstance(length, bool) or not isinstance(length, int):
        raise InvalidLengthError(f"Invalid random string length: {length!r}")
    if length < 0:
        raise InvalidLengthError(f"Random string length must be >= 0, got {length}")

    return "".join(secrets.choice(UNRESERVED_CHARACTERS) for _ in range(length))


def build_code_challenge(code_verifier: str) -> str:
    """Derive the S256 code challenge for a code verifier.

    BASE64URL-ENCODE(SHA256(ASCII(code_verifier))) without padding.
    """
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


class PKCEManager:
    """Generates the PKCE parameters for an authorization attempt."""

    def __init__(self, length: int = DEFAULT_LENGTH):
        self.length = length

    def generate_parameters(self) -> PKCEParameters:
        """Generate a fresh state, code verifier and matching code challenge.

        Raises:
            InvalidLengthError: If the configured length is invalid
        """
        state = generate_random_string(self.length)
        code_verifier = generate_random_string(self.length)

        return PKCEParameters(
            state=state,
            code_verifier=code_verifier,
            code_challenge=build_code_challenge(code_verifier),
        )
