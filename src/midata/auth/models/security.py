"""Security-related models for the authorization code flow.

Contains the PKCE parameters held by a session for one authorization attempt.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class PKCEParameters:
    """PKCE (Proof Key for Code Exchange) parameters for one authorization attempt.

    The state, verifier and challenge are generated together and discarded
    together, so a session never holds only part of them.
    """

    state: str
    code_verifier: str
    code_challenge: str
    code_challenge_method: str = "S256"

    def __post_init__(self) -> None:
        if not (self.state and self.code_verifier and self.code_challenge):
            raise ValueError("state, code_verifier and code_challenge are required")
        if self.code_challenge_method != "S256":
            raise ValueError("Only S256 code challenge method is supported")
