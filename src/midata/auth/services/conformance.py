"""FHIR conformance statement resolution.

Discovers the platform's OAuth token and authorize endpoints from the
conformance statement and stores them on the session.
"""

from __future__ import annotations

import logging

from pydantic import ValidationError

from midata.auth.models.conformance import ConformanceStatement, OAuthEndpoints
from midata.auth.models.errors import ApiError, ConformanceUnavailableError
from midata.auth.models.session import Session
from midata.transport.http import HttpRequestExecutor

logger = logging.getLogger(__name__)


class ConformanceResolver:
    """Fetches the conformance statement and extracts the OAuth endpoints."""

    def __init__(self, executor: HttpRequestExecutor, session: Session):
        self._executor = executor
        self._session = session

    async def fetch(self, conformance_url: str) -> OAuthEndpoints:
        """Fetch the conformance statement and update the session's endpoints.

        Args:
            conformance_url: URL of the conformance statement

        Returns:
            OAuthEndpoints: The discovered token and authorize endpoints

        Raises:
            ConformanceUnavailableError: If the statement is unreachable or
                doesn't contain the endpoints
        """
        logger.debug(f"Fetching conformance statement from: {conformance_url}")

        try:
            response = await self._executor.execute(
                "GET", conformance_url, headers={"Accept": "application/json"}
            )
        except ApiError as e:
            raise ConformanceUnavailableError(
                f"Failed to fetch conformance statement from {conformance_url}: {e}"
            ) from e

        if not isinstance(response.body, dict):
            raise ConformanceUnavailableError(
                f"Conformance statement from {conformance_url} is not a JSON object"
            )

        try:
            statement = ConformanceStatement.model_validate(response.body)
            endpoints = statement.oauth_endpoints()
        except (ValidationError, ValueError) as e:
            raise ConformanceUnavailableError(
                f"Invalid conformance statement from {conformance_url}: {e}"
            ) from e

        self._session.token_endpoint = endpoints.token_endpoint
        self._session.authorize_endpoint = endpoints.authorize_endpoint

        logger.debug(
            f"Discovered OAuth endpoints: token={endpoints.token_endpoint}, "
            f"authorize={endpoints.authorize_endpoint}"
        )
        return endpoints

    async def ensure_endpoints(self, conformance_url: str) -> OAuthEndpoints:
        """Return the known endpoints, fetching them first if still unset."""
        if self._session.has_endpoints:
            return OAuthEndpoints(
                token_endpoint=self._session.token_endpoint,
                authorize_endpoint=self._session.authorize_endpoint,
            )
        return await self.fetch(conformance_url)
