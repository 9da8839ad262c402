"""HTTP request execution.

Defines the narrow executor interface every MIDATA call goes through and the
default implementation on top of ``httpx.AsyncClient``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

import httpx

from midata.auth.models.errors import NetworkError, ServerError, UnauthorizedError

logger = logging.getLogger(__name__)

HttpMethod = Literal["GET", "POST", "PUT", "DELETE"]


@dataclass(frozen=True)
class HttpResponse:
    """Successful (2xx) HTTP response."""

    status: int
    body: Any
    headers: dict[str, str] = field(default_factory=dict)


class HttpRequestExecutor(Protocol):
    """Executes a single HTTP request.

    Implementations return an ``HttpResponse`` for 2xx statuses and raise
    ``NetworkError`` (status 0), ``UnauthorizedError`` (401) or
    ``ServerError`` (any other status) otherwise.
    """

    async def execute(
        self,
        method: HttpMethod,
        url: str,
        headers: dict[str, str] | None = None,
        payload: Any = None,
    ) -> HttpResponse:
        """Execute the request.

        Args:
            method: HTTP method
            url: Absolute request URL
            headers: Request headers
            payload: ``dict``/``list`` sent as JSON, ``str``/``bytes`` sent as is
        """
        ...


def decode_body(text: str) -> Any:
    """Decode a response body as JSON, falling back to the raw text."""
    if not text:
        return text
    try:
        return json.loads(text)
    except ValueError:
        return text


def raise_for_status(status: int, reason: str, body: Any) -> None:
    """Raise the error matching a non-2xx status."""
    if 200 <= status < 300:
        return
    if status == 401:
        raise UnauthorizedError(status, reason or "Unauthorized", body)
    raise ServerError(status, reason or "Request failed", body)


class HttpxRequestExecutor:
    """``HttpRequestExecutor`` backed by ``httpx.AsyncClient``."""

    def __init__(
        self, timeout: float = 30.0, http_client: httpx.AsyncClient | None = None
    ):
        """Initialize the executor.

        Args:
            timeout: HTTP request timeout in seconds
            http_client: Client to use instead of a newly created one
        """
        self.timeout = timeout
        self._http_client = http_client or httpx.AsyncClient(timeout=timeout)

    async def execute(
        self,
        method: HttpMethod,
        url: str,
        headers: dict[str, str] | None = None,
        payload: Any = None,
    ) -> HttpResponse:
        request_kwargs: dict[str, Any] = {"headers": headers or {}}
        if isinstance(payload, (dict, list)):
            # Content-Type stays whatever the caller set (application/json+fhir)
            request_kwargs["content"] = json.dumps(payload)
        elif payload is not None:
            request_kwargs["content"] = payload

        logger.debug(f"{method} {url}")

        try:
            response = await self._http_client.request(method, url, **request_kwargs)
        except httpx.RequestError as e:
            logger.debug(f"Network error for {method} {url}: {e}")
            raise NetworkError(f"Network error: {e}") from e

        body = decode_body(response.text)
        raise_for_status(response.status_code, response.reason_phrase, body)

        return HttpResponse(
            status=response.status_code,
            body=body,
            headers=dict(response.headers),
        )

    async def close(self) -> None:
        """Close the HTTP client and clean up resources."""
        await self._http_client.aclose()
