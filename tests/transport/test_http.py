"""Tests for the httpx-backed request executor."""

import json

import httpx
import pytest

from midata.auth.models.errors import NetworkError, ServerError, UnauthorizedError
from midata.transport.http import HttpxRequestExecutor, decode_body

URL = "https://midata.test/fhir/Observation"


def _executor(handler) -> HttpxRequestExecutor:
    """Create an executor whose client answers through ``handler``."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpxRequestExecutor(http_client=client)


class TestHttpxRequestExecutor:
    async def test_json_payload_and_headers(self):
        # Arrange
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["content_type"] = request.headers["Content-Type"]
            seen["authorization"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"resourceType": "Observation", "id": "1"})

        executor = _executor(handler)

        # Act
        response = await executor.execute(
            "POST",
            URL,
            headers={
                "Content-Type": "application/json+fhir;charset=utf-8",
                "Authorization": "Bearer tok1",
            },
            payload={"resourceType": "Observation"},
        )

        # Assert
        assert response.status == 201
        assert response.body == {"resourceType": "Observation", "id": "1"}
        assert seen == {
            "method": "POST",
            "content_type": "application/json+fhir;charset=utf-8",
            "authorization": "Bearer tok1",
            "body": {"resourceType": "Observation"},
        }
        await executor.close()

    async def test_string_payload_sent_verbatim(self):
        # Arrange
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = request.content
            return httpx.Response(200, json={"access_token": "tok1"})

        executor = _executor(handler)

        # Act
        await executor.execute(
            "POST",
            URL,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            payload="grant_type=refresh_token&refresh_token=ref1",
        )

        # Assert
        assert seen["body"] == b"grant_type=refresh_token&refresh_token=ref1"

    async def test_non_json_body_kept_as_text(self):
        executor = _executor(lambda request: httpx.Response(200, text="pong"))

        response = await executor.execute("GET", URL)

        assert response.body == "pong"

    async def test_401_raises_unauthorized(self):
        executor = _executor(
            lambda request: httpx.Response(401, json={"error": "invalid_token"})
        )

        with pytest.raises(UnauthorizedError) as exc_info:
            await executor.execute("GET", URL)
        assert exc_info.value.status == 401
        assert exc_info.value.body == {"error": "invalid_token"}

    @pytest.mark.parametrize("status", [400, 403, 404, 500, 503])
    async def test_other_errors_raise_server_error(self, status):
        executor = _executor(lambda request: httpx.Response(status, text="nope"))

        with pytest.raises(ServerError) as exc_info:
            await executor.execute("GET", URL)
        assert exc_info.value.status == status
        assert exc_info.value.body == "nope"

    async def test_connection_failure_raises_network_error(self):
        # Arrange
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        executor = _executor(handler)

        # Act / Assert
        with pytest.raises(NetworkError) as exc_info:
            await executor.execute("GET", URL)
        assert exc_info.value.status == 0
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


class TestDecodeBody:
    def test_empty(self):
        assert decode_body("") == ""

    def test_json(self):
        assert decode_body('{"a": [1]}') == {"a": [1]}
