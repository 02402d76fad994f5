"""
Tests for the httpx transport.
"""

import json
from datetime import timedelta

import httpx
import pytest

from shared.errors import BodyReadError, TransportError
from service_jwks.app.jwks import HttpxTransport, JWKSClient

from conftest import JWKS_URL


class BrokenStream(httpx.AsyncByteStream):
    """Response stream that fails mid-body."""

    async def __aiter__(self):
        yield b'{"keys": ['
        raise httpx.ReadError("connection reset by peer")


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestHttpxTransport:
    """Test cases for HttpxTransport."""

    @pytest.mark.asyncio
    async def test_fetch_returns_status_body_and_headers(self):
        """Any HTTP answer is returned as is."""
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "GET"
            return httpx.Response(404, content=b"not here", headers={"Cache-Control": "max-age=10"})

        transport = HttpxTransport(client=mock_client(handler))

        response = await transport.fetch(JWKS_URL)

        assert response.status_code == 404
        assert response.body == b"not here"
        assert response.headers["cache-control"] == "max-age=10"

    @pytest.mark.asyncio
    async def test_connection_error(self):
        """Network failures become TransportError."""
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        transport = HttpxTransport(client=mock_client(handler))

        with pytest.raises(TransportError, match="performing request") as exc_info:
            await transport.fetch(JWKS_URL)
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_broken_body(self):
        """Failures while reading the body become BodyReadError."""
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, stream=BrokenStream())

        transport = HttpxTransport(client=mock_client(handler))

        with pytest.raises(BodyReadError, match="reading response body") as exc_info:
            await transport.fetch(JWKS_URL)
        assert exc_info.value.details["status_code"] == 200

    @pytest.mark.asyncio
    async def test_invalid_url(self):
        """URLs httpx can not request become TransportError."""
        transport = HttpxTransport()
        try:
            with pytest.raises(TransportError):
                await transport.fetch("ftp://idp.example.com/certs")
        finally:
            await transport.aclose()

    @pytest.mark.asyncio
    async def test_injected_client_left_open(self):
        client = mock_client(lambda request: httpx.Response(200))
        transport = HttpxTransport(client=client)

        await transport.aclose()

        assert not client.is_closed
        await client.aclose()

    @pytest.mark.asyncio
    async def test_owned_client_closed(self):
        transport = HttpxTransport()

        await transport.aclose()

        assert transport._client.is_closed


class TestClientOverHttpx:
    """End-to-end refreshes through a mocked HTTP endpoint."""

    @pytest.mark.asyncio
    async def test_cache_headers_drive_expiry(self, config, clock, rsa_jwk):
        """max-age=120 with Age=20 schedules the next refresh 100s later."""
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                content=json.dumps({"keys": [rsa_jwk]}).encode(),
                headers={"Cache-Control": "public, max-age=120", "Age": "20"},
            )

        client = JWKSClient(
            config,
            transport=HttpxTransport(client=mock_client(handler)),
            clock=clock,
        )

        result = await client.refresh()

        assert result.error is None
        assert client.state.expires_after == clock() + timedelta(seconds=100)
        assert client.get_key_set().kids == ["rsa-key-1"]

    @pytest.mark.asyncio
    async def test_server_error_is_captured(self, config, clock):
        """A 500 answer is stored as UnexpectedStatus with its body."""
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, content=b"upstream down")

        client = JWKSClient(
            config,
            transport=HttpxTransport(client=mock_client(handler)),
            clock=clock,
        )

        result = await client.refresh()

        assert result.error.code == "UNEXPECTED_STATUS"
        assert client.get_all().raw_body == b"upstream down"
