"""
HTTP transport used to fetch the JWKS document.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

import httpx

from shared.errors import BodyReadError, TransportError


@dataclass(frozen=True)
class FetchResponse:
    """Raw response of a JWKS fetch."""

    status_code: int
    body: bytes
    headers: httpx.Headers


class Transport(Protocol):
    """Fetches a URL. Raises TransportError or BodyReadError on failure."""

    async def fetch(self, url: str) -> FetchResponse:
        ...

    async def aclose(self) -> None:
        ...


class HttpxTransport:
    """Transport on top of httpx.AsyncClient.

    Timeouts are enforced here, not by the cache.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: float = 5.0):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def fetch(self, url: str) -> FetchResponse:
        try:
            async with self._client.stream("GET", url) as response:
                try:
                    body = await response.aread()
                except httpx.HTTPError as exc:
                    raise BodyReadError(
                        f"reading response body: {exc}",
                        {"url": url, "status_code": response.status_code},
                    ) from exc

                return FetchResponse(
                    status_code=response.status_code,
                    body=body,
                    headers=response.headers,
                )
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise TransportError(f"performing request: {exc}", {"url": url}) from exc

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this transport created it."""
        if self._owns_client:
            await self._client.aclose()
