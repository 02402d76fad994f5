"""
Shared fixtures for the JWKS cache tests.
"""

import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Union

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from jose import jwk as jose_jwk

from shared.config import JWKSConfig
from service_jwks.app.jwks import FetchResponse


JWKS_URL = "https://idp.example.com/realms/test/protocol/openid-connect/certs"


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


class StubTransport:
    """Transport returning scripted responses; the last one repeats."""

    def __init__(self, responses: Optional[List[Union[FetchResponse, Exception]]] = None):
        self.responses: List[Union[FetchResponse, Exception]] = list(responses or [])
        self.calls: List[str] = []
        self.closed = False

    def queue(self, *items: Union[FetchResponse, Exception]) -> None:
        self.responses.extend(items)

    async def fetch(self, url: str) -> FetchResponse:
        self.calls.append(url)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item

    async def aclose(self) -> None:
        self.closed = True


class BlockingTransport:
    """Transport whose fetch waits until released."""

    def __init__(self, response: FetchResponse):
        self.response = response
        self.release = asyncio.Event()
        self.started = asyncio.Event()
        self.calls = 0
        self.cancelled = False

    async def fetch(self, url: str) -> FetchResponse:
        self.calls += 1
        self.started.set()
        try:
            await self.release.wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return self.response

    async def aclose(self) -> None:
        return None


def make_rsa_jwk(kid: str) -> Dict[str, Any]:
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    pem = private_key.public_key().public_bytes(
        serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo
    )
    data = jose_jwk.construct(pem, "RS256").to_dict()
    data.update({"kid": kid, "use": "sig"})
    return data


def make_ec_jwk(kid: str) -> Dict[str, Any]:
    private_key = ec.generate_private_key(ec.SECP256R1())
    pem = private_key.public_key().public_bytes(
        serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo
    )
    data = jose_jwk.construct(pem, "ES256").to_dict()
    data.pop("alg", None)
    data.update({"kid": kid, "use": "sig"})
    return data


def make_ec_private_pem() -> bytes:
    private_key = ec.generate_private_key(ec.SECP256R1())
    return private_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.TraditionalOpenSSL,
        serialization.NoEncryption(),
    )


def jwks_response(
    keys: List[Dict[str, Any]],
    headers: Optional[Dict[str, str]] = None,
    status_code: int = 200,
) -> FetchResponse:
    return FetchResponse(
        status_code=status_code,
        body=json.dumps({"keys": keys}).encode(),
        headers=httpx.Headers(headers or {}),
    )


@pytest.fixture(scope="session")
def rsa_jwk() -> Dict[str, Any]:
    """RSA public JWK with kid 'rsa-key-1'."""
    return make_rsa_jwk("rsa-key-1")


@pytest.fixture(scope="session")
def rotated_rsa_jwk() -> Dict[str, Any]:
    """RSA public JWK with kid 'rsa-key-2'."""
    return make_rsa_jwk("rsa-key-2")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config() -> JWKSConfig:
    return JWKSConfig(
        url=JWKS_URL,
        cache_min=timedelta(seconds=60),
        cache_max=timedelta(hours=1),
        cache_errors=timedelta(seconds=30),
        keep_stale_keys=timedelta(minutes=5),
        refresh_interval=0.01,
    )
