"""
Unit tests for JWK Set parsing.
"""

import json

import pytest

from shared.errors import KeySetParseError
from service_jwks.app.jwks import JoseKeySetCodec, KeySet
from service_jwks.app.jwks.codec import default_algorithm

from conftest import make_ec_jwk


def encode(document) -> bytes:
    return json.dumps(document).encode()


class TestJoseKeySetCodec:
    """Test cases for JoseKeySetCodec."""

    def test_parse_keys(self, rsa_jwk, rotated_rsa_jwk):
        """Keys keep the document order and are indexed by kid."""
        key_set = JoseKeySetCodec().parse(encode({"keys": [rsa_jwk, rotated_rsa_jwk]}))

        assert key_set.kids == ["rsa-key-1", "rsa-key-2"]
        assert len(key_set) == 2
        assert "rsa-key-2" in key_set
        assert key_set.get("rsa-key-1") is not None
        assert key_set.get("missing") is None

    def test_ec_key_without_alg(self):
        """EC keys without alg get an algorithm from their curve."""
        ec_jwk = make_ec_jwk("ec-key-1")

        key_set = JoseKeySetCodec().parse(encode({"keys": [ec_jwk]}))

        entry = key_set.get_entry("ec-key-1")
        assert entry.use == "sig"
        assert entry.algorithm is None
        assert entry.key.to_dict()["crv"] == "P-256"

    def test_empty_key_set(self):
        key_set = JoseKeySetCodec().parse(b'{"keys": []}')

        assert len(key_set) == 0
        assert key_set.to_dict() == {"keys": []}

    def test_duplicate_kid_keeps_first(self, rsa_jwk, rotated_rsa_jwk):
        duplicate = dict(rotated_rsa_jwk, kid="rsa-key-1")

        key_set = JoseKeySetCodec().parse(encode({"keys": [rsa_jwk, duplicate]}))

        assert key_set.kids == ["rsa-key-1"]
        assert key_set.get_entry("rsa-key-1").jwk["n"] == rsa_jwk["n"]

    def test_to_dict_round_trips_document(self, rsa_jwk):
        key_set = JoseKeySetCodec().parse(encode({"keys": [rsa_jwk]}))

        assert key_set.to_dict() == {"keys": [rsa_jwk]}

    @pytest.mark.parametrize("body,message", [
        (b"not json", "unmarshalling JSON"),
        (b"[]", "not a JSON object"),
        (b'{"issuer": "x"}', "missing 'keys' array"),
        (b'{"keys": {}}', "missing 'keys' array"),
        (b'{"keys": ["abc"]}', "key 0 is not a JSON object"),
        (b'{"keys": [{"kty": "unknown", "kid": "k"}]}', "parsing key 0"),
    ])
    def test_invalid_documents(self, body, message):
        with pytest.raises(KeySetParseError, match=message):
            JoseKeySetCodec().parse(body)


class TestKeySet:
    """Test cases for KeySet."""

    def test_add_rejects_duplicate_kid(self, rsa_jwk):
        key_set = JoseKeySetCodec().parse(encode({"keys": [rsa_jwk]}))
        entry = key_set.get_entry("rsa-key-1")

        assert KeySet().add(entry) is True
        assert key_set.add(entry) is False

    def test_iteration(self, rsa_jwk, rotated_rsa_jwk):
        key_set = JoseKeySetCodec().parse(encode({"keys": [rsa_jwk, rotated_rsa_jwk]}))

        assert [entry.kid for entry in key_set] == ["rsa-key-1", "rsa-key-2"]


@pytest.mark.parametrize("jwk_data,expected", [
    ({"kty": "RSA"}, "RS256"),
    ({"kty": "EC", "crv": "P-256"}, "ES256"),
    ({"kty": "EC", "crv": "P-384"}, "ES384"),
    ({"kty": "EC", "crv": "P-521"}, "ES512"),
    ({"kty": "oct"}, "HS256"),
    ({"kty": "OKP"}, None),
])
def test_default_algorithm(jwk_data, expected):
    assert default_algorithm(jwk_data) == expected
