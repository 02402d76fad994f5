"""
JWK Set document parsing.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Protocol

from jose import jwk
from jose.backends.base import Key
from jose.exceptions import JWKError

from shared.errors import KeySetParseError
from shared.logging import get_logger


_EC_CURVE_ALGORITHMS = {
    "P-256": "ES256",
    "P-384": "ES384",
    "P-521": "ES512",
}


@dataclass(frozen=True)
class KeyEntry:
    """A single key of a key set."""

    kid: Optional[str]
    key: Key
    jwk: Dict[str, Any] = field(default_factory=dict)

    @property
    def algorithm(self) -> Optional[str]:
        return self.jwk.get("alg")

    @property
    def use(self) -> Optional[str]:
        return self.jwk.get("use")


class KeySet:
    """Ordered collection of keys, indexed by key id."""

    def __init__(self, entries: Optional[List[KeyEntry]] = None):
        self._entries: List[KeyEntry] = []
        self._by_kid: Dict[str, KeyEntry] = {}
        for entry in entries or []:
            self.add(entry)

    def add(self, entry: KeyEntry) -> bool:
        """Add a key. Returns False when a key with the same kid is already present."""
        if entry.kid is not None:
            if entry.kid in self._by_kid:
                return False
            self._by_kid[entry.kid] = entry
        self._entries.append(entry)
        return True

    def get(self, kid: str) -> Optional[Key]:
        entry = self._by_kid.get(kid)
        return entry.key if entry else None

    def get_entry(self, kid: str) -> Optional[KeyEntry]:
        return self._by_kid.get(kid)

    @property
    def kids(self) -> List[str]:
        return [entry.kid for entry in self._entries if entry.kid is not None]

    def to_dict(self) -> Dict[str, Any]:
        """Return the key set as a JWKS document."""
        return {"keys": [dict(entry.jwk) for entry in self._entries]}

    def __contains__(self, kid: object) -> bool:
        return kid in self._by_kid

    def __iter__(self) -> Iterator[KeyEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"KeySet(kids={self.kids!r})"


class KeySetCodec(Protocol):
    """Turns a fetched document into a key set."""

    def parse(self, body: bytes) -> KeySet:
        ...


def default_algorithm(jwk_data: Dict[str, Any]) -> Optional[str]:
    """Pick a signing algorithm for a JWK that does not declare one."""
    kty = jwk_data.get("kty")
    if kty == "RSA":
        return "RS256"
    if kty == "EC":
        return _EC_CURVE_ALGORITHMS.get(jwk_data.get("crv", ""))
    if kty == "oct":
        return "HS256"
    return None


class JoseKeySetCodec:
    """Key set codec backed by python-jose."""

    def __init__(self):
        self.logger = get_logger("jwks.codec")

    def parse(self, body: bytes) -> KeySet:
        try:
            document = json.loads(body)
        except ValueError as exc:
            raise KeySetParseError(f"unmarshalling JSON: {exc}") from exc

        if not isinstance(document, dict):
            raise KeySetParseError("JWKS document is not a JSON object")

        keys = document.get("keys")
        if not isinstance(keys, list):
            raise KeySetParseError("JWKS response missing 'keys' array")

        key_set = KeySet()
        for index, jwk_data in enumerate(keys):
            if not isinstance(jwk_data, dict):
                raise KeySetParseError(f"key {index} is not a JSON object", {"index": index})

            kid = jwk_data.get("kid")
            algorithm = jwk_data.get("alg") or default_algorithm(jwk_data)
            try:
                key = jwk.construct(jwk_data, algorithm)
            except (JWKError, ValueError, TypeError, KeyError) as exc:
                raise KeySetParseError(
                    f"parsing key {index}: {exc}",
                    {"index": index, "kid": kid},
                ) from exc

            if not key_set.add(KeyEntry(kid=kid, key=key, jwk=jwk_data)):
                self.logger.warning("Duplicate key id in JWKS, keeping the first", kid=kid)

        return key_set
