"""
JWKS client package.

Contains logic for retrieving and caching JSON Web Key Sets (JWKS) used
to verify JWT signatures.

Key points:
- Honor Cache-Control/Age/Expires, bounded by cache_min and cache_max.
- Serve the last good key set for keep_stale_keys after a failed fetch.
- Prefer kid (key id) selection when multiple keys are present.
"""

from .client import JWKSClient
from .codec import JoseKeySetCodec, KeyEntry, KeySet, KeySetCodec
from .expiry import ExpiryDecision, compute_expiry, header_expiry
from .scheduler import BackgroundRefresh, run_background, run_foreground
from .state import CacheState, KeySetSnapshot, RefreshResult
from .transport import FetchResponse, HttpxTransport, Transport

__all__ = [
    "BackgroundRefresh",
    "CacheState",
    "ExpiryDecision",
    "FetchResponse",
    "HttpxTransport",
    "JWKSClient",
    "JoseKeySetCodec",
    "KeyEntry",
    "KeySet",
    "KeySetCodec",
    "KeySetSnapshot",
    "RefreshResult",
    "Transport",
    "compute_expiry",
    "header_expiry",
    "run_background",
    "run_foreground",
]
