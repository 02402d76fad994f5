"""
Cached JWKS state.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import NamedTuple, Optional

import httpx

from .codec import KeySet


NEVER = datetime.min.replace(tzinfo=timezone.utc)


class KeySetSnapshot(NamedTuple):
    """Everything loaded by the last refresh, for debugging."""

    key_set: Optional[KeySet]
    headers: Optional[httpx.Headers]
    raw_body: Optional[bytes]
    error: Optional[Exception]


class RefreshResult(NamedTuple):
    """Outcome of a refresh call.

    ``refreshed`` is True whenever a fetch was attempted; ``error`` is None
    only when that attempt succeeded.
    """

    refreshed: bool
    error: Optional[Exception] = None


@dataclass(frozen=True)
class CacheState:
    """Immutable snapshot of the cache. Replaced wholesale on every refresh."""

    key_set: Optional[KeySet] = None
    raw_body: Optional[bytes] = None
    headers: Optional[httpx.Headers] = None
    error: Optional[Exception] = None
    expires_after: datetime = NEVER
    stale_since: Optional[datetime] = None
    fetched_at: Optional[datetime] = None

    def is_due(self, now: datetime) -> bool:
        return now > self.expires_after

    def stale_grace_elapsed(self, now: datetime, keep_stale_keys: timedelta) -> bool:
        if self.stale_since is None:
            return False
        return self.stale_since + keep_stale_keys < now

    def succeeded(
        self,
        now: datetime,
        key_set: KeySet,
        raw_body: bytes,
        headers: Optional[httpx.Headers],
        expires_after: datetime,
    ) -> "CacheState":
        return CacheState(
            key_set=key_set,
            raw_body=raw_body,
            headers=headers,
            error=None,
            expires_after=expires_after,
            stale_since=None,
            fetched_at=now,
        )

    def failed(
        self,
        now: datetime,
        error: Exception,
        raw_body: Optional[bytes],
        headers: Optional[httpx.Headers],
        expires_after: datetime,
    ) -> "CacheState":
        # stale_since marks the first of consecutive failures
        stale_since = self.stale_since if self.error is not None else now
        return replace(
            self,
            raw_body=raw_body,
            headers=headers,
            error=error,
            expires_after=expires_after,
            stale_since=stale_since,
        )

    def snapshot(self) -> KeySetSnapshot:
        return KeySetSnapshot(self.key_set, self.headers, self.raw_body, self.error)
