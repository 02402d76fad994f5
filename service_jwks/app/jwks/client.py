"""
JWKS client that keeps a remote key set cached in memory.
"""

from __future__ import annotations

import asyncio
import threading
from datetime import datetime, timezone
from typing import Callable, NamedTuple, Optional

import httpx

from shared.config import JWKSConfig
from shared.errors import (
    ConfigInvalidError,
    FetchError,
    KeyNotFoundError,
    KeySetParseError,
    KeySetUnavailableError,
    KeysNotFetchedError,
    TransportError,
    UnexpectedStatusError,
)
from shared.logging import get_logger, set_endpoint

from .codec import JoseKeySetCodec, KeySet, KeySetCodec
from .expiry import compute_expiry
from .scheduler import BackgroundRefresh, run_background, run_foreground
from .state import CacheState, KeySetSnapshot, RefreshResult
from .transport import HttpxTransport, Transport


Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _Attempt(NamedTuple):
    key_set: Optional[KeySet]
    raw_body: Optional[bytes]
    headers: Optional[httpx.Headers]
    error: Optional[FetchError]


class JWKSClient:
    """Client for fetching and caching a JWKS.

    The refresh schedule follows the Cache-Control, Age and Expires response
    headers, bounded by ``cache_min`` and ``cache_max``. After a failed fetch
    the last good key set keeps being served for ``keep_stale_keys``.

    Readers (``get_key_set``, ``get_all``, ``state``) are safe to call from any
    thread. ``refresh`` is a coroutine; at most one refresh runs at a time and
    the network call happens outside the state lock, so readers never wait on
    a slow endpoint.
    """

    def __init__(
        self,
        config: JWKSConfig,
        transport: Optional[Transport] = None,
        codec: Optional[KeySetCodec] = None,
        clock: Optional[Clock] = None,
    ):
        if not config.url:
            raise ConfigInvalidError("validating config: URL is required", {"field": "url"})

        self.config = config
        self.logger = get_logger("jwks.client")

        self._owns_transport = transport is None
        self._transport: Transport = transport or HttpxTransport(timeout=config.http_timeout)
        self._codec: KeySetCodec = codec or JoseKeySetCodec()
        self._clock: Clock = clock or utcnow

        self._state = CacheState()
        self._state_lock = threading.Lock()
        self._refresh_lock = asyncio.Lock()

    async def __aenter__(self) -> "JWKSClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the transport if this client created it."""
        if self._owns_transport:
            await self._transport.aclose()

    @property
    def state(self) -> CacheState:
        """Current cache state."""
        with self._state_lock:
            return self._state

    def get_key_set(self) -> KeySet:
        """Return the loaded key set.

        Raises KeySetUnavailableError when the last refresh failed and either
        no key set was ever loaded or the stale grace window has passed, and
        KeysNotFetchedError before the first fetch.
        """
        state = self.state

        if state.error is not None and (
            state.key_set is None
            or state.stale_grace_elapsed(self._clock(), self.config.keep_stale_keys)
        ):
            raise KeySetUnavailableError(state.error) from state.error

        if state.key_set is None:
            raise KeysNotFetchedError()

        return state.key_set

    def get_all(self) -> KeySetSnapshot:
        """Return all loaded data, useful for debugging."""
        return self.state.snapshot()

    def get_key(self, kid: str):
        """Return the key with the given key id from the served key set."""
        entry = self.get_key_set().get_entry(kid)
        if entry is None:
            raise KeyNotFoundError(kid)
        return entry.key

    async def refresh(self, force: bool = False) -> RefreshResult:
        """Fetch the JWKS and update the cache when it is due, or when forced."""
        if not force and not self.state.is_due(self._clock()):
            return RefreshResult(refreshed=False)

        async with self._refresh_lock:
            # another refresh may have completed while waiting for the lock
            if not force and not self.state.is_due(self._clock()):
                return RefreshResult(refreshed=False)

            set_endpoint(self.config.url)
            attempt = await self._fetch()

            now = self._clock()
            previous = self.state
            decision = compute_expiry(
                now, attempt.headers, attempt.error, previous.expires_after, self.config
            )

            if attempt.error is None:
                state = previous.succeeded(
                    now, attempt.key_set, attempt.raw_body, attempt.headers, decision.expires_after
                )
            else:
                state = previous.failed(
                    now, attempt.error, attempt.raw_body, attempt.headers, decision.expires_after
                )

            with self._state_lock:
                self._state = state

        if attempt.error is None:
            self.logger.debug(
                "JWKS fetched",
                keys_count=len(state.key_set),
                expires_after=state.expires_after.isoformat(),
            )
        else:
            self.logger.debug(
                "JWKS fetch failed",
                error=str(attempt.error),
                stale_since=state.stale_since.isoformat() if state.stale_since else None,
            )

        return RefreshResult(refreshed=True, error=attempt.error)

    async def _fetch(self) -> _Attempt:
        """Perform a GET request and parse the JWK set."""
        try:
            response = await self._transport.fetch(self.config.url)
        except FetchError as exc:
            return _Attempt(None, None, None, exc)
        except Exception as exc:
            error = TransportError(f"performing request: {exc}", {"url": self.config.url})
            error.__cause__ = exc
            return _Attempt(None, None, None, error)

        if response.status_code != 200:
            return _Attempt(
                None,
                response.body,
                response.headers,
                UnexpectedStatusError(response.status_code, response.body),
            )

        try:
            key_set = self._codec.parse(response.body)
        except FetchError as exc:
            return _Attempt(None, response.body, response.headers, exc)
        except Exception as exc:
            error = KeySetParseError(f"parsing JWKS: {exc}")
            error.__cause__ = exc
            return _Attempt(None, response.body, response.headers, error)

        return _Attempt(key_set, response.body, response.headers, None)

    async def warmup(self) -> None:
        """Eagerly load the JWKS so the first reader does not find an empty cache.

        Raises the fetch error when ``exit_on_error`` is set, logs it otherwise.
        """
        result = await self.refresh(force=True)
        if result.error is None:
            self.logger.info("JWKS refreshed", keys_count=len(self.state.key_set))
            return

        if self.config.exit_on_error:
            raise result.error

        self.logger.warning("JWKS warmup failed", error=str(result.error))

    async def run_foreground(self, stop: Optional[asyncio.Event] = None) -> None:
        """Blocking refresh loop, see scheduler.run_foreground."""
        await run_foreground(self, stop)

    def run_background(self, schedule: Optional[BackgroundRefresh] = None) -> asyncio.Task:
        """Start the detached refresh task, see scheduler.run_background."""
        schedule = schedule or BackgroundRefresh(interval=self.config.refresh_interval)
        return run_background(self, schedule)
