"""
Refresh drivers for a JWKSClient.

Two interchangeable drivers share the client's ``refresh`` call:

- run_foreground: a blocking loop meant to be the caller's main refresh
  activity. It returns when the stop event is set and raises the fetch
  error when ``exit_on_error`` is configured.
- run_background: a detached asyncio task that logs errors, notifies an
  optional callback after every refresh attempt and signals completion.

Pick one driver per client.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, TypeVar

from shared.errors import FetchError, JWKSException
from shared.logging import get_logger

from .codec import KeySet
from .state import RefreshResult

if TYPE_CHECKING:  # pragma: no cover
    from .client import JWKSClient


RefreshCallback = Callable[[Optional[KeySet], Optional[Exception]], None]

T = TypeVar("T")

logger = get_logger("jwks.scheduler")


@dataclass(frozen=True)
class BackgroundRefresh:
    """Configuration of the background refresh task."""

    interval: float
    # called with the accessor's view after every refresh attempt
    on_change: Optional[RefreshCallback] = None
    # called once when the task exits, whatever the reason
    on_done: Optional[Callable[[], None]] = None

    def __post_init__(self):
        if self.interval <= 0:
            raise ValueError("auto refresh interval must be > 0")


async def sleep_until_stopped(stop: asyncio.Event, timeout: float) -> bool:
    """Sleep for ``timeout`` seconds. Returns True early if ``stop`` gets set."""
    try:
        await asyncio.wait_for(stop.wait(), timeout=timeout)
    except asyncio.TimeoutError:
        return False
    return True


async def _run_until_stopped(work: Awaitable[T], stop: asyncio.Event) -> tuple[bool, Optional[T]]:
    """Run ``work`` unless ``stop`` is set first, in which case ``work`` is cancelled."""
    work_task = asyncio.ensure_future(work)
    stop_task = asyncio.ensure_future(stop.wait())
    try:
        await asyncio.wait({work_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        pending = [task for task in (work_task, stop_task) if not task.done()]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    if work_task.cancelled():
        return False, None
    return True, work_task.result()


async def refresh_once(client: "JWKSClient") -> RefreshResult:
    """Refresh if due. Raises the fetch error only when the client must stop on errors."""
    result = await client.refresh(False)

    if result.error is not None:
        if client.config.exit_on_error:
            raise result.error

        logger.error(
            "failed to refresh JWKS",
            error=str(result.error),
            code=getattr(result.error, "code", None),
        )
    elif result.refreshed:
        logger.info("JWKS refreshed")

    return result


async def run_foreground(client: "JWKSClient", stop: Optional[asyncio.Event] = None) -> None:
    """Refresh immediately, then every ``refresh_interval`` seconds until stopped.

    Honors ``exit_on_error`` by raising the fetch error. Setting ``stop``
    aborts an in-flight fetch and returns normally.
    """
    stop = stop or asyncio.Event()
    interval = client.config.refresh_interval

    logger.info("refresher started", interval=interval)
    try:
        while not stop.is_set():
            completed, _ = await _run_until_stopped(refresh_once(client), stop)
            if not completed:
                return

            if await sleep_until_stopped(stop, interval):
                return
    finally:
        logger.info("refresher stopped")


def _notify(client: "JWKSClient", callback: RefreshCallback) -> None:
    key_set: Optional[KeySet] = None
    error: Optional[Exception] = None
    try:
        key_set = client.get_key_set()
    except JWKSException as exc:
        logger.error("error getting key set", error=str(exc))
        error = exc

    try:
        callback(key_set, error)
    except Exception as exc:
        logger.error("auto refresh callback failed", error=str(exc), exc_info=True)


async def _auto_refresh(client: "JWKSClient", schedule: BackgroundRefresh) -> Optional[Exception]:
    logger.info("starting auto refresh", interval=schedule.interval)
    try:
        while True:
            try:
                result = await refresh_once(client)
            except FetchError as exc:
                logger.error("error refreshing JWKS, stopping auto refresh", error=str(exc))
                return exc

            if result.refreshed and schedule.on_change is not None:
                _notify(client, schedule.on_change)

            await asyncio.sleep(schedule.interval)
    finally:
        if schedule.on_done is not None:
            schedule.on_done()
        logger.info("auto refresh stopped")


def run_background(client: "JWKSClient", schedule: BackgroundRefresh) -> "asyncio.Task[Any]":
    """Start the auto refresh task on the running loop.

    Cancel the returned task to stop it. With ``exit_on_error`` the task
    ends on the first failed refresh and its result is that error.
    """
    return asyncio.get_running_loop().create_task(
        _auto_refresh(client, schedule), name="jwks-auto-refresh"
    )
