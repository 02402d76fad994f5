"""
Polling directory watcher.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional, Union

from shared.errors import KeyLoadError
from shared.logging import get_logger

from ..jwks.scheduler import sleep_until_stopped
from .metadata import FileMetadata, fingerprint, scan_directory


logger = get_logger("keyfiles.watcher")


@dataclass(frozen=True)
class WatcherEvent:
    """A change in the watched directory, or a new scan error."""

    files: List[FileMetadata] = field(default_factory=list)
    skipped: Dict[str, str] = field(default_factory=dict)
    error: Optional[KeyLoadError] = None


async def watch_directory(
    directory: Union[str, Path],
    interval: float,
    stop: Optional[asyncio.Event] = None,
) -> AsyncIterator[WatcherEvent]:
    """Scan ``directory`` every ``interval`` seconds and yield on changes.

    The first scan always yields. Afterwards an event is yielded when the
    listing fingerprint changes, or when a scan fails with an error that
    differs from the previous one. Ends when ``stop`` is set.
    """
    if interval <= 0:
        raise ValueError("watcher can not be started with interval <= 0")

    stop = stop or asyncio.Event()
    old_hash: Optional[bytes] = None
    old_error: Optional[str] = None

    logger.debug("watcher started", dir=str(directory), interval=interval)
    try:
        while not stop.is_set():
            try:
                files, skipped = await asyncio.to_thread(scan_directory, directory)
            except KeyLoadError as exc:
                if str(exc) != old_error:
                    old_error = str(exc)
                    old_hash = None
                    yield WatcherEvent(error=exc)
            else:
                old_error = None
                new_hash = fingerprint(files)
                if new_hash != old_hash:
                    old_hash = new_hash
                    yield WatcherEvent(files=files, skipped=skipped)

            if await sleep_until_stopped(stop, interval):
                return
    finally:
        logger.debug("watcher exited", dir=str(directory))
