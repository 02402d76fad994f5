"""
Signing keys loaded from a watched directory.

Every file in the directory holds one PEM encoded EC private key. The key id
is the file name, without a ``.priv`` extension when present. To ignore a
file, add a ``.ignore`` extension.
"""

from __future__ import annotations

import asyncio
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple, Union

from jose import jwk
from jose.backends.base import Key
from jose.exceptions import JWKError

from shared.config import KeyDirectoryConfig
from shared.errors import ConfigInvalidError, KeyLoadError, KeysNotFetchedError
from shared.logging import get_logger, set_key_dir

from ..jwks.codec import KeyEntry, KeySet
from .metadata import scan_directory
from .watcher import watch_directory


SIGNING_ALGORITHM = "ES256"
PRIVATE_KEY_SUFFIX = ".priv"

KeysCallback = Callable[[KeySet], None]


def key_id_for(file_name: str) -> str:
    if file_name.lower().endswith(PRIVATE_KEY_SUFFIX):
        return file_name[: -len(PRIVATE_KEY_SUFFIX)]
    return file_name


class DirectoryKeyLoader:
    """Loads EC private keys from a directory and reloads them on changes."""

    def __init__(
        self,
        config: KeyDirectoryConfig,
        on_change: Optional[KeysCallback] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if not config.dir:
            raise ConfigInvalidError("key-dir is required", {"field": "dir"})

        self.config = config
        self.on_change = on_change
        self.logger = get_logger("keyfiles.loader")
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._keys: Optional[KeySet] = None
        self._loaded_at: Optional[datetime] = None
        self._lock = threading.Lock()

    def load_private_key(self, pem: bytes) -> Key:
        """Parse a PEM encoded EC private key."""
        self.logger.debug("loading jwt private key", size=len(pem))

        try:
            key = jwk.construct(pem, SIGNING_ALGORITHM)
        except (JWKError, ValueError, TypeError) as exc:
            raise KeyLoadError(f"parse EC private key: {exc}") from exc

        if key.is_public():
            raise KeyLoadError("EC private key required, got a public key")

        return key

    def load_private_key_file(self, path: Union[str, Path]) -> Key:
        try:
            pem = Path(path).read_bytes()
        except OSError as exc:
            raise KeyLoadError(f"read private key file {path}: {exc}", {"file": str(path)}) from exc

        return self.load_private_key(pem)

    def _load_keys(self, directory: Union[str, Path]) -> KeySet:
        files, skipped = scan_directory(directory)

        key_set = KeySet()
        loaded: Dict[str, str] = {}

        for meta in files:
            full_path = Path(directory) / meta.name
            try:
                key = self.load_private_key_file(full_path)
            except KeyLoadError as exc:
                raise KeyLoadError(
                    f"loading key from {full_path}: {exc.message}", {"file": str(full_path)}
                ) from exc

            kid = key_id_for(meta.name)
            jwk_data = {**key.to_dict(), "kid": kid, "use": "sig", "alg": SIGNING_ALGORITHM}

            if not key_set.add(KeyEntry(kid=kid, key=key, jwk=jwk_data)):
                self.logger.warning("key already loaded", filename=meta.name, kid=kid)

            loaded[meta.name] = kid

        if skipped:
            self.logger.info("loaded private keys", skipped=skipped, loaded=loaded)

        return key_set

    def load_keys(self) -> None:
        """Load the keys once, keeping the old keys when loading fails.

        Honors ``fail_on_error``: load errors are raised instead of logged.
        """
        try:
            keys = self._load_keys(self.config.dir)
        except KeyLoadError as exc:
            if self.config.fail_on_error:
                raise
            self.logger.error("failed to load keys", error=str(exc))
            return

        with self._lock:
            self._keys = keys
            self._loaded_at = self._clock()

        if self.on_change is not None:
            self.on_change(keys)

    def get_keys_load_time(self) -> Optional[datetime]:
        with self._lock:
            return self._loaded_at

    def get_keys(self) -> Tuple[KeySet, datetime]:
        """Return the loaded keys and when they were loaded."""
        with self._lock:
            if self._keys is None or self._loaded_at is None:
                raise KeysNotFetchedError("keys not loaded")
            return self._keys, self._loaded_at

    async def watch(self, stop: Optional[asyncio.Event] = None) -> None:
        """Reload the keys whenever the directory changes, until ``stop`` is set.

        Honors ``fail_on_error`` by raising the first scan or load error.
        """
        if not self.config.watch_on:
            self.logger.info("directory watching disabled", dir=self.config.dir)
            return

        set_key_dir(self.config.dir)
        self.logger.info(
            "started watching directory for changes",
            dir=self.config.dir,
            interval=self.config.watch_interval,
        )
        try:
            async for event in watch_directory(self.config.dir, self.config.watch_interval, stop):
                if event.error is not None:
                    if self.config.fail_on_error:
                        raise event.error
                    self.logger.error("watcher event error", error=str(event.error))
                    continue

                self.load_keys()
        finally:
            self.logger.info("stopped watching directory for changes", dir=self.config.dir)
