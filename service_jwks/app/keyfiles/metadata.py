"""
Directory listing metadata and change fingerprints.
"""

from __future__ import annotations

import hashlib
import stat
import struct
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

from shared.errors import KeyLoadError


_RECORD_MARK = 0xDEADBEEF


@dataclass(frozen=True)
class FileMetadata:
    """Name, size and modification time of a key file."""

    name: str
    size: int
    mtime_ns: int

    @property
    def modified(self) -> datetime:
        return datetime.fromtimestamp(self.mtime_ns / 1e9, tz=timezone.utc)


def skip_reason(name: str, mode: int) -> Optional[str]:
    """Return why a directory entry is not a key file, or None."""
    if stat.S_ISDIR(mode):
        return "directory"
    if name.startswith("."):
        return "hidden file"
    if name.endswith(".ignore"):
        return "ignored file"
    return None


def scan_directory(directory: Union[str, Path]) -> Tuple[List[FileMetadata], Dict[str, str]]:
    """Return the metadata of all key files in a directory, sorted by name.

    Directories, hidden files and ``*.ignore`` files are skipped and reported
    with the reason. Symlinks report the metadata of their target.
    """
    path = Path(directory)
    try:
        entries = sorted(path.iterdir(), key=lambda entry: entry.name)
    except OSError as exc:
        raise KeyLoadError(f"read dir: {exc}", {"dir": str(path)}) from exc

    files: List[FileMetadata] = []
    skipped: Dict[str, str] = {}

    for entry in entries:
        try:
            info = entry.stat()
        except OSError as exc:
            raise KeyLoadError(f"stat: {exc}", {"dir": str(path), "file": entry.name}) from exc

        reason = skip_reason(entry.name, info.st_mode)
        if reason:
            skipped[entry.name] = reason
            continue

        files.append(FileMetadata(name=entry.name, size=info.st_size, mtime_ns=info.st_mtime_ns))

    return files, skipped


def fingerprint(files: Sequence[FileMetadata]) -> bytes:
    """Hash a directory listing; any added, removed, resized or touched file changes it."""
    digest = hashlib.blake2b(digest_size=16)
    for index, meta in enumerate(files):
        digest.update(struct.pack("<QQqq", _RECORD_MARK, index, meta.size, meta.mtime_ns // 1_000_000))
        digest.update(meta.name.encode("utf-8"))
    return digest.digest()
