"""
Key files package.

Polls a directory of signing keys, fingerprints its listing (name, size and
modification time of every file) and reloads the keys when it changes.
"""

from .loader import DirectoryKeyLoader, key_id_for
from .metadata import FileMetadata, fingerprint, scan_directory
from .watcher import WatcherEvent, watch_directory

__all__ = [
    "DirectoryKeyLoader",
    "FileMetadata",
    "WatcherEvent",
    "fingerprint",
    "key_id_for",
    "scan_directory",
    "watch_directory",
]
