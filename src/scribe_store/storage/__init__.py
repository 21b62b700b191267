"""Storage layer for the Scribe note store."""

from scribe_store.storage.base import StorageBackend
from scribe_store.storage.file_backend import FileTreeBackend
from scribe_store.storage.keyvalue_backend import KeyValueBackend, KeyValueStore
from scribe_store.storage.sql_backend import RelationalBackend

__all__ = [
    "StorageBackend",
    "KeyValueBackend",
    "KeyValueStore",
    "FileTreeBackend",
    "RelationalBackend",
]
