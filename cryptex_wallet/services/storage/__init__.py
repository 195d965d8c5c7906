"""
Storage Services Package

Provides the abstract store interface and its two implementations:
an in-memory dict and a JSON file on disk.
"""

from cryptex_wallet.services.storage.interface import (
    ConcurrencyConflictError,
    CorruptDataError,
    CorruptSnapshotError,
    KeyValueStore,
    StorageError,
)
from cryptex_wallet.services.storage.json_file import JsonFileStore
from cryptex_wallet.services.storage.memory import InMemoryStore

__all__ = [
    # Interface
    "KeyValueStore",
    # Exceptions
    "ConcurrencyConflictError",
    "CorruptDataError",
    "CorruptSnapshotError",
    "StorageError",
    # Implementations
    "InMemoryStore",
    "JsonFileStore",
]
