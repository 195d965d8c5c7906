"""
Abstract Storage Interface

DESIGN DECISION: The engine never touches a global store. It is handed an
object implementing KeyValueStore, which allows us to:
1. Run against an in-memory dict in tests
2. Share one store between several engine instances (several "contexts")
3. Persist to a JSON file on disk
4. Swap in a real database later without changing ledger logic

The surface mirrors what the browser wallet had in localStorage: string keys
to string values. JSON encoding of those values is the caller's concern.
"""

from abc import ABC, abstractmethod
from typing import Mapping, Optional


class KeyValueStore(ABC):
    """
    Abstract interface for the persistent store shared by wallet contexts.

    There is no locking and no transaction isolation: last writer wins.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """
        Read a value.

        Args:
            key: Store key

        Returns:
            The stored string, or None if the key is absent

        Raises:
            StorageError: If the backend cannot be read
        """
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """
        Write a value, replacing any previous one.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a key. Removing an absent key is not an error."""
        pass

    def set_many(self, values: Mapping[str, str]) -> None:
        """
        Write several keys.

        Backends that can write them in one step should override this;
        the default writes them one after another.
        """
        for key, value in values.items():
            self.set(key, value)


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class CorruptDataError(StorageError):
    """A stored value could not be decoded into the expected shape."""
    pass


class ConcurrencyConflictError(StorageError):
    """Another context appended to the log since it was last read."""

    def __init__(self, expected_version: int, actual_version: int):
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Transaction log changed underneath this operation "
            f"(expected version {expected_version}, found {actual_version})"
        )


class CorruptSnapshotError(StorageError):
    """
    The cached wallet snapshot is missing or malformed.

    Raised and caught inside the snapshot cache; it triggers a rebuild
    from the log and never reaches callers.
    """
    pass
