"""
In-Memory Storage Implementation

A dict behind the KeyValueStore interface. One instance passed to several
engines behaves like several browser tabs sharing the same localStorage.
"""

from typing import Mapping, Optional

from cryptex_wallet.services.storage.interface import KeyValueStore


class InMemoryStore(KeyValueStore):
    """Process-local store, mainly for tests and embedding."""

    def __init__(self, initial: Optional[Mapping[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def set_many(self, values: Mapping[str, str]) -> None:
        self._data.update(values)

    def keys(self) -> list[str]:
        return sorted(self._data)
