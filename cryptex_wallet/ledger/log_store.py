"""
Transaction Log Store

The append-only ledger. Records are persisted most-recent-first under one
store key, next to a version counter that every successful append bumps.

Existing entries are kept as the raw dicts that were read, so an append never
re-serializes (and so never rewrites) a historical record.
"""

import json
from typing import Optional

import structlog
from pydantic import ValidationError

from cryptex_wallet.config import StorageSettings, get_settings
from cryptex_wallet.models.transaction import TransactionRecord
from cryptex_wallet.services.storage.interface import (
    ConcurrencyConflictError,
    CorruptDataError,
    KeyValueStore,
)


logger = structlog.get_logger(__name__)


class TransactionLogStore:
    """
    Ordered, id-unique list of TransactionRecord.

    append() is idempotent on id: a second append with a known id is a
    silent no-op.
    """

    def __init__(
        self,
        store: KeyValueStore,
        settings: Optional[StorageSettings] = None,
    ):
        self._store = store
        self._settings = settings or get_settings().storage

    def _load_raw(self) -> list[dict]:
        raw = self._store.get(self._settings.transactions_key)
        if raw is None or not raw.strip():
            return []
        try:
            entries = json.loads(raw)
        except json.JSONDecodeError as e:
            raise CorruptDataError(f"Transaction log is not valid JSON: {e}")
        if not isinstance(entries, list):
            raise CorruptDataError("Transaction log is not a list")
        for position, entry in enumerate(entries):
            if not isinstance(entry, dict):
                raise CorruptDataError(
                    f"Transaction log entry {position} is not an object: {entry!r}"
                )
        return entries

    @staticmethod
    def _parse(entry: dict) -> TransactionRecord:
        try:
            return TransactionRecord.model_validate(entry)
        except ValidationError as e:
            raise CorruptDataError(
                f"Malformed transaction {entry.get('id', '<no id>')!r}: {e}"
            )

    def version(self) -> int:
        """Optimistic-concurrency token; 0 for a log never written."""
        raw = self._store.get(self._settings.version_key)
        if raw is None:
            return 0
        try:
            return int(json.loads(raw))
        except (ValueError, TypeError):
            raise CorruptDataError(f"Transaction log version is not an integer: {raw!r}")

    def list(self) -> list[TransactionRecord]:
        """All records, most recent first."""
        return [self._parse(entry) for entry in self._load_raw()]

    def get(self, transaction_id: str) -> Optional[TransactionRecord]:
        for entry in self._load_raw():
            if entry.get("id") == transaction_id:
                return self._parse(entry)
        return None

    def contains(self, transaction_id: str) -> bool:
        return any(entry.get("id") == transaction_id for entry in self._load_raw())

    def append(
        self,
        record: TransactionRecord,
        expected_version: Optional[int] = None,
    ) -> bool:
        """
        Insert a record at the front of the log.

        Args:
            record: The transaction to persist
            expected_version: If given, the version the caller read its
                balances at; a different stored version means another
                context appended in between

        Returns:
            True if written, False if the id was already present

        Raises:
            ConcurrencyConflictError: Version moved since the caller read it
            StorageError: The store could not be written
        """
        entries = self._load_raw()
        if any(entry.get("id") == record.id for entry in entries):
            logger.debug("duplicate_transaction_skipped", transaction_id=record.id)
            return False

        current = self.version()
        if expected_version is not None and expected_version != current:
            raise ConcurrencyConflictError(expected_version, current)

        entries.insert(0, record.to_store_dict())
        self._store.set_many({
            self._settings.transactions_key: json.dumps(entries),
            self._settings.version_key: json.dumps(current + 1),
        })
        return True
