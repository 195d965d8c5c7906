"""
Wallet Snapshot Cache

Persists the last projection of the log under the `wallet` key so reads do
not have to fold the whole history.

The cache is never the authority. The stored value carries the log version
it was projected from, {"usdt", "mwk", "version"}; a value that is missing,
malformed or projected from a different version is rebuilt from the log on
read, and recompute() rebuilds unconditionally.
"""

import json
import math
from decimal import Decimal
from typing import Optional

from cryptex_wallet.audit import AuditLogger
from cryptex_wallet.config import LedgerSettings, StorageSettings, get_settings
from cryptex_wallet.ledger.log_store import TransactionLogStore
from cryptex_wallet.ledger.projector import project
from cryptex_wallet.models.transaction import WalletSnapshot
from cryptex_wallet.services.fx_rates import FxRateProvider
from cryptex_wallet.services.storage.interface import (
    CorruptSnapshotError,
    KeyValueStore,
)


def _is_number(value) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


class WalletSnapshotCache:
    """Read-through cache of the projected wallet."""

    def __init__(
        self,
        store: KeyValueStore,
        log: TransactionLogStore,
        fx: FxRateProvider,
        ledger_settings: Optional[LedgerSettings] = None,
        storage_settings: Optional[StorageSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._log = log
        self._fx = fx
        self._ledger_settings = ledger_settings or get_settings().ledger
        self._key = (storage_settings or get_settings().storage).wallet_key
        self._audit_logger = audit_logger

    def _decode(self, raw: Optional[str], log_version: int) -> WalletSnapshot:
        """
        Parse the stored snapshot.

        Raises:
            CorruptSnapshotError: Missing, not JSON, not {usdt, mwk} numbers,
                or projected from a log version other than log_version
        """
        if raw is None:
            raise CorruptSnapshotError("No wallet snapshot stored")
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise CorruptSnapshotError(f"Wallet snapshot is not valid JSON: {e}")
        if not isinstance(data, dict):
            raise CorruptSnapshotError("Wallet snapshot is not an object")

        version = data.get("version")
        if isinstance(version, bool) or not isinstance(version, int):
            raise CorruptSnapshotError("Wallet snapshot has no log version")
        if version != log_version:
            raise CorruptSnapshotError(
                f"Wallet snapshot is stale (log version {version}, current {log_version})"
            )

        usdt, mwk = data.get("usdt"), data.get("mwk")
        if not (_is_number(usdt) and _is_number(mwk)):
            raise CorruptSnapshotError("Wallet snapshot fields are missing or not numeric")
        try:
            return WalletSnapshot(usdt=Decimal(str(usdt)), mwk=int(mwk))
        except (ValueError, OverflowError) as e:
            raise CorruptSnapshotError(f"Wallet snapshot out of range: {e}")

    def project_log(self) -> WalletSnapshot:
        """Project the current log without touching the cache."""
        return project(
            self._log.list(),
            self._fx.current_rate(),
            usdt_places=self._ledger_settings.usdt_places,
            negative_policy=self._ledger_settings.negative_balance_policy,
        )

    def read(self) -> WalletSnapshot:
        try:
            return self._decode(self._store.get(self._key), self._log.version())
        except CorruptSnapshotError as e:
            snapshot = self.recompute()
            if self._audit_logger:
                self._audit_logger.log_snapshot_rebuilt(str(e), snapshot)
            return snapshot

    def write(self, snapshot: WalletSnapshot, log_version: int) -> None:
        data = snapshot.to_store_dict()
        data["version"] = log_version
        self._store.set(self._key, json.dumps(data))

    def recompute(self) -> WalletSnapshot:
        """Rebuild from the log and persist, whatever the cache holds."""
        # Version first: an append racing the projection leaves the stored
        # version behind the log, which the next read treats as stale.
        version = self._log.version()
        snapshot = self.project_log()
        self.write(snapshot, version)
        return snapshot
