"""
Wallet Engine Orchestrator

This module ties the ledger components together and defines the four
mutating flows (deposit, withdraw, buy, sell) plus the read surface the UI
layer consumes.

Every mutating flow has the same shape:
    validate -> check PIN -> replay check -> check balance
    -> append -> recompute and persist snapshot -> notify -> return

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing is written for a rejected request (all checks precede the append)
- The log is written before the snapshot, and the snapshot is always a
  fresh projection of the log
- Every write, rejection and storage fault is audited

KNOWN CONSISTENCY GAP: the store has no locks or transactions. Two contexts
can both read the same balance and both pass a withdraw check. With
optimistic_concurrency on, the append compares the log version read before
the balance check against the stored one and raises ConcurrencyConflictError
if another context appended in between. The comparison and the write are
still separate store calls, so the window is narrowed, not closed.
"""

from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Iterator, Optional

from cryptex_wallet.audit import AuditLogger, AuditSink
from cryptex_wallet.config import (
    LedgerSettings,
    NotificationSettings,
    Settings,
    StorageSettings,
    get_settings,
)
from cryptex_wallet.ledger import TransactionLogStore, WalletSnapshotCache
from cryptex_wallet.models.events import WalletEvent, WalletEventKind
from cryptex_wallet.models.transaction import (
    Direction,
    OperationResult,
    TransactionRecord,
    TransactionType,
    WalletSnapshot,
    new_transaction_id,
)
from cryptex_wallet.services.fx_rates import FxRateProvider
from cryptex_wallet.services.notifications import NotificationBus, Subscriber
from cryptex_wallet.services.pin import PinGate
from cryptex_wallet.services.storage import (
    ConcurrencyConflictError,
    InMemoryStore,
    JsonFileStore,
    KeyValueStore,
    StorageError,
)
from cryptex_wallet.validation import (
    OperationValidator,
    WalletError,
    format_mwk,
)


class WalletEngine:
    """
    Operation gateway for one wallet context.

    Several engines may share one store (several open views of the same
    session); each sees the others' writes on its next read.
    """

    def __init__(
        self,
        store: KeyValueStore,
        ledger_settings: Optional[LedgerSettings] = None,
        storage_settings: Optional[StorageSettings] = None,
        notification_settings: Optional[NotificationSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._ledger_settings = ledger_settings or get_settings().ledger
        self._storage_settings = storage_settings or get_settings().storage
        self._audit_logger = audit_logger or AuditLogger()

        self._validator = OperationValidator(self._ledger_settings)
        self._pin_gate = PinGate(store, self._ledger_settings, self._storage_settings)
        self._fx = FxRateProvider(store, self._ledger_settings, self._storage_settings)
        self._log = TransactionLogStore(store, self._storage_settings)
        self._cache = WalletSnapshotCache(
            store,
            self._log,
            self._fx,
            self._ledger_settings,
            self._storage_settings,
            self._audit_logger,
        )
        self._bus = NotificationBus(
            store,
            notification_settings or get_settings().notifications,
            self._storage_settings,
            self._audit_logger,
        )

    # ------------------------------------------------------------------
    # Read surface
    # ------------------------------------------------------------------

    @property
    def store(self) -> KeyValueStore:
        return self._store

    @property
    def pin_gate(self) -> PinGate:
        return self._pin_gate

    @property
    def fx(self) -> FxRateProvider:
        return self._fx

    @property
    def bus(self) -> NotificationBus:
        return self._bus

    def get_wallet(self) -> WalletSnapshot:
        """Current balances; rebuilt from the log if the cache is unusable."""
        return self._cache.read()

    def recompute(self) -> WalletSnapshot:
        """Rebuild the snapshot from the log, persist it and notify."""
        snapshot = self._cache.recompute()
        self._audit_logger.log_recomputed(snapshot, len(self._log.list()))
        self._bus.publish(WalletEvent(kind=WalletEventKind.RECOMPUTED))
        return snapshot

    def list_transactions(self) -> list[TransactionRecord]:
        """Full log, most recent first."""
        return self._log.list()

    def get_transaction(self, transaction_id: str) -> Optional[TransactionRecord]:
        return self._log.get(transaction_id)

    def get_fx_rate(self) -> Decimal:
        return self._fx.current_rate()

    def has_pin(self) -> bool:
        return self._pin_gate.has_pin()

    def verify_pin(self, pin: Any) -> bool:
        return self._pin_gate.verify(pin)

    def subscribe(self, callback: Subscriber):
        """Be told when another context changes the wallet. Returns an unsubscribe function."""
        return self._bus.subscribe(callback)

    def poll_notifications(self) -> bool:
        return self._bus.poll()

    def close(self) -> None:
        self._bus.close()

    # ------------------------------------------------------------------
    # Flow helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _audited(self, operation: str, transaction_id: Optional[str]) -> Iterator[None]:
        """Audit and re-raise any rejection raised inside the block."""
        try:
            yield
        except WalletError as e:
            self._audit_logger.log_rejected(operation, e, transaction_id)
            raise

    @staticmethod
    def _clean_id(transaction_id: Optional[str]) -> Optional[str]:
        if transaction_id is None:
            return None
        cleaned = str(transaction_id).strip()
        return cleaned or None

    def _replay(self, operation: str, transaction_id: Optional[str]) -> Optional[OperationResult]:
        """Answer a repeated request from the log instead of writing again."""
        if transaction_id is None:
            return None
        existing = self._log.get(transaction_id)
        if existing is None:
            return None
        self._audit_logger.log_replayed(operation, transaction_id)
        return self._result(existing, self._cache.read(), replayed=True)

    @staticmethod
    def _result(
        record: TransactionRecord,
        wallet: WalletSnapshot,
        replayed: bool = False,
    ) -> OperationResult:
        return OperationResult(
            transaction=record,
            wallet=wallet,
            mwk_cost=record.total_mwk if record.type == TransactionType.BUY.value else None,
            mwk_gain=record.total_mwk if record.type == TransactionType.SELL.value else None,
            replayed=replayed,
        )

    def _read_for_check(self) -> tuple[int, WalletSnapshot]:
        """Log version first, then balances, so the version never runs ahead."""
        version = self._log.version()
        return version, self._cache.read()

    def _commit(
        self,
        operation: str,
        record: TransactionRecord,
        expected_version: Optional[int] = None,
    ) -> OperationResult:
        if not self._ledger_settings.optimistic_concurrency:
            expected_version = None

        try:
            appended = self._log.append(record, expected_version=expected_version)
        except ConcurrencyConflictError as e:
            self._audit_logger.log_concurrency_conflict(
                operation, record.id, e.expected_version, e.actual_version
            )
            raise
        except StorageError as e:
            self._audit_logger.log_storage_failure(operation, e, record.id)
            raise

        if not appended:
            # Same id appended by another context between replay check and write
            self._audit_logger.log_duplicate_ignored(record.id)
            existing = self._log.get(record.id) or record
            return self._result(existing, self._cache.read(), replayed=True)

        try:
            wallet = self._cache.recompute()
        except StorageError as e:
            # The entry is in the log and the stored snapshot now lags the log
            # version, so the next read rebuilds it; a retry with the same id
            # replays the entry
            self._audit_logger.log_storage_failure(operation, e, record.id)
            raise

        self._audit_logger.log_transaction_appended(record, wallet)
        self._bus.publish(WalletEvent(kind=WalletEventKind.WALLET_UPDATED, transaction=record))
        return self._result(record, wallet)

    # ------------------------------------------------------------------
    # Mutating operations
    # ------------------------------------------------------------------

    def deposit(
        self,
        amount: Any,
        method: Any,
        reference: Any,
        pin: Any = None,
        transaction_id: Optional[str] = None,
        note: str = "",
    ) -> OperationResult:
        """
        Credit MWK from an external payment method.

        Raises:
            InvalidAmountError, MissingMethodError, MissingReferenceError,
            InvalidPinError, StorageError
        """
        transaction_id = self._clean_id(transaction_id)
        with self._audited("deposit", transaction_id):
            value = self._validator.validate_deposit(amount, method, reference)
            self._pin_gate.require(pin)

        replay = self._replay("deposit", transaction_id)
        if replay:
            return replay

        record = TransactionRecord(
            id=transaction_id or new_transaction_id(),
            type=TransactionType.DEPOSIT,
            status="completed",
            direction=Direction.IN,
            amount=Decimal(value),
            total_mwk=value,
            payment_method=str(method).strip(),
            reference=str(reference).strip(),
            note=note,
        )
        return self._commit("deposit", record)

    def withdraw(
        self,
        amount: Any,
        method: Any,
        account: Any,
        pin: Any = None,
        transaction_id: Optional[str] = None,
        note: str = "",
    ) -> OperationResult:
        """
        Debit MWK to an external account.

        Raises:
            InvalidAmountError, MissingMethodError, InvalidAccountError,
            InvalidPinError, InsufficientBalanceError,
            ConcurrencyConflictError, StorageError
        """
        transaction_id = self._clean_id(transaction_id)
        with self._audited("withdraw", transaction_id):
            value = self._validator.validate_withdraw(amount, method, account)
            self._pin_gate.require(pin)

        replay = self._replay("withdraw", transaction_id)
        if replay:
            return replay

        version, wallet = self._read_for_check()
        with self._audited("withdraw", transaction_id):
            self._validator.check_mwk_covers(wallet, value)

        record = TransactionRecord(
            id=transaction_id or new_transaction_id(),
            type=TransactionType.WITHDRAW,
            status="completed",
            direction=Direction.OUT,
            amount=Decimal(value),
            total_mwk=value,
            payment_method=str(method).strip(),
            reference=str(account).strip(),
            note=note,
        )
        return self._commit("withdraw", record, expected_version=version)

    def buy(
        self,
        usdt: Any,
        pin: Any = None,
        transaction_id: Optional[str] = None,
    ) -> OperationResult:
        """
        Convert MWK into USDT at the current rate.

        The MWK cost is fixed into the record's totalMWK.

        Raises:
            InvalidAmountError, InvalidPinError, InsufficientBalanceError,
            ConcurrencyConflictError, StorageError
        """
        transaction_id = self._clean_id(transaction_id)
        with self._audited("buy", transaction_id):
            quantity = self._validator.validate_trade_amount(usdt)
            self._pin_gate.require(pin)

        replay = self._replay("buy", transaction_id)
        if replay:
            return replay

        version, wallet = self._read_for_check()
        with self._audited("buy", transaction_id):
            cost = self._validator.trade_value(quantity, self._fx.current_rate())
            self._validator.check_mwk_covers(wallet, cost, purchase=True)

        record = TransactionRecord(
            id=transaction_id or new_transaction_id(),
            type=TransactionType.BUY,
            status="completed",
            direction=Direction.IN,
            amount=quantity,
            total_mwk=cost,
        )
        return self._commit("buy", record, expected_version=version)

    def sell(
        self,
        usdt: Any,
        pin: Any = None,
        transaction_id: Optional[str] = None,
    ) -> OperationResult:
        """
        Convert USDT back into MWK at the current rate.

        Raises:
            InvalidAmountError, InvalidPinError, InsufficientBalanceError,
            ConcurrencyConflictError, StorageError
        """
        transaction_id = self._clean_id(transaction_id)
        with self._audited("sell", transaction_id):
            quantity = self._validator.validate_trade_amount(usdt)
            self._pin_gate.require(pin)

        replay = self._replay("sell", transaction_id)
        if replay:
            return replay

        version, wallet = self._read_for_check()
        with self._audited("sell", transaction_id):
            self._validator.check_usdt_covers(wallet, quantity)
            gain = self._validator.trade_value(quantity, self._fx.current_rate())

        record = TransactionRecord(
            id=transaction_id or new_transaction_id(),
            type=TransactionType.SELL,
            status="completed",
            direction=Direction.OUT,
            amount=quantity,
            total_mwk=gain,
        )
        return self._commit("sell", record, expected_version=version)


def create_store(storage_settings: Optional[StorageSettings] = None) -> KeyValueStore:
    """Build the store backend named in the storage settings."""
    settings = storage_settings or get_settings().storage
    if settings.backend == "json_file":
        return JsonFileStore(settings.path, write_attempts=settings.write_attempts)
    return InMemoryStore()


def create_wallet_engine(
    store: Optional[KeyValueStore] = None,
    settings: Optional[Settings] = None,
    audit_sink: Optional[AuditSink] = None,
) -> WalletEngine:
    """
    Factory function to create a wallet engine.

    Args:
        store: Store to attach to. If None, one is built from the
               storage settings.
        settings: Root settings. If None, the cached settings are used.
        audit_sink: Optional receiver for every audit event.

    Returns:
        A WalletEngine ready to use
    """
    settings = settings or get_settings()
    storage_settings = settings.storage
    if store is None:
        store = create_store(storage_settings)
    return WalletEngine(
        store=store,
        ledger_settings=settings.ledger,
        storage_settings=storage_settings,
        notification_settings=settings.notifications,
        audit_logger=AuditLogger(audit_sink),
    )


__all__ = [
    "WalletEngine",
    "create_store",
    "create_wallet_engine",
    "format_mwk",
]
