"""
Flow tests for the wallet engine.

Every test runs against an in-memory store shared by the engines it makes,
so two engines in one test behave like two open views of the same session.
"""

import json
from decimal import Decimal

import pytest

from cryptex_wallet.config import LedgerSettings, Settings, get_settings
from cryptex_wallet.ledger import project
from cryptex_wallet.models.audit import AuditEventType
from cryptex_wallet.models.events import WalletEventKind
from cryptex_wallet.models.transaction import TransactionRecord, WalletSnapshot
from cryptex_wallet.orchestrator import WalletEngine, create_store, create_wallet_engine
from cryptex_wallet.services.storage import (
    ConcurrencyConflictError,
    InMemoryStore,
    JsonFileStore,
    StorageError,
)
from cryptex_wallet.validation import (
    InsufficientBalanceError,
    InvalidAccountError,
    InvalidAmountError,
    InvalidPinError,
    MissingMethodError,
    MissingReferenceError,
)


class LogWriteFailingStore(InMemoryStore):
    """Refuses the multi-key write an append makes."""

    def set_many(self, values):
        raise StorageError("quota exceeded")


class SnapshotWriteFailingStore(InMemoryStore):
    """Refuses the next N writes of the wallet snapshot."""

    def __init__(self, failures=1):
        super().__init__()
        self.failures = failures

    def set(self, key, value):
        if key == "wallet" and self.failures > 0:
            self.failures -= 1
            raise StorageError("quota exceeded")
        super().set(key, value)


def _types(engine):
    return [r.type for r in engine.list_transactions()]


class TestScenarios:
    """End-to-end flows on a fresh wallet."""

    def test_empty_wallet(self, engine):
        assert engine.get_wallet() == WalletSnapshot(usdt=Decimal("0"), mwk=0)

    def test_deposit(self, engine, store):
        result = engine.deposit(amount=10000, method="bank", reference="R1")

        assert result.ok is True
        assert result.replayed is False
        assert engine.get_wallet() == WalletSnapshot(usdt=Decimal("0"), mwk=10000)

        records = engine.list_transactions()
        assert len(records) == 1
        record = records[0]
        assert record.type == "deposit"
        assert record.status == "completed"
        assert record.direction == "in"
        assert record.total_mwk == 10000
        assert record.payment_method == "bank"
        assert record.reference == "R1"
        assert record.id.startswith("tx_")
        assert json.loads(store.get("wallet")) == {"usdt": 0, "mwk": 10000, "version": 1}

    def test_buy(self, engine):
        engine.deposit(10000, "bank", "R1")
        result = engine.buy(5)

        assert result.mwk_cost == 8850
        assert result.mwk_gain is None
        assert result.transaction.total_mwk == 8850
        assert result.transaction.amount == Decimal("5")
        assert engine.get_wallet() == WalletSnapshot(usdt=Decimal("5"), mwk=1150)

    def test_withdraw_insufficient(self, engine, store):
        engine.deposit(100, "bank", "R1")
        log_before = store.get("transactions")
        wallet_before = engine.get_wallet()

        with pytest.raises(InsufficientBalanceError, match="Insufficient MWK balance"):
            engine.withdraw(amount=500, method="bank", account="12345")

        assert store.get("transactions") == log_before
        assert engine.get_wallet() == wallet_before

    def test_buy_with_wrong_pin(self, engine):
        engine.pin_gate.set_pin("1234")
        engine.deposit(10000, "bank", "R1", pin="1234")

        with pytest.raises(InvalidPinError, match="Invalid PIN"):
            engine.buy(1, pin="0000")

        assert _types(engine) == ["deposit"]

    def test_repeated_sell_is_applied_once(self, engine):
        engine.deposit(20000, "bank", "R1")
        engine.buy(10)

        first = engine.sell(3, transaction_id="tx_fixed")
        second = engine.sell(3, transaction_id="tx_fixed")

        assert first.replayed is False
        assert second.replayed is True
        assert second.transaction.id == "tx_fixed"
        assert second.mwk_gain == first.mwk_gain == 5310
        assert _types(engine).count("sell") == 1
        assert engine.get_wallet() == WalletSnapshot(
            usdt=Decimal("7"), mwk=20000 - 17700 + 5310
        )


class TestDeposit:

    def test_rounds_amount(self, engine):
        result = engine.deposit("2,500.50", "airtel", "R9")
        assert result.transaction.total_mwk == 2501
        assert engine.get_wallet().mwk == 2501

    def test_validation_order_and_messages(self, engine):
        with pytest.raises(InvalidAmountError, match=r"Enter a valid amount \(MWK\)"):
            engine.deposit(0, "", "")
        with pytest.raises(MissingMethodError, match="Select a deposit method"):
            engine.deposit(100, "", "R1")
        with pytest.raises(MissingReferenceError, match="Enter a reference"):
            engine.deposit(100, "bank", "  ")
        assert engine.list_transactions() == []

    def test_validation_precedes_pin(self, engine):
        engine.pin_gate.set_pin("1234")
        with pytest.raises(InvalidAmountError):
            engine.deposit(-1, "bank", "R1", pin="0000")

    def test_note_is_stored(self, engine):
        engine.deposit(100, "bank", "R1", note="salary")
        assert engine.list_transactions()[0].note == "salary"

    def test_repeated_id_replays_without_balance_change(self, engine):
        engine.deposit(100, "bank", "R1", transaction_id="tx_dep")
        replay = engine.deposit(100, "bank", "R1", transaction_id=" tx_dep ")
        assert replay.replayed is True
        assert engine.get_wallet().mwk == 100
        assert len(engine.list_transactions()) == 1


class TestWithdraw:

    def test_withdraw(self, engine):
        engine.deposit(5000, "bank", "R1")
        result = engine.withdraw(1200, "airtel", "0999123456")

        record = result.transaction
        assert record.type == "withdraw"
        assert record.direction == "out"
        assert record.reference == "0999123456"
        assert record.payment_method == "airtel"
        assert result.wallet.mwk == 3800

    def test_exact_balance_allowed(self, engine):
        engine.deposit(500, "bank", "R1")
        assert engine.withdraw(500, "bank", "12345").wallet.mwk == 0

    def test_validation_messages(self, engine):
        engine.deposit(5000, "bank", "R1")
        with pytest.raises(MissingMethodError, match="Select a withdrawal method"):
            engine.withdraw(100, None, "12345")
        with pytest.raises(InvalidAccountError, match="Enter a valid account/number"):
            engine.withdraw(100, "bank", "123")
        assert _types(engine) == ["deposit"]


class TestTrades:

    def test_buy_insufficient_names_cost(self, engine):
        engine.deposit(8000, "bank", "R1")
        with pytest.raises(InsufficientBalanceError, match="Insufficient MWK. Need MK 8,850"):
            engine.buy(5)
        assert _types(engine) == ["deposit"]

    def test_buy_rounds_to_cents(self, engine):
        engine.deposit(10000, "bank", "R1")
        result = engine.buy("1.005")
        assert result.transaction.amount == Decimal("1.01")
        assert result.mwk_cost == 1788

    def test_invalid_trade_amount(self, engine):
        with pytest.raises(InvalidAmountError, match="Enter a valid USDT amount"):
            engine.buy("0.001")
        with pytest.raises(InvalidAmountError, match="Enter a valid USDT amount"):
            engine.sell("abc")

    def test_sell_insufficient(self, engine):
        engine.deposit(10000, "bank", "R1")
        engine.buy(2)
        with pytest.raises(InsufficientBalanceError, match="Insufficient USDT balance"):
            engine.sell("2.01")
        assert _types(engine) == ["buy", "deposit"]

    def test_sell(self, engine):
        engine.deposit(10000, "bank", "R1")
        engine.buy(5)
        result = engine.sell(2)
        assert result.mwk_gain == 3540
        assert result.mwk_cost is None
        assert result.wallet == WalletSnapshot(usdt=Decimal("3"), mwk=1150 + 3540)

    def test_rate_change_does_not_reprice_history(self, engine):
        engine.deposit(10000, "bank", "R1")
        engine.buy(5)
        engine.fx.set_rate(2000)

        assert engine.get_fx_rate() == Decimal("2000")
        assert engine.recompute() == WalletSnapshot(usdt=Decimal("5"), mwk=1150)

        result = engine.sell(1)
        assert result.mwk_gain == 2000

    def test_invalid_stored_rate_uses_fallback(self, engine, store):
        store.set("fxRateMWK", "not-a-rate")
        engine.deposit(10000, "bank", "R1")
        assert engine.buy(1).mwk_cost == 1770


class TestPin:

    def test_no_pin_allows_everything(self, engine):
        assert engine.has_pin() is False
        engine.deposit(100, "bank", "R1", pin="whatever")

    def test_pin_required_when_set(self, engine):
        engine.pin_gate.set_pin("1234")
        assert engine.has_pin() is True
        assert engine.verify_pin("1234") is True
        with pytest.raises(InvalidPinError):
            engine.deposit(100, "bank", "R1")
        engine.deposit(100, "bank", "R1", pin="1234")
        assert engine.get_wallet().mwk == 100

    def test_pin_unset_policy_deny(self, make_engine):
        engine = make_engine(ledger=LedgerSettings(allow_when_pin_unset=False))
        with pytest.raises(InvalidPinError):
            engine.deposit(100, "bank", "R1")

    def test_pin_checked_before_replay(self, engine):
        engine.deposit(100, "bank", "R1", transaction_id="tx_1")
        engine.pin_gate.set_pin("1234")
        with pytest.raises(InvalidPinError):
            engine.deposit(100, "bank", "R1", transaction_id="tx_1", pin="0000")


class TestSnapshotConsistency:

    def test_snapshot_matches_projection_after_every_operation(self, engine):
        steps = [
            lambda: engine.deposit(30000, "bank", "R1"),
            lambda: engine.buy("3.33"),
            lambda: engine.sell("1.11"),
            lambda: engine.withdraw(777, "bank", "12345"),
            lambda: engine.buy("0.5"),
        ]
        for step in steps:
            result = step()
            expected = project(engine.list_transactions(), engine.get_fx_rate())
            assert result.wallet == expected
            assert engine.get_wallet() == expected

    def test_recompute_repairs_tampered_snapshot(self, engine, store):
        engine.deposit(10000, "bank", "R1")
        store.set("wallet", json.dumps({"usdt": 1000, "mwk": 1}))
        assert engine.recompute() == WalletSnapshot(usdt=Decimal("0"), mwk=10000)

    def test_corrupt_snapshot_rebuilt_on_read(self, engine, store, audit_events):
        engine.deposit(10000, "bank", "R1")
        store.set("wallet", "garbage")
        assert engine.get_wallet().mwk == 10000
        assert audit_events[-1].event_type == AuditEventType.SNAPSHOT_REBUILT

    def test_balance_check_uses_rebuilt_snapshot(self, engine, store):
        engine.deposit(100, "bank", "R1")
        store.delete("wallet")
        with pytest.raises(InsufficientBalanceError):
            engine.withdraw(500, "bank", "12345")

    def test_legacy_records_in_existing_store(self, make_engine):
        legacy = [
            {"id": "tx_b", "type": "buy", "amount": 2, "status": "completed"},
            {"id": "tx_a", "type": "deposit", "amount": 10000, "status": "completed"},
            {"id": "tx_p", "type": "deposit", "amount": 999, "status": "pending"},
        ]
        engine = make_engine(target_store=InMemoryStore({"transactions": json.dumps(legacy)}))
        assert engine.get_wallet() == WalletSnapshot(usdt=Decimal("2"), mwk=10000 - 3540)
        assert engine.get_transaction("tx_p").status == "pending"
        assert engine.get_transaction("tx_missing") is None


class TestConcurrency:
    """Two contexts sharing one store."""

    def test_other_context_write_is_visible(self, make_engine):
        first, second = make_engine(), make_engine()
        first.deposit(10000, "bank", "R1")
        assert second.get_wallet().mwk == 10000
        second.buy(5)
        assert first.get_wallet() == WalletSnapshot(usdt=Decimal("5"), mwk=1150)

    def test_append_between_check_and_write_conflicts(self, make_engine, audit_events):
        first, second = make_engine(), make_engine()
        first.deposit(1000, "bank", "R1")

        original = first._read_for_check

        def racing_read():
            checked = original()
            second.withdraw(800, "bank", "12345")
            return checked

        first._read_for_check = racing_read

        with pytest.raises(ConcurrencyConflictError):
            first.withdraw(800, "bank", "12345")

        assert _types(first) == ["withdraw", "deposit"]
        assert first.get_wallet().mwk == 200
        assert audit_events[-1].event_type == AuditEventType.CONCURRENCY_CONFLICT

    def test_race_unchecked_when_concurrency_disabled(self, make_engine):
        ledger = LedgerSettings(optimistic_concurrency=False)
        first, second = make_engine(ledger=ledger), make_engine(ledger=ledger)
        first.deposit(1000, "bank", "R1")

        original = first._read_for_check

        def racing_read():
            checked = original()
            second.withdraw(800, "bank", "12345")
            return checked

        first._read_for_check = racing_read
        first.withdraw(800, "bank", "12345")

        assert _types(first) == ["withdraw", "withdraw", "deposit"]
        assert first.get_wallet().mwk == 0

    def test_other_context_is_notified(self, make_engine):
        first, second = make_engine(), make_engine()
        events = []
        second.subscribe(events.append)

        result = first.deposit(100, "bank", "R1")
        assert len(events) == 1
        assert events[0].kind == WalletEventKind.WALLET_UPDATED
        assert events[0].transaction.id == result.transaction.id

        first.recompute()
        assert events[-1].kind == WalletEventKind.RECOMPUTED

    def test_rejected_operation_does_not_notify(self, make_engine):
        first, second = make_engine(), make_engine()
        events = []
        second.subscribe(events.append)
        with pytest.raises(InsufficientBalanceError):
            first.withdraw(100, "bank", "12345")
        assert events == []

    def test_subscriber_failure_does_not_fail_operation(self, make_engine):
        first, second = make_engine(), make_engine()

        def broken(event):
            raise RuntimeError("view crashed")

        second.subscribe(broken)
        assert first.deposit(100, "bank", "R1").ok is True


class TestStorageFailures:

    def test_append_failure_propagates(self, make_engine, audit_events):
        engine = make_engine(target_store=LogWriteFailingStore())
        with pytest.raises(StorageError):
            engine.deposit(100, "bank", "R1")
        assert engine.list_transactions() == []
        assert audit_events[-1].event_type == AuditEventType.STORAGE_FAILURE

    def test_snapshot_failure_after_append_then_retry(self, make_engine):
        failing = SnapshotWriteFailingStore(failures=1)
        engine = make_engine(target_store=failing)

        with pytest.raises(StorageError):
            engine.deposit(100, "bank", "R1", transaction_id="tx_retry")
        assert [r.id for r in engine.list_transactions()] == ["tx_retry"]

        retry = engine.deposit(100, "bank", "R1", transaction_id="tx_retry")
        assert retry.replayed is True
        assert retry.wallet.mwk == 100
        assert len(engine.list_transactions()) == 1

    def test_failed_snapshot_write_cannot_fund_an_overdraft(self, make_engine):
        """The snapshot left behind by a failed write is never used for a check."""
        failing = SnapshotWriteFailingStore(failures=0)
        engine = make_engine(target_store=failing)
        engine.deposit(100, "bank", "R1")

        failing.failures = 1
        with pytest.raises(StorageError):
            engine.withdraw(100, "bank", "12345", transaction_id="tx_w1")
        assert json.loads(failing.get("wallet"))["mwk"] == 100

        retry = engine.withdraw(100, "bank", "12345", transaction_id="tx_w1")
        assert retry.replayed is True
        assert retry.wallet == WalletSnapshot(usdt=Decimal("0"), mwk=0)

        with pytest.raises(InsufficientBalanceError):
            engine.withdraw(100, "bank", "12345", transaction_id="tx_w2")
        assert _types(engine) == ["withdraw", "deposit"]

    def test_failed_snapshot_write_seen_by_other_context(self, make_engine):
        failing = SnapshotWriteFailingStore(failures=0)
        first, second = make_engine(target_store=failing), make_engine(target_store=failing)
        first.deposit(100, "bank", "R1")

        failing.failures = 1
        with pytest.raises(StorageError):
            first.withdraw(100, "bank", "12345")

        assert second.get_wallet().mwk == 0
        with pytest.raises(InsufficientBalanceError):
            second.withdraw(1, "bank", "12345")

    def test_deposit_onto_log_with_foreign_entry_leaves_it_intact(self, make_engine, audit_events):
        raw = json.dumps([123, {"id": "tx_old", "type": "deposit", "amount": 300}])
        store = InMemoryStore({"transactions": raw})
        engine = make_engine(target_store=store)

        with pytest.raises(StorageError):
            engine.deposit(10, "bank", "R1")
        assert store.get("transactions") == raw
        assert audit_events[-1].event_type == AuditEventType.STORAGE_FAILURE

    def test_corrupt_log_is_reported(self, make_engine):
        engine = make_engine(target_store=InMemoryStore({"transactions": "{oops"}))
        with pytest.raises(StorageError):
            engine.list_transactions()


class TestAudit:

    def test_append_is_audited(self, engine, audit_events):
        result = engine.deposit(100, "bank", "R1")
        appended = [e for e in audit_events if e.event_type == AuditEventType.TRANSACTION_APPENDED]
        assert len(appended) == 1
        assert appended[0].transaction_id == result.transaction.id
        assert appended[0].details["wallet"] == {"usdt": 0, "mwk": 100}

    def test_rejection_is_audited(self, engine, audit_events):
        with pytest.raises(InsufficientBalanceError):
            engine.sell(1, transaction_id="tx_s")
        event = audit_events[-1]
        assert event.event_type == AuditEventType.OPERATION_REJECTED
        assert event.operation == "sell"
        assert event.error_code == "InsufficientBalance"
        assert event.transaction_id == "tx_s"

    def test_oversized_amounts_are_rejected_and_audited(self, engine, audit_events):
        with pytest.raises(InvalidAmountError):
            engine.deposit(10**30, "bank", "R2")
        assert audit_events[-1].event_type == AuditEventType.OPERATION_REJECTED
        assert audit_events[-1].error_code == "InvalidAmount"

        engine.deposit(10**27, "bank", "R3")
        with pytest.raises(InvalidAmountError):
            engine.buy(10**27)
        with pytest.raises(InvalidAmountError):
            engine.buy(10**25)
        assert audit_events[-1].operation == "buy"
        assert audit_events[-1].error_code == "InvalidAmount"
        assert _types(engine) == ["deposit"]

    def test_replay_is_audited(self, engine, audit_events):
        engine.deposit(100, "bank", "R1", transaction_id="tx_1")
        engine.deposit(100, "bank", "R1", transaction_id="tx_1")
        assert audit_events[-1].event_type == AuditEventType.TRANSACTION_REPLAYED

    def test_recompute_is_audited(self, engine, audit_events):
        engine.deposit(100, "bank", "R1")
        engine.recompute()
        event = audit_events[-1]
        assert event.event_type == AuditEventType.WALLET_RECOMPUTED
        assert event.details["transaction_count"] == 1


class TestFactories:

    def test_create_store_defaults_to_memory(self, storage_settings):
        assert isinstance(create_store(storage_settings), InMemoryStore)

    def test_create_store_json_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("WALLET_STORAGE_BACKEND", "json_file")
        monkeypatch.setenv("WALLET_STORAGE_PATH", str(tmp_path / "wallet.json"))
        store = create_store(Settings().storage)
        assert isinstance(store, JsonFileStore)
        assert store.path == tmp_path / "wallet.json"

    def test_create_wallet_engine_with_store(self, store):
        events = []
        engine = create_wallet_engine(store=store, audit_sink=events.append)
        try:
            assert isinstance(engine, WalletEngine)
            engine.deposit(100, "bank", "R1")
            assert engine.store is store
            assert events
        finally:
            engine.close()

    def test_create_wallet_engine_from_environment(self, tmp_path, monkeypatch):
        path = tmp_path / "wallet.json"
        monkeypatch.setenv("WALLET_STORAGE_BACKEND", "json_file")
        monkeypatch.setenv("WALLET_STORAGE_PATH", str(path))
        monkeypatch.setenv("WALLET_FX_FALLBACK_RATE", "2000")
        get_settings.cache_clear()
        try:
            engine = create_wallet_engine()
            engine.deposit(10000, "bank", "R1")
            assert engine.buy(1).mwk_cost == 2000
            engine.close()

            reopened = create_wallet_engine()
            assert reopened.get_wallet() == WalletSnapshot(usdt=Decimal("1"), mwk=8000)
            assert [r.type for r in reopened.list_transactions()] == ["buy", "deposit"]
            reopened.close()
        finally:
            get_settings.cache_clear()

    def test_record_round_trip_through_file(self, tmp_path, make_engine):
        store = JsonFileStore(tmp_path / "wallet.json")
        engine = make_engine(target_store=store)
        engine.deposit(100, "bank", "R1", transaction_id="tx_file")

        reread = TransactionRecord.model_validate(
            json.loads(store.get("transactions"))[0]
        )
        assert reread.id == "tx_file"
        assert reread.total_mwk == 100
