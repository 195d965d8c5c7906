"""
Shared fixtures for the wallet engine tests.

Every test gets its own in-memory store and its own notification channel,
so engines from different tests never see each other.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from cryptex_wallet.audit import AuditLogger
from cryptex_wallet.config import (
    LedgerSettings,
    NotificationSettings,
    StorageSettings,
)
from cryptex_wallet.orchestrator import WalletEngine
from cryptex_wallet.services.storage import InMemoryStore


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def ledger_settings():
    return LedgerSettings(fx_fallback_rate=Decimal("1770"))


@pytest.fixture
def storage_settings():
    return StorageSettings()


@pytest.fixture
def notification_settings():
    return NotificationSettings(channel_name=f"test-{uuid4().hex}")


@pytest.fixture
def audit_events():
    return []


@pytest.fixture
def make_engine(store, ledger_settings, storage_settings, notification_settings, audit_events):
    """Build engines attached to the shared test store (one per 'context')."""
    engines = []

    def _make(target_store=None, ledger=None):
        engine = WalletEngine(
            store=target_store if target_store is not None else store,
            ledger_settings=ledger or ledger_settings,
            storage_settings=storage_settings,
            notification_settings=notification_settings,
            audit_logger=AuditLogger(audit_events.append),
        )
        engines.append(engine)
        return engine

    yield _make

    for engine in engines:
        engine.close()


@pytest.fixture
def engine(make_engine):
    return make_engine()
