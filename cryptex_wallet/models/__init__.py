"""
Data Models Package

This package contains all Pydantic models used by the wallet engine.
Everything persisted to or returned from the ledger conforms to these schemas.
"""

from cryptex_wallet.models.transaction import (
    Direction,
    OperationResult,
    TransactionRecord,
    TransactionStatus,
    TransactionType,
    WalletSnapshot,
    new_transaction_id,
    round_half_up,
)
from cryptex_wallet.models.events import (
    WalletEvent,
    WalletEventKind,
)
from cryptex_wallet.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Direction",
    "OperationResult",
    "TransactionRecord",
    "TransactionStatus",
    "TransactionType",
    "WalletSnapshot",
    "new_transaction_id",
    "round_half_up",
    # Notification models
    "WalletEvent",
    "WalletEventKind",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
