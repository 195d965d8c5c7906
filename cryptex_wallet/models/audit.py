"""
Audit Models for the Wallet Engine

Every mutation, rejection and storage fault is recorded as an AuditEvent.
This provides:
1. Traceability of every balance change back to a log entry
2. Debugging information when a snapshot had to be rebuilt
3. Visibility of rejected operations (bad PIN, insufficient funds)

DESIGN DECISION: Audit events are emitted, never edited.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Ledger writes
    TRANSACTION_APPENDED = "transaction_appended"
    DUPLICATE_TRANSACTION_IGNORED = "duplicate_transaction_ignored"
    TRANSACTION_REPLAYED = "transaction_replayed"

    # Rejections
    OPERATION_REJECTED = "operation_rejected"

    # Snapshot maintenance
    SNAPSHOT_REBUILT = "snapshot_rebuilt"
    WALLET_RECOMPUTED = "wallet_recomputed"

    # Faults
    STORAGE_FAILURE = "storage_failure"
    CONCURRENCY_CONFLICT = "concurrency_conflict"
    NOTIFICATION_FAILED = "notification_failed"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - which transaction or operation is this about?
    operation: Optional[str] = Field(
        default=None,
        description="Gateway operation (deposit, withdraw, buy, sell, recompute)"
    )
    transaction_id: Optional[str] = Field(
        default=None,
        description="Ledger entry this event relates to"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "operation": self.operation,
            "transaction_id": self.transaction_id,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_appended(tx, wallet)
        event = AuditEventBuilder.operation_rejected("buy", error)
    """

    @staticmethod
    def transaction_appended(
        transaction_id: str,
        transaction_type: str,
        amount: str,
        total_mwk: Optional[int],
        wallet: dict,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_APPENDED,
            operation=transaction_type,
            transaction_id=transaction_id,
            description=f"{transaction_type.capitalize()} of {amount} recorded",
            details={
                "amount": amount,
                "total_mwk": total_mwk,
                "wallet": wallet,
            },
        )

    @staticmethod
    def duplicate_ignored(transaction_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DUPLICATE_TRANSACTION_IGNORED,
            severity=AuditSeverity.DEBUG,
            transaction_id=transaction_id,
            description=f"Transaction {transaction_id} already in the log, append skipped",
        )

    @staticmethod
    def transaction_replayed(operation: str, transaction_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_REPLAYED,
            operation=operation,
            transaction_id=transaction_id,
            description=f"Repeated {operation} request answered from the log",
        )

    @staticmethod
    def operation_rejected(
        operation: str,
        error_code: str,
        error_message: str,
        transaction_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OPERATION_REJECTED,
            severity=AuditSeverity.WARNING,
            operation=operation,
            transaction_id=transaction_id,
            description=f"{operation.capitalize()} rejected: {error_code}",
            error_code=error_code,
            error_message=error_message,
        )

    @staticmethod
    def snapshot_rebuilt(reason: str, wallet: dict) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SNAPSHOT_REBUILT,
            severity=AuditSeverity.WARNING,
            description="Wallet snapshot rebuilt from the transaction log",
            details={
                "reason": reason,
                "wallet": wallet,
            },
        )

    @staticmethod
    def wallet_recomputed(wallet: dict, transaction_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.WALLET_RECOMPUTED,
            operation="recompute",
            description=f"Wallet recomputed from {transaction_count} transactions",
            details={
                "wallet": wallet,
                "transaction_count": transaction_count,
            },
        )

    @staticmethod
    def storage_failure(
        operation: str,
        error_message: str,
        transaction_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_FAILURE,
            severity=AuditSeverity.ERROR,
            operation=operation,
            transaction_id=transaction_id,
            description=f"Storage failure during {operation}",
            error_code="StorageFailure",
            error_message=error_message,
        )

    @staticmethod
    def concurrency_conflict(
        operation: str,
        transaction_id: str,
        expected_version: int,
        actual_version: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CONCURRENCY_CONFLICT,
            severity=AuditSeverity.ERROR,
            operation=operation,
            transaction_id=transaction_id,
            description=f"{operation.capitalize()} lost a race with another context",
            details={
                "expected_version": expected_version,
                "actual_version": actual_version,
            },
            error_code="ConcurrencyConflict",
        )

    @staticmethod
    def notification_failed(channel: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.NOTIFICATION_FAILED,
            severity=AuditSeverity.WARNING,
            description=f"Wallet notification on '{channel}' not delivered",
            details={"channel": channel},
            error_message=error_message,
        )
