"""
Audit Logger

DESIGN DECISION: Every balance-affecting action and every rejection is logged.
This provides:
1. Traceability from a balance back to the entries that produced it
2. Debugging capability when a snapshot had to be rebuilt
3. A record of rejected operations (bad PIN, insufficient funds)

The audit logger:
- Always writes a structured local log line
- Optionally forwards events to a sink (e.g. a list in tests, a queue in an app)
- Never lets a failing sink break the wallet operation that produced the event
"""

import logging
import sys
from typing import Callable, Optional

import structlog

from cryptex_wallet.models.audit import AuditEvent, AuditEventBuilder
from cryptex_wallet.models.transaction import TransactionRecord, WalletSnapshot


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """
    Route stdlib logging (and so structlog) to stdout at the given level.

    Libraries embedding the engine usually have their own logging setup and
    should not call this.
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
    )


AuditSink = Callable[[AuditEvent], None]


class AuditLogger:
    """
    Central audit logging service for the wallet engine.
    """

    def __init__(self, sink: Optional[AuditSink] = None):
        """
        Initialize audit logger.

        Args:
            sink: Called with every event after it is logged.
                  If None, only logs locally.
        """
        self._sink = sink
        self._logger = structlog.get_logger("cryptex_wallet.audit")

    def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns True if the sink accepted it (or no sink is configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif event.severity.value == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._sink:
            try:
                self._sink(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_sink_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    def log_transaction_appended(
        self,
        record: TransactionRecord,
        wallet: WalletSnapshot,
    ) -> None:
        self.log(AuditEventBuilder.transaction_appended(
            transaction_id=record.id,
            transaction_type=record.type,
            amount=str(record.amount),
            total_mwk=record.total_mwk,
            wallet=wallet.to_store_dict(),
        ))

    def log_duplicate_ignored(self, transaction_id: str) -> None:
        self.log(AuditEventBuilder.duplicate_ignored(transaction_id))

    def log_replayed(self, operation: str, transaction_id: str) -> None:
        self.log(AuditEventBuilder.transaction_replayed(operation, transaction_id))

    def log_rejected(
        self,
        operation: str,
        error: Exception,
        transaction_id: Optional[str] = None,
    ) -> None:
        """Log a request refused by validation, the PIN gate or a balance check."""
        self.log(AuditEventBuilder.operation_rejected(
            operation=operation,
            error_code=getattr(error, "code", type(error).__name__),
            error_message=str(error),
            transaction_id=transaction_id,
        ))

    def log_snapshot_rebuilt(self, reason: str, wallet: WalletSnapshot) -> None:
        self.log(AuditEventBuilder.snapshot_rebuilt(reason, wallet.to_store_dict()))

    def log_recomputed(self, wallet: WalletSnapshot, transaction_count: int) -> None:
        self.log(AuditEventBuilder.wallet_recomputed(wallet.to_store_dict(), transaction_count))

    def log_storage_failure(
        self,
        operation: str,
        error: Exception,
        transaction_id: Optional[str] = None,
    ) -> None:
        self.log(AuditEventBuilder.storage_failure(operation, str(error), transaction_id))

    def log_concurrency_conflict(
        self,
        operation: str,
        transaction_id: str,
        expected_version: int,
        actual_version: int,
    ) -> None:
        self.log(AuditEventBuilder.concurrency_conflict(
            operation=operation,
            transaction_id=transaction_id,
            expected_version=expected_version,
            actual_version=actual_version,
        ))

    def log_notification_failed(self, channel: str, error: Exception) -> None:
        self.log(AuditEventBuilder.notification_failed(channel, str(error)))
