"""Audit logging package."""

from cryptex_wallet.audit.logger import AuditLogger, AuditSink, configure_logging

__all__ = ["AuditLogger", "AuditSink", "configure_logging"]
