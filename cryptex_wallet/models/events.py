"""
Notification Models

A WalletEvent tells other execution contexts sharing the same store that the
wallet changed. It is a hint, not a delivery of state: receivers re-read the
snapshot instead of trusting the payload.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from cryptex_wallet.models.transaction import TransactionRecord


class WalletEventKind(str, Enum):
    """What prompted the notification."""
    WALLET_UPDATED = "wallet-updated"   # A transaction was appended
    RECOMPUTED = "recompute"            # Snapshot rebuilt on request
    PING = "ping"                       # Store ping seen from another process


class WalletEvent(BaseModel):
    """A lightweight, best-effort change notification."""

    kind: WalletEventKind
    at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event was published (UTC)"
    )
    transaction: Optional[TransactionRecord] = Field(
        default=None,
        description="The appended transaction, informational only"
    )
