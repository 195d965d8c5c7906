"""
Ledger Package

The append-only transaction log, the pure projection over it, and the
snapshot cache that stores the projection.
"""

from cryptex_wallet.ledger.log_store import TransactionLogStore
from cryptex_wallet.ledger.projector import project
from cryptex_wallet.ledger.snapshot_cache import WalletSnapshotCache

__all__ = [
    "TransactionLogStore",
    "WalletSnapshotCache",
    "project",
]
