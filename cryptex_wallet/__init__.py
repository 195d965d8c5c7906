"""
Cryptex Wallet - Ledger Engine Package

Maintains a user's MWK and USDT balances by deriving them from an
append-only transaction log in local persistent storage.

DESIGN PRINCIPLES:
1. The log is the source of truth; balances are a projection of it
2. Appends are idempotent on transaction id
3. Every request is validated in full before anything is written
4. Storage failures are raised, never swallowed
5. The store is injected and swappable
"""

__version__ = "1.0.0"
__author__ = "Cryptex Wallet Team"
