"""
FX Rate Provider

Supplies the MWK-per-USDT rate used to price buys and sells.

The rate in effect when a transaction is made is frozen into its totalMWK,
so changing the rate here never reprices history.
"""

import json
from decimal import Decimal
from typing import Optional

from cryptex_wallet.config import LedgerSettings, StorageSettings, get_settings
from cryptex_wallet.services.storage.interface import KeyValueStore
from cryptex_wallet.validation import InvalidAmountError, parse_decimal


class FxRateProvider:
    """Reads the configured rate from the store, with a fixed fallback."""

    def __init__(
        self,
        store: KeyValueStore,
        ledger_settings: Optional[LedgerSettings] = None,
        storage_settings: Optional[StorageSettings] = None,
    ):
        self._store = store
        self._fallback = (ledger_settings or get_settings().ledger).fx_fallback_rate
        self._key = (storage_settings or get_settings().storage).fx_rate_key

    @property
    def fallback_rate(self) -> Decimal:
        return self._fallback

    def stored_rate(self) -> Optional[Decimal]:
        """The stored rate if it is a positive finite number, else None."""
        raw = self._store.get(self._key)
        if raw is None:
            return None
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            value = raw
        rate = parse_decimal(value)
        if rate is None or rate <= 0:
            return None
        return rate

    def current_rate(self) -> Decimal:
        rate = self.stored_rate()
        return rate if rate is not None else self._fallback

    def set_rate(self, rate) -> Decimal:
        """Store a new rate. Only affects transactions made after this call."""
        value = parse_decimal(rate)
        if value is None or value <= 0:
            raise InvalidAmountError("Enter a valid exchange rate (MWK per USDT)")
        self._store.set(self._key, str(value))
        return value

    def clear_rate(self) -> None:
        self._store.delete(self._key)
