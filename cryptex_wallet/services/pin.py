"""
PIN Gate

Optional second factor for mutating operations. The PIN is an opaque string
stored under its own key; this module never interprets it.

Policy (LedgerSettings.allow_when_pin_unset):
- True (default): with no PIN stored, every check passes
- False: with no PIN stored, every check fails
"""

import hmac
from typing import Any, Optional

from cryptex_wallet.config import LedgerSettings, StorageSettings, get_settings
from cryptex_wallet.services.storage.interface import KeyValueStore
from cryptex_wallet.validation import InvalidPinError


class PinGate:
    """Checks a caller-supplied PIN against the stored one."""

    def __init__(
        self,
        store: KeyValueStore,
        ledger_settings: Optional[LedgerSettings] = None,
        storage_settings: Optional[StorageSettings] = None,
    ):
        self._store = store
        self._allow_when_unset = (ledger_settings or get_settings().ledger).allow_when_pin_unset
        self._key = (storage_settings or get_settings().storage).pin_key

    def _stored(self) -> Optional[str]:
        pin = self._store.get(self._key)
        return pin or None

    def has_pin(self) -> bool:
        return self._stored() is not None

    def verify(self, pin: Any) -> bool:
        stored = self._stored()
        if stored is None:
            return self._allow_when_unset
        if pin is None or pin == "":
            return False
        return hmac.compare_digest(str(pin).encode("utf-8"), stored.encode("utf-8"))

    def require(self, pin: Any) -> None:
        """Raise InvalidPinError unless verify() passes."""
        if not self.verify(pin):
            raise InvalidPinError()

    def set_pin(self, pin: str) -> None:
        if pin is None or not str(pin).strip():
            raise ValueError("PIN must not be empty")
        self._store.set(self._key, str(pin))

    def clear_pin(self) -> None:
        self._store.delete(self._key)
