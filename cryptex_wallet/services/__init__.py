"""Services package."""

from cryptex_wallet.services.fx_rates import FxRateProvider
from cryptex_wallet.services.notifications import NotificationBus, Subscriber
from cryptex_wallet.services.pin import PinGate
from cryptex_wallet.services.storage import (
    ConcurrencyConflictError,
    CorruptDataError,
    CorruptSnapshotError,
    InMemoryStore,
    JsonFileStore,
    KeyValueStore,
    StorageError,
)

__all__ = [
    # Rates and PIN
    "FxRateProvider",
    "PinGate",
    # Notifications
    "NotificationBus",
    "Subscriber",
    # Storage services
    "ConcurrencyConflictError",
    "CorruptDataError",
    "CorruptSnapshotError",
    "InMemoryStore",
    "JsonFileStore",
    "KeyValueStore",
    "StorageError",
]
