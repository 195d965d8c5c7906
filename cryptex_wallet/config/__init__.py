"""Configuration package."""

from cryptex_wallet.config.settings import (
    LedgerSettings,
    NotificationSettings,
    Settings,
    StorageSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "LedgerSettings",
    "NotificationSettings",
    "Settings",
    "StorageSettings",
    "get_settings",
    "validate_all_settings",
]
