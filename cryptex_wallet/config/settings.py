"""
Configuration Management for the Wallet Engine

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: Every implicit default of the old browser wallet (fallback FX
rate, "no PIN means allow", the zero floor on balances) lives here with a
name, so its effect can be seen and changed in one place:

- fx_fallback_rate: used whenever the stored rate is missing or invalid
- allow_when_pin_unset: with no PIN stored, operations are permitted
- negative_balance_policy: "clamp" floors balances at zero, "raise" fails
"""

from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerSettings(BaseSettings):
    """Balance arithmetic, validation limits and policies."""

    model_config = SettingsConfigDict(
        env_prefix="WALLET_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    fx_fallback_rate: Decimal = Field(
        default=Decimal("1770"),
        gt=0,
        description="MWK per USDT when no valid rate is stored"
    )
    usdt_places: int = Field(
        default=6,
        ge=0,
        le=18,
        description="Decimal places kept on the USDT balance"
    )
    trade_places: int = Field(
        default=2,
        ge=0,
        le=6,
        description="Decimal places a buy/sell amount is rounded to"
    )
    min_account_length: int = Field(
        default=5,
        ge=1,
        description="Shortest accepted withdrawal account/number"
    )
    negative_balance_policy: Literal["clamp", "raise"] = Field(
        default="clamp",
        description="What the projector does with a negative balance"
    )
    optimistic_concurrency: bool = Field(
        default=True,
        description="Check the log version before appending"
    )
    allow_when_pin_unset: bool = Field(
        default=True,
        description="Permit operations when no PIN has been stored"
    )


class StorageSettings(BaseSettings):
    """Persistent store backend and key layout."""

    model_config = SettingsConfigDict(
        env_prefix="WALLET_STORAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    backend: Literal["memory", "json_file"] = Field(
        default="memory",
        description="Store implementation"
    )
    path: str = Field(
        default="wallet_store.json",
        description="File used by the json_file backend"
    )
    write_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts for a file write before StorageError"
    )

    # Key names, kept compatible with the browser wallet's localStorage
    transactions_key: str = "transactions"
    wallet_key: str = "wallet"
    fx_rate_key: str = "fxRateMWK"
    pin_key: str = "userPin"
    ping_key: str = "walletPing"
    version_key: str = "transactionsVersion"

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Storage path must not be empty")
        return v


class NotificationSettings(BaseSettings):
    """Cross-context notification channel."""

    model_config = SettingsConfigDict(
        env_prefix="WALLET_NOTIFY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    enabled: bool = Field(
        default=True,
        description="Publish events after each mutation"
    )
    channel_name: str = Field(
        default="cryptex-wallet",
        min_length=1,
        description="Channel shared by every context of one wallet"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def notifications(self) -> NotificationSettings:
        return NotificationSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus
    {setting_name}_error entries for the sections that failed.
    """
    results = {}

    settings = get_settings()

    for name in ("ledger", "storage", "notifications"):
        try:
            getattr(settings, name)
            results[name] = True
        except ValueError as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
