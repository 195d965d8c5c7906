"""Validation package: request checks and the wallet error taxonomy."""

from cryptex_wallet.validation.exceptions import (
    InsufficientBalanceError,
    InvalidAccountError,
    InvalidAmountError,
    InvalidPinError,
    MissingFieldError,
    MissingMethodError,
    MissingReferenceError,
    NegativeBalanceError,
    WalletError,
)
from cryptex_wallet.validation.validator import (
    OperationValidator,
    format_mwk,
    parse_decimal,
)

__all__ = [
    "InsufficientBalanceError",
    "InvalidAccountError",
    "InvalidAmountError",
    "InvalidPinError",
    "MissingFieldError",
    "MissingMethodError",
    "MissingReferenceError",
    "NegativeBalanceError",
    "OperationValidator",
    "WalletError",
    "format_mwk",
    "parse_decimal",
]
