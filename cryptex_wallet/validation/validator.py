"""
Operation Validation

DESIGN DECISION: All input checks for deposit/withdraw/buy/sell live here
and run before the gateway touches the store:

- Amount parsing and rounding (whole MWK, 2-place USDT)
- Required fields (method, reference, account)
- Balance sufficiency against a snapshot the gateway hands in

Validation NEVER writes and never partially applies a request. A request is
either fully accepted or rejected with a named WalletError.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from cryptex_wallet.config import LedgerSettings, get_settings
from cryptex_wallet.models.transaction import WalletSnapshot, round_half_up
from cryptex_wallet.validation.exceptions import (
    InsufficientBalanceError,
    InvalidAccountError,
    InvalidAmountError,
    MissingMethodError,
    MissingReferenceError,
)


def format_mwk(value: int | Decimal) -> str:
    """Render an MWK amount the way the wallet UI shows it: 'MK 8,850'."""
    return f"MK {int(round_half_up(Decimal(value))):,}"


def parse_decimal(value: Any) -> Optional[Decimal]:
    """
    Read a user-supplied number.

    Returns None for anything that is not a finite number. Booleans are
    rejected even though Python treats them as ints.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip().replace(",", "")
        if not value:
            return None
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not number.is_finite():
        return None
    return number


def _is_blank(value: Any) -> bool:
    return value is None or not str(value).strip()


class OperationValidator:
    """
    Validates gateway requests.

    Each validate_* method returns the normalized amount or raises.
    """

    def __init__(self, settings: Optional[LedgerSettings] = None):
        self._settings = settings or get_settings().ledger

    def _mwk_amount(self, amount: Any) -> int:
        number = parse_decimal(amount)
        if number is None:
            raise InvalidAmountError("Enter a valid amount (MWK)")
        try:
            whole = int(round_half_up(number))
        except InvalidOperation:
            raise InvalidAmountError("Enter a valid amount (MWK)")
        if whole <= 0:
            raise InvalidAmountError("Enter a valid amount (MWK)")
        return whole

    def validate_deposit(self, amount: Any, method: Any, reference: Any) -> int:
        """Checks, in order: amount, method, reference."""
        whole = self._mwk_amount(amount)
        if _is_blank(method):
            raise MissingMethodError("Select a deposit method")
        if _is_blank(reference):
            raise MissingReferenceError("Enter a reference")
        return whole

    def validate_withdraw(self, amount: Any, method: Any, account: Any) -> int:
        """Checks, in order: amount, method, account."""
        whole = self._mwk_amount(amount)
        if _is_blank(method):
            raise MissingMethodError("Select a withdrawal method")
        if _is_blank(account) or len(str(account).strip()) < self._settings.min_account_length:
            raise InvalidAccountError("Enter a valid account/number")
        return whole

    def validate_trade_amount(self, usdt: Any) -> Decimal:
        """Round a buy/sell amount to trade precision; it must stay positive."""
        number = parse_decimal(usdt)
        if number is None:
            raise InvalidAmountError("Enter a valid USDT amount")
        try:
            rounded = round_half_up(number, self._settings.trade_places)
            # must also fit the balance precision
            round_half_up(rounded, self._settings.usdt_places)
        except InvalidOperation:
            raise InvalidAmountError("Enter a valid USDT amount")
        if rounded <= 0:
            raise InvalidAmountError("Enter a valid USDT amount")
        return rounded

    @staticmethod
    def trade_value(quantity: Decimal, rate: Decimal) -> int:
        """MWK value of a trade, in whole kwacha."""
        try:
            return int(round_half_up(quantity * rate))
        except InvalidOperation:
            raise InvalidAmountError("Enter a valid USDT amount")

    @staticmethod
    def check_mwk_covers(wallet: WalletSnapshot, required: int, *, purchase: bool = False) -> None:
        if wallet.mwk < required:
            message = (
                f"Insufficient MWK. Need {format_mwk(required)}"
                if purchase
                else "Insufficient MWK balance"
            )
            raise InsufficientBalanceError("MWK", required, wallet.mwk, message)

    @staticmethod
    def check_usdt_covers(wallet: WalletSnapshot, required: Decimal) -> None:
        if wallet.usdt < required:
            raise InsufficientBalanceError(
                "USDT", required, wallet.usdt, "Insufficient USDT balance"
            )
