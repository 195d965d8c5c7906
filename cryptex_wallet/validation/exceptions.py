"""
Wallet Operation Errors

Every rejected request is reported with one of these, before anything is
written. The `code` attribute is stable and meant for callers that map
errors to UI messages; the exception text is already user-presentable.
"""

from decimal import Decimal


class WalletError(Exception):
    """Base exception for rejected wallet operations."""

    code = "WalletError"


class InvalidAmountError(WalletError):
    """Amount missing, non-numeric or not positive."""

    code = "InvalidAmount"


class MissingFieldError(WalletError):
    """A required request field is empty."""

    code = "MissingField"

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)


class MissingMethodError(MissingFieldError):
    code = "MissingMethod"

    def __init__(self, message: str = "Select a payment method"):
        super().__init__("method", message)


class MissingReferenceError(MissingFieldError):
    code = "MissingReference"

    def __init__(self, message: str = "Enter a reference"):
        super().__init__("reference", message)


class InvalidAccountError(MissingFieldError):
    """Withdrawal account empty or too short."""

    code = "InvalidAccount"

    def __init__(self, message: str = "Enter a valid account/number"):
        super().__init__("account", message)


class InvalidPinError(WalletError):
    code = "InvalidPin"

    def __init__(self, message: str = "Invalid PIN"):
        super().__init__(message)


class InsufficientBalanceError(WalletError):
    """The wallet cannot cover the requested amount."""

    code = "InsufficientBalance"

    def __init__(
        self,
        asset: str,
        required: Decimal | int,
        available: Decimal | int,
        message: str,
    ):
        self.asset = asset
        self.required = required
        self.available = available
        super().__init__(message)


class NegativeBalanceError(WalletError):
    """
    The projector produced a negative balance under the "raise" policy.

    This means the log itself is inconsistent (e.g. a withdraw recorded
    without the funds behind it), not that a request was bad.
    """

    code = "NegativeBalance"

    def __init__(self, usdt: Decimal, mwk: Decimal):
        self.usdt = usdt
        self.mwk = mwk
        super().__init__(
            f"Transaction log projects to a negative balance (usdt={usdt}, mwk={mwk})"
        )
