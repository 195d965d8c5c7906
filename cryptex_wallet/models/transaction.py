"""
Core Data Models for the Wallet Engine

These models define the schemas for everything the ledger persists or returns:
1. TransactionRecord - one immutable entry in the append-only log
2. WalletSnapshot - the cached balances derived from the log
3. OperationResult - what a successful deposit/withdraw/buy/sell returns

DESIGN DECISION: The log is the source of truth. A WalletSnapshot is only ever
a cache of a projection over the log, so it carries no identity of its own.

Persisted records use the camelCase keys of the browser wallet this engine
replaces (totalMWK, paymentMethod), so existing stores stay readable.
"""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """
    Kinds of ledger entries.

    Stored as plain lowercase strings. Records with any other type are kept
    in the log but ignored by the projector.
    """
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    BUY = "buy"
    SELL = "sell"


class TransactionStatus(str, Enum):
    """
    Settlement status.

    CRITICAL: Only COMPLETED entries contribute to balances.
    """
    COMPLETED = "completed"
    PENDING = "pending"
    FAILED = "failed"


class Direction(str, Enum):
    """Informational flow direction, not used by the projector."""
    IN = "in"
    OUT = "out"


def new_transaction_id() -> str:
    """Generate a collision-resistant transaction id."""
    return f"tx_{uuid4().hex}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _json_number(value: Decimal) -> int | float:
    """Render a Decimal as the JSON number the store has always held."""
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def round_half_up(value: Decimal, places: int = 0) -> Decimal:
    """Round like a spreadsheet does: halves go away from zero."""
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


# =============================================================================
# LEDGER ENTRY
# =============================================================================

class TransactionRecord(BaseModel):
    """
    A single entry in the transaction log.

    Created once by the gateway and never updated or deleted.

    `type` and `status` are kept as strings rather than enums so that a log
    written by an older or foreign client still loads; unknown values simply
    do not count towards the balance.
    """
    model_config = ConfigDict(
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    id: str = Field(
        default_factory=new_transaction_id,
        min_length=1,
        description="Unique transaction id"
    )
    date: datetime = Field(
        default_factory=_utcnow,
        description="When the transaction was appended (UTC)"
    )
    type: str = Field(
        default="",
        description="deposit, withdraw, buy or sell"
    )
    status: str = Field(
        default=TransactionStatus.COMPLETED.value,
        description="Only 'completed' affects balances"
    )
    direction: Optional[str] = None
    amount: Decimal = Field(
        default=Decimal("0"),
        description="USDT for buy/sell, MWK for deposit/withdraw"
    )
    total_mwk: Optional[int] = Field(
        default=None,
        alias="totalMWK",
        description="MWK value fixed at transaction time"
    )
    reference: str = ""
    payment_method: str = Field(default="", alias="paymentMethod")
    note: str = ""

    @field_validator("type", "status", mode="before")
    @classmethod
    def normalize_label(cls, v):
        if v is None:
            return ""
        if isinstance(v, Enum):
            v = v.value
        return str(v).strip().lower()

    @field_validator("direction", mode="before")
    @classmethod
    def normalize_direction(cls, v):
        if isinstance(v, Enum):
            return v.value
        return v

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount(cls, v):
        """Missing or blank amounts count as zero, as the old wallet did."""
        if v is None or v == "":
            return Decimal("0")
        return v

    @field_validator("total_mwk", mode="before")
    @classmethod
    def coerce_total_mwk(cls, v):
        if v is None or v == "":
            return None
        try:
            return int(round_half_up(Decimal(str(v))))
        except (InvalidOperation, ValueError):
            raise ValueError(f"totalMWK is not a number: {v!r}")

    @field_validator("reference", "payment_method", "note", mode="before")
    @classmethod
    def blank_if_missing(cls, v):
        return "" if v is None else str(v)

    @field_serializer("amount", when_used="json")
    def serialize_amount(self, v: Decimal) -> int | float:
        return _json_number(v)

    @property
    def is_completed(self) -> bool:
        return self.status == TransactionStatus.COMPLETED.value

    def to_store_dict(self) -> dict:
        """Serialize for the transaction log (camelCase, no empty totalMWK)."""
        data = self.model_dump(mode="json", by_alias=True)
        if data.get("totalMWK") is None:
            data.pop("totalMWK", None)
        if data.get("direction") is None:
            data.pop("direction", None)
        return data


# =============================================================================
# DERIVED STATE
# =============================================================================

class WalletSnapshot(BaseModel):
    """
    Current balances, derived from the log.

    Both balances are non-negative. Always reproducible by projecting the
    log; never the sole authority.
    """
    model_config = ConfigDict(frozen=True)

    usdt: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="USDT balance, at most 6 decimal places"
    )
    mwk: int = Field(
        default=0,
        ge=0,
        description="MWK balance in whole kwacha"
    )

    @classmethod
    def empty(cls) -> "WalletSnapshot":
        return cls()

    def to_store_dict(self) -> dict:
        """Serialize for the `wallet` key: two JSON numbers."""
        return {"usdt": _json_number(self.usdt), "mwk": int(self.mwk)}


class OperationResult(BaseModel):
    """
    Result of a successful mutating operation.

    Failures are never represented here; they are raised.
    """

    ok: bool = True
    transaction: TransactionRecord
    wallet: WalletSnapshot
    mwk_cost: Optional[int] = Field(
        default=None,
        description="MWK charged by a buy"
    )
    mwk_gain: Optional[int] = Field(
        default=None,
        description="MWK credited by a sell"
    )
    replayed: bool = Field(
        default=False,
        description="True when the transaction id was already in the log"
    )
