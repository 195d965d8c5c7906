"""
Balance Projector

Folds the transaction log into a WalletSnapshot.

GUARANTEES:
- Pure: same records and rate in, same snapshot out; no clock, no store
- Order independent: only exact Decimal summation is used
- Non-negative: negatives are clamped (default) or rejected

Per completed record:
    deposit   mwk += totalMWK ?? amount
    withdraw  mwk -= totalMWK ?? amount
    buy       usdt += amount; mwk -= totalMWK ?? round(amount * rate)
    sell      usdt -= amount; mwk += totalMWK ?? round(amount * rate)

The live rate only matters for legacy records without totalMWK; everything
the gateway writes carries the MWK value fixed at transaction time.
"""

from decimal import Decimal
from typing import Iterable, Literal

import structlog

from cryptex_wallet.models.transaction import (
    TransactionRecord,
    TransactionType,
    WalletSnapshot,
    round_half_up,
)
from cryptex_wallet.validation.exceptions import NegativeBalanceError


logger = structlog.get_logger(__name__)


def _mwk_value(record: TransactionRecord, rate: Decimal, *, priced: bool) -> Decimal:
    if record.total_mwk is not None:
        return Decimal(record.total_mwk)
    if priced:
        return round_half_up(record.amount * rate)
    return round_half_up(record.amount)


def project(
    records: Iterable[TransactionRecord],
    rate: Decimal,
    *,
    usdt_places: int = 6,
    negative_policy: Literal["clamp", "raise"] = "clamp",
) -> WalletSnapshot:
    """
    Compute balances from a transaction log.

    Args:
        records: Log entries, in any order
        rate: MWK per USDT, used only for buy/sell records lacking totalMWK
        usdt_places: Decimal places kept on the USDT balance
        negative_policy: "clamp" floors at zero, "raise" fails

    Raises:
        NegativeBalanceError: A balance is negative and policy is "raise"
    """
    usdt = Decimal("0")
    mwk = Decimal("0")

    for record in records:
        if not record.is_completed:
            continue

        if record.type == TransactionType.DEPOSIT.value:
            mwk += _mwk_value(record, rate, priced=False)
        elif record.type == TransactionType.WITHDRAW.value:
            mwk -= _mwk_value(record, rate, priced=False)
        elif record.type == TransactionType.BUY.value:
            usdt += record.amount
            mwk -= _mwk_value(record, rate, priced=True)
        elif record.type == TransactionType.SELL.value:
            usdt -= record.amount
            mwk += _mwk_value(record, rate, priced=True)

    if usdt < 0 or mwk < 0:
        if negative_policy == "raise":
            raise NegativeBalanceError(usdt, mwk)
        logger.warning("negative_balance_clamped", usdt=str(usdt), mwk=str(mwk))
        usdt = max(usdt, Decimal("0"))
        mwk = max(mwk, Decimal("0"))

    return WalletSnapshot(
        usdt=round_half_up(usdt, usdt_places),
        mwk=int(round_half_up(mwk)),
    )
