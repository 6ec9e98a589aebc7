# src/treasury/runtime/redemption.py
from __future__ import annotations

"""Redemption engine.

Token holders burn `token_count` out of `total_supply` and reclaim a share of
the project's overflow along a bonding curve:

  base    = overflow * token_count / total_supply
  reclaim = base * (rate + token_count * (MAX - rate) / total_supply) / MAX

Every division floors, in exactly that order. At rate == MAX the curve is the
plain pro-rata share, and redeeming the whole supply always returns the whole
overflow.
"""

from typing import Any, Callable, Dict

from treasury.ledger.constants import MAX_REDEMPTION_RATE
from treasury.ledger.fixed_point import mul_div
from treasury.ledger.types import BALLOT_ACTIVE, Period, normalize_ballot_state
from treasury.runtime.balances import use_balance
from treasury.runtime.errors import (
    BelowMinimumReturn,
    InsufficientBalance,
    InsufficientTokens,
    InvalidPeriod,
    RedemptionsPaused,
)

Json = Dict[str, Any]


def redemption_rate_for(period: Period, ballot_state: str) -> int:
    """The ballot rate replaces the regular one while a reconfiguration ballot is active."""
    if normalize_ballot_state(ballot_state) == BALLOT_ACTIVE:
        return int(period.metadata.ballot_redemption_rate)
    return int(period.metadata.redemption_rate)


def reclaimable_overflow(overflow: int, token_count: int, total_supply: int, rate: int) -> int:
    if token_count <= 0 or total_supply <= 0 or overflow <= 0:
        return 0
    if token_count > total_supply:
        raise InsufficientTokens(details={"token_count": str(token_count), "total_supply": str(total_supply)})

    base = mul_div(overflow, token_count, total_supply)
    if rate == MAX_REDEMPTION_RATE:
        return base
    return mul_div(
        base,
        rate + mul_div(token_count, MAX_REDEMPTION_RATE - rate, total_supply),
        MAX_REDEMPTION_RATE,
    )


def check_redeemable(period: Period, *, project_id: int, token_count: int, total_supply: int) -> None:
    if not period.configured:
        raise InvalidPeriod(details={"project_id": int(project_id)})
    if period.metadata.paused_redeem:
        raise RedemptionsPaused(details={"project_id": int(project_id), "period": int(period.number)})
    if int(token_count) == 0 or int(token_count) > int(total_supply):
        raise InsufficientTokens(details={"token_count": str(int(token_count)), "total_supply": str(int(total_supply))})


def record_redemption(
    st: Json,
    *,
    terminal: str,
    project_id: int,
    period: Period,
    ballot_state: str,
    token_count: int,
    total_supply: int,
    min_reclaimed: int,
    overflow_of: Callable[[], int],
) -> int:
    """Debit the reclaimed amount and return it.

    `overflow_of` resolves the pool for this redemption (this terminal's, or
    the project-wide total). It is only called once the period and token
    checks pass. A zero reclaim never touches the balance.
    """
    check_redeemable(period, project_id=project_id, token_count=token_count, total_supply=total_supply)

    tc = int(token_count)
    ts = int(total_supply)
    pool = int(overflow_of())
    reclaim = 0
    if pool > 0:
        reclaim = reclaimable_overflow(pool, tc, ts, redemption_rate_for(period, ballot_state))

    if reclaim < int(min_reclaimed):
        raise BelowMinimumReturn(details={"amount": str(reclaim), "min_returned": str(int(min_reclaimed))})

    if reclaim > 0:
        use_balance(st, terminal, project_id, reclaim, error=InsufficientBalance)
    return reclaim
