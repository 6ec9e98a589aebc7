# src/treasury/runtime/distribution.py
from __future__ import annotations

"""Distribution accounting.

Two period-scoped ceilings are tracked per (terminal, project):

  - distribution limit: usage keyed by period number, so a new period starts
    from zero without any reset step
  - allowance: usage keyed by configuration id, so it survives period
    roll-overs until the project is reconfigured

Both record_* functions validate everything first and only then mutate, so a
raised error leaves `st` exactly as it was.
"""

from typing import Any, Dict, Tuple

from treasury.ledger.constants import PRICE_PRECISION
from treasury.ledger.fixed_point import checked_add
from treasury.ledger.state import USED_ALLOWANCE, USED_DISTRIBUTION, as_amount, ensure_branch, lookup
from treasury.ledger.types import Period
from treasury.runtime.balances import balance_of, use_balance
from treasury.runtime.errors import (
    BelowMinimumReturn,
    CurrencyMismatch,
    DistributionLimitExceeded,
    DistributionsPaused,
    InsufficientStoreBalance,
    InvalidPeriod,
)
from treasury.runtime.oracles import Controller, PriceOracle, convert_currency

Json = Dict[str, Any]


def used_distribution_of(st: Json, terminal: str, project_id: int, number: int) -> int:
    return as_amount(lookup(st, USED_DISTRIBUTION, terminal, project_id, number))


def used_allowance_of(st: Json, terminal: str, project_id: int, configuration: int) -> int:
    return as_amount(lookup(st, USED_ALLOWANCE, terminal, project_id, configuration))


def remaining_distribution_limit_of(
    st: Json,
    controller: Controller,
    *,
    terminal: str,
    project_id: int,
    configuration: int,
    number: int,
) -> Tuple[int, int]:
    """Return (remaining, limit_currency) for one period of one configuration."""
    limit, limit_currency = controller.distribution_limit_of(int(project_id), int(configuration), terminal)
    used = used_distribution_of(st, terminal, project_id, number)
    return max(0, int(limit) - used), int(limit_currency)


def record_distribution(
    st: Json,
    *,
    terminal: str,
    project_id: int,
    period: Period,
    amount: int,
    currency: int,
    min_returned: int,
    ledger_currency: int,
    controller: Controller,
    prices: PriceOracle,
    precision: int = PRICE_PRECISION,
) -> int:
    """Record a payout against the period's distribution limit.

    Returns the amount debited from the ledger, in the ledger currency.
    """
    if not period.configured:
        raise InvalidPeriod(details={"project_id": int(project_id)})
    if period.metadata.paused_distributions:
        raise DistributionsPaused(details={"project_id": int(project_id), "period": int(period.number)})

    limit, limit_currency = controller.distribution_limit_of(int(project_id), int(period.configuration), terminal)
    if int(currency) != int(limit_currency):
        raise CurrencyMismatch(
            details={"project_id": int(project_id), "currency": int(currency), "limit_currency": int(limit_currency)}
        )

    new_used = checked_add(used_distribution_of(st, terminal, project_id, period.number), int(amount))
    if new_used > int(limit):
        raise DistributionLimitExceeded(
            details={"project_id": int(project_id), "limit": str(int(limit)), "requested_total": str(new_used)}
        )

    ledger_amount = convert_currency(prices, int(amount), int(limit_currency), int(ledger_currency), precision)
    balance = balance_of(st, terminal, project_id)
    if ledger_amount > balance:
        raise InsufficientStoreBalance(
            details={"project_id": int(project_id), "balance": str(balance), "amount": str(ledger_amount)}
        )
    if ledger_amount < int(min_returned):
        raise BelowMinimumReturn(
            details={"amount": str(ledger_amount), "min_returned": str(int(min_returned))}
        )

    ensure_branch(st, USED_DISTRIBUTION, terminal, project_id)[str(period.number)] = str(new_used)
    use_balance(st, terminal, project_id, ledger_amount, error=InsufficientStoreBalance)
    return ledger_amount


def record_used_allowance(
    st: Json,
    *,
    terminal: str,
    project_id: int,
    period: Period,
    amount: int,
    currency: int,
    min_returned: int,
    ledger_currency: int,
    overflow: int,
    controller: Controller,
    prices: PriceOracle,
    precision: int = PRICE_PRECISION,
) -> int:
    """Record discretionary spending against the configuration's allowance.

    The requested amount may be in any currency; it is converted into the
    allowance currency for the ceiling check and into the ledger currency for
    the debit. The debit must be covered by `overflow`, the part of the
    balance not committed to the distribution limit.
    """
    if not period.configured:
        raise InvalidPeriod(details={"project_id": int(project_id)})

    allowance, allowance_currency = controller.allowance_of(int(project_id), int(period.configuration), terminal)
    if int(allowance) == 0 and int(amount) > 0:
        raise DistributionLimitExceeded("allowance_exceeded", {"project_id": int(project_id), "allowance": "0"})
    counted = convert_currency(prices, int(amount), int(currency), int(allowance_currency), precision)
    new_used = checked_add(used_allowance_of(st, terminal, project_id, period.configuration), counted)
    if new_used > int(allowance):
        raise DistributionLimitExceeded(
            "allowance_exceeded",
            {"project_id": int(project_id), "allowance": str(int(allowance)), "requested_total": str(new_used)},
        )

    ledger_amount = convert_currency(prices, int(amount), int(currency), int(ledger_currency), precision)
    if ledger_amount > int(overflow):
        raise InsufficientStoreBalance(
            "inadequate_overflow",
            {"project_id": int(project_id), "overflow": str(int(overflow)), "amount": str(ledger_amount)},
        )
    if ledger_amount < int(min_returned):
        raise BelowMinimumReturn(
            details={"amount": str(ledger_amount), "min_returned": str(int(min_returned))}
        )

    ensure_branch(st, USED_ALLOWANCE, terminal, project_id)[str(period.configuration)] = str(new_used)
    use_balance(st, terminal, project_id, ledger_amount, error=InsufficientStoreBalance)
    return ledger_amount
