# src/treasury/runtime/overflow.py
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from treasury.ledger.constants import PRICE_PRECISION
from treasury.ledger.fixed_point import checked_add
from treasury.ledger.types import Period
from treasury.runtime.balances import balance_of
from treasury.runtime.distribution import remaining_distribution_limit_of
from treasury.runtime.oracles import Controller, Directory, PriceOracle, convert_currency

Json = Dict[str, Any]


def current_overflow_of(
    st: Json,
    *,
    terminal: str,
    project_id: int,
    period: Period,
    ledger_currency: int,
    controller: Controller,
    prices: PriceOracle,
    precision: int = PRICE_PRECISION,
) -> int:
    """Balance not committed to the rest of this period's distribution limit.

    Floored at zero: a limit larger than the balance leaves no overflow.
    """
    balance = balance_of(st, terminal, project_id)
    if balance == 0:
        return 0

    remaining, limit_currency = remaining_distribution_limit_of(
        st,
        controller,
        terminal=terminal,
        project_id=project_id,
        configuration=period.configuration,
        number=period.number,
    )
    committed = 0
    if remaining > 0:
        committed = convert_currency(prices, remaining, limit_currency, ledger_currency, precision)
    return max(0, balance - committed)


def current_total_overflow_of(
    directory: Directory,
    prices: PriceOracle,
    *,
    project_id: int,
    currency: int,
    precision: int = PRICE_PRECISION,
    known: Optional[Mapping[str, int]] = None,
) -> int:
    """Sum of every registered terminal's overflow, expressed in `currency`.

    Each terminal answers for itself, so the terms are already floored at zero
    before they are summed. Reads are independent per terminal and must not
    back a mutating decision taken elsewhere.

    `known` maps terminal identity -> overflow for terminals the caller has
    already evaluated (in their own currency); those are not asked again.
    """
    total = 0
    for identity in directory.terminals_of(int(project_id)):
        terminal = directory.terminal_of(identity)
        if known is not None and identity in known:
            overflow = max(0, int(known[identity]))
        else:
            overflow = max(0, int(terminal.current_overflow_of(int(project_id))))
        if overflow == 0:
            continue
        total = checked_add(
            total, convert_currency(prices, overflow, int(terminal.currency), int(currency), precision)
        )
    return total
