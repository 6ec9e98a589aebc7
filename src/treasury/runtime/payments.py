# src/treasury/runtime/payments.py
from __future__ import annotations

from typing import Any, Dict, Tuple

from treasury.ledger.constants import PRICE_PRECISION, WEIGHT_PRECISION
from treasury.ledger.fixed_point import mul_div
from treasury.ledger.types import Period
from treasury.runtime.balances import add_balance
from treasury.runtime.errors import BelowMinimumReturn, InvalidPeriod, PaymentsPaused
from treasury.runtime.oracles import PriceOracle, convert_currency

Json = Dict[str, Any]


def payment_weight(
    period: Period,
    *,
    ledger_currency: int,
    base_weight_currency: int,
    prices: PriceOracle,
    precision: int = PRICE_PRECISION,
) -> int:
    """Tokens per unit of ledger currency, at WEIGHT_PRECISION.

    The period weight is quoted in the base weight currency.
    """
    return convert_currency(prices, int(period.weight), int(ledger_currency), int(base_weight_currency), precision)


def record_payment(
    st: Json,
    *,
    terminal: str,
    project_id: int,
    period: Period,
    amount: int,
    min_returned_tokens: int,
    ledger_currency: int,
    base_weight_currency: int,
    prices: PriceOracle,
    precision: int = PRICE_PRECISION,
) -> Tuple[int, int]:
    """Credit a payment and return (weight, token_count).

    Minting the tokens stays with the caller.
    """
    if not period.configured:
        raise InvalidPeriod(details={"project_id": int(project_id)})
    if period.metadata.paused_pay:
        raise PaymentsPaused(details={"project_id": int(project_id), "period": int(period.number)})

    weight = payment_weight(
        period,
        ledger_currency=ledger_currency,
        base_weight_currency=base_weight_currency,
        prices=prices,
        precision=precision,
    )

    token_count = 0
    if int(amount) > 0:
        token_count = mul_div(int(amount), weight, 10**WEIGHT_PRECISION)

    if token_count < int(min_returned_tokens):
        raise BelowMinimumReturn(
            "token_count_below_minimum",
            {"token_count": str(token_count), "min_returned_tokens": str(int(min_returned_tokens))},
        )

    if int(amount) > 0:
        add_balance(st, terminal, project_id, int(amount))
    return weight, token_count
