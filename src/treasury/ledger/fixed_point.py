# src/treasury/ledger/fixed_point.py
from __future__ import annotations

"""Fixed-point integer kernel.

All amounts are non-negative Python ints interpreted as uint256. Every
division floors, so rounding never pays out more than the ledger holds.

Functions:
  - mul_div: floor(x * y / denominator) with uint256 bounds on the product
  - checked_add: x + y within uint256
  - rescale: move a value between decimal precisions
  - convert: apply a price feed quoted at `precision` fractional digits
"""

from typing import Any

from treasury.ledger.constants import MAX_UINT256, PRICE_PRECISION
from treasury.runtime.errors import ArithmeticOverflow, DivisionByZero


def _uint(v: Any, *, name: str) -> int:
    # bool is an int subclass; disallow it explicitly
    if isinstance(v, bool) or not isinstance(v, int):
        raise TypeError(f"{name} must be int (got {type(v).__name__})")
    if v < 0 or v > MAX_UINT256:
        raise ArithmeticOverflow("value_out_of_range", {name: str(v)})
    return v


def mul_div(x: int, y: int, denominator: int) -> int:
    """Return floor(x * y / denominator).

    Raises DivisionByZero when denominator is 0 and ArithmeticOverflow when the
    intermediate product does not fit in uint256.
    """
    x = _uint(x, name="x")
    y = _uint(y, name="y")
    denominator = _uint(denominator, name="denominator")
    if denominator == 0:
        raise DivisionByZero("zero_divisor", {"x": str(x), "y": str(y)})

    product = x * y
    if product > MAX_UINT256:
        raise ArithmeticOverflow("product_overflow", {"x": str(x), "y": str(y)})
    return product // denominator


def checked_add(x: int, y: int) -> int:
    total = _uint(x, name="x") + _uint(y, name="y")
    if total > MAX_UINT256:
        raise ArithmeticOverflow("sum_overflow", {"x": str(x), "y": str(y)})
    return total


def rescale(value: int, from_decimals: int, to_decimals: int) -> int:
    """Re-express `value` from `from_decimals` to `to_decimals` fractional digits.

    Scaling down truncates.
    """
    if from_decimals < 0 or to_decimals < 0:
        raise ValueError("decimals must be >= 0")
    if to_decimals == from_decimals:
        return _uint(value, name="value")
    if to_decimals > from_decimals:
        return mul_div(value, 10 ** (to_decimals - from_decimals), 1)
    return mul_div(value, 1, 10 ** (from_decimals - to_decimals))


def mul_rescale(x: int, y: int, scale_from: int, scale_to: int) -> int:
    """Multiply two fixed-point values and express the product at `scale_to`.

    `scale_from` is the number of fractional digits the raw product carries
    (the sum of the operands' precisions).
    """
    if scale_from < 0 or scale_to < 0:
        raise ValueError("scales must be >= 0")
    if scale_to >= scale_from:
        return rescale(mul_div(x, y, 1), 0, scale_to - scale_from)
    return mul_div(x, y, 10 ** (scale_from - scale_to))


def convert(
    amount: int,
    from_currency: int,
    to_currency: int,
    price: int,
    precision: int = PRICE_PRECISION,
) -> int:
    """Convert `amount` of `from_currency` into `to_currency`.

    `price` is the feed value priceFor(from_currency, to_currency, precision):
    how many units of `from_currency` one unit of `to_currency` is worth, with
    `precision` fractional digits. Same-currency conversion never consults the
    price. A zero price raises DivisionByZero.
    """
    if from_currency == to_currency:
        return _uint(amount, name="amount")
    return mul_div(amount, 10**precision, price)
