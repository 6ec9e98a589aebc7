# src/treasury/runtime/fees.py
from __future__ import annotations

"""Fee engine.

Fees are charged on payouts and allowance use:

  net = gross * FEE_SCALE / (FEE_SCALE + effective_fee)     (floor)
  fee = gross - net

so rounding always lands on the protocol's side. A fee gauge may discount the
base rate; out-of-range discounts mean no discount at all.

When the period holds fees, the fee is recorded here as a HeldFee and only
computed and forwarded on the next process_fees drain.
"""

from typing import Any, Dict, List, Tuple

from treasury.ledger.constants import FEE_SCALE, MAX_FEE, MAX_FEE_DISCOUNT
from treasury.ledger.fixed_point import mul_div
from treasury.ledger.state import HELD_FEES, ensure_branch, lookup
from treasury.ledger.types import HeldFee
from treasury.runtime.errors import FeeTooHigh

Json = Dict[str, Any]


def validate_fee(fee: Any) -> int:
    if isinstance(fee, bool) or not isinstance(fee, int) or fee < 0:
        raise ValueError(f"fee must be a non-negative int (got {fee!r})")
    if fee > MAX_FEE:
        raise FeeTooHigh(details={"fee": fee, "max_fee": MAX_FEE})
    return fee


def discounted_fee(fee: int, discount: int) -> int:
    if discount < 0 or discount > MAX_FEE_DISCOUNT:
        return int(fee)
    return int(fee) - mul_div(int(fee), int(discount), MAX_FEE_DISCOUNT)


def compute_fee(amount: int, fee: int, discount: int = 0) -> Tuple[int, int]:
    """Return (fee_amount, net_amount) for a gross `amount`."""
    effective = discounted_fee(fee, discount)
    if effective == 0 or amount == 0:
        return 0, int(amount)
    net = mul_div(int(amount), FEE_SCALE, FEE_SCALE + effective)
    return int(amount) - net, net


def fee_memo(handle: str) -> str:
    return f"Fee from @{handle}"


def held_fees_of(st: Json, terminal: str, project_id: int) -> List[HeldFee]:
    raw = lookup(st, HELD_FEES, terminal, project_id)
    if not isinstance(raw, list):
        return []
    return [HeldFee.from_json(x) for x in raw if isinstance(x, dict)]


def hold_fee(st: Json, terminal: str, project_id: int, held: HeldFee) -> int:
    """Append to the project's held-fee list; returns the new list length."""
    branch = ensure_branch(st, HELD_FEES, terminal)
    items = branch.get(str(project_id))
    if not isinstance(items, list):
        items = []
    items.append(held.to_json())
    branch[str(project_id)] = items
    return len(items)


def drain_held_fees(st: Json, terminal: str, project_id: int) -> List[HeldFee]:
    """Swap the list for an empty one and return what it held, in append order."""
    drained = held_fees_of(st, terminal, project_id)
    branch = lookup(st, HELD_FEES, terminal)
    if isinstance(branch, dict) and str(project_id) in branch:
        branch[str(project_id)] = []
    return drained
