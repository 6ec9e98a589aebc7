from __future__ import annotations

from dataclasses import dataclass, field
import copy
from typing import Any, Dict, List


from treasury.ledger.constants import DEFAULT_FEE
from treasury.ledger.types import HeldFee

Json = Dict[str, Any]

# Top-level state keys.
BALANCES = "balances"
USED_DISTRIBUTION = "used_distribution"
USED_ALLOWANCE = "used_allowance"
HELD_FEES = "held_fees"


def as_amount(v: Any) -> int:
    """Parse a stored amount (decimal string or int). Absent reads as zero."""
    if v is None or v == "":
        return 0
    if isinstance(v, bool):
        raise ValueError("bool is not a valid amount")
    iv = int(v)
    if iv < 0:
        raise ValueError(f"stored amount is negative: {iv}")
    return iv


def initial_state(fee: int = DEFAULT_FEE) -> Json:
    return {
        "claimed_terminal": "",
        "fee": int(fee),
        BALANCES: {},
        USED_DISTRIBUTION: {},
        USED_ALLOWANCE: {},
        HELD_FEES: {},
    }


def lookup(st: Json, *path: Any) -> Any:
    """Walk nested dicts by stringified keys; None when any level is missing."""
    cur: Any = st
    for k in path:
        if not isinstance(cur, dict):
            return None
        cur = cur.get(str(k))
    return cur


def ensure_branch(st: Json, *path: Any) -> Json:
    """Return the dict at `path`, creating missing levels."""
    cur = st
    for k in path:
        key = str(k)
        nxt = cur.get(key)
        if not isinstance(nxt, dict):
            nxt = {}
            cur[key] = nxt
        cur = nxt
    return cur


@dataclass(frozen=True, slots=True)
class TreasuryView:
    """
    Immutable read-only view over an engine state snapshot.
    """

    claimed_terminal: str = ""
    fee: int = DEFAULT_FEE
    balances: Dict[str, Any] = field(default_factory=dict)
    used_distribution: Dict[str, Any] = field(default_factory=dict)
    used_allowance: Dict[str, Any] = field(default_factory=dict)
    held_fees: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_state(cls, st: Json) -> "TreasuryView":
        def _d(key: str) -> Dict[str, Any]:
            v = st.get(key)
            return copy.deepcopy(v) if isinstance(v, dict) else {}

        return cls(
            claimed_terminal=str(st.get("claimed_terminal") or ""),
            fee=int(st.get("fee", DEFAULT_FEE)),
            balances=_d(BALANCES),
            used_distribution=_d(USED_DISTRIBUTION),
            used_allowance=_d(USED_ALLOWANCE),
            held_fees=_d(HELD_FEES),
        )

    def balance_of(self, terminal: str, project_id: int) -> int:
        return as_amount(lookup(self.balances, terminal, project_id))

    def used_distribution_of(self, terminal: str, project_id: int, number: int) -> int:
        return as_amount(lookup(self.used_distribution, terminal, project_id, number))

    def used_allowance_of(self, terminal: str, project_id: int, configuration: int) -> int:
        return as_amount(lookup(self.used_allowance, terminal, project_id, configuration))

    def held_fees_of(self, terminal: str, project_id: int) -> List[HeldFee]:
        raw = lookup(self.held_fees, terminal, project_id)
        if not isinstance(raw, list):
            return []
        return [HeldFee.from_json(x) for x in raw if isinstance(x, dict)]
