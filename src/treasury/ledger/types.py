"""treasury.ledger.types

Value objects borrowed from collaborators or stored by the engine:
  - PeriodMetadata / Period: the active funding period, read-only
  - HeldFee: a fee deferred until the next process_fees drain
  - ballot states reported by the period oracle
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

from treasury.ledger.constants import MAX_FEE, MAX_REDEMPTION_RATE, MAX_RESERVED_RATE

Json = Dict[str, Any]

BALLOT_ACTIVE = "active"
BALLOT_APPROVED = "approved"
BALLOT_FAILED = "failed"

_BALLOT_STATES = {BALLOT_ACTIVE, BALLOT_APPROVED, BALLOT_FAILED}


def _coerce_int(v: Any, *, field: str) -> int:
    try:
        # bool is an int subclass; disallow it explicitly
        if isinstance(v, bool):
            raise ValueError("bool is not a valid int")
        return int(v)
    except Exception as e:
        raise ValueError(f"field '{field}' must be int-coercible (got {type(v).__name__})") from e


def _require_rate(v: int, *, field: str, max_value: int) -> int:
    iv = _coerce_int(v, field=field)
    if iv < 0 or iv > max_value:
        raise ValueError(f"field '{field}' must be within 0..{max_value}; got: {iv}")
    return iv


def normalize_ballot_state(v: Any) -> str:
    s = str(v or "").strip().lower()
    if s not in _BALLOT_STATES:
        raise ValueError(f"ballot state must be one of {sorted(_BALLOT_STATES)}; got: {v!r}")
    return s


@dataclass(frozen=True, slots=True)
class PeriodMetadata:
    reserved_rate: int = 0
    redemption_rate: int = MAX_REDEMPTION_RATE
    ballot_redemption_rate: int = MAX_REDEMPTION_RATE
    paused_pay: bool = False
    paused_distributions: bool = False
    paused_redeem: bool = False
    hold_fees: bool = False
    allow_terminal_migration: bool = False
    # Redemptions draw on the overflow of every terminal of the project.
    use_total_overflow_for_redemptions: bool = False

    def __post_init__(self) -> None:
        _require_rate(self.reserved_rate, field="reserved_rate", max_value=MAX_RESERVED_RATE)
        _require_rate(self.redemption_rate, field="redemption_rate", max_value=MAX_REDEMPTION_RATE)
        _require_rate(
            self.ballot_redemption_rate, field="ballot_redemption_rate", max_value=MAX_REDEMPTION_RATE
        )

    def to_json(self) -> Json:
        return {
            "reserved_rate": int(self.reserved_rate),
            "redemption_rate": int(self.redemption_rate),
            "ballot_redemption_rate": int(self.ballot_redemption_rate),
            "paused_pay": bool(self.paused_pay),
            "paused_distributions": bool(self.paused_distributions),
            "paused_redeem": bool(self.paused_redeem),
            "hold_fees": bool(self.hold_fees),
            "allow_terminal_migration": bool(self.allow_terminal_migration),
            "use_total_overflow_for_redemptions": bool(self.use_total_overflow_for_redemptions),
        }


@dataclass(frozen=True, slots=True)
class Period:
    """A funding period as reported by the period oracle.

    `number == 0` or `configuration == 0` means the project has not been
    configured yet; every mutating operation rejects such a period.
    """

    number: int
    configuration: int
    weight: int = 0
    start: int = 0
    duration: int = 0
    metadata: PeriodMetadata = field(default_factory=PeriodMetadata)

    @property
    def configured(self) -> bool:
        return int(self.number) != 0 and int(self.configuration) != 0

    def to_json(self) -> Json:
        return {
            "number": int(self.number),
            "configuration": int(self.configuration),
            "weight": str(int(self.weight)),
            "start": int(self.start),
            "duration": int(self.duration),
            "metadata": self.metadata.to_json(),
        }


@dataclass(frozen=True, slots=True)
class HeldFee:
    """A fee deferred at the moment it was incurred.

    `amount` is the pre-fee amount the fee will be computed from and `fee` is
    the (already discounted) rate to apply, in FEE_SCALE units.
    """

    amount: int
    fee: int
    beneficiary: str
    memo: str = ""

    def __post_init__(self) -> None:
        if _coerce_int(self.amount, field="amount") < 0:
            raise ValueError("held fee amount must be >= 0")
        _require_rate(self.fee, field="fee", max_value=MAX_FEE)

    def to_json(self) -> Json:
        # Amounts are stored as decimal strings; they can exceed 2**53.
        return {
            "amount": str(int(self.amount)),
            "fee": int(self.fee),
            "beneficiary": str(self.beneficiary),
            "memo": str(self.memo),
        }

    @classmethod
    def from_json(cls, raw: Json) -> "HeldFee":
        return cls(
            amount=_coerce_int(raw.get("amount", 0), field="amount"),
            fee=_coerce_int(raw.get("fee", 0), field="fee"),
            beneficiary=str(raw.get("beneficiary") or ""),
            memo=str(raw.get("memo") or ""),
        )
