"""
Treasury collaborators (read-only from the engine's point of view).

The engine never owns periods, limits, prices, permissions or the terminal
registry. It asks for them per call through the protocols below. Every call is
assumed synchronous and side-effect free; a collaborator that cannot answer
must raise, which aborts the enclosing engine operation.

In-process implementations live in treasury.runtime.oracles_memory.
"""

from __future__ import annotations

from typing import Optional, Protocol, Sequence, Tuple, runtime_checkable

from treasury.ledger.constants import PRICE_PRECISION
from treasury.ledger.fixed_point import convert
from treasury.ledger.types import Period


# ---------------------------------------------------------------------
# Period / controller
# ---------------------------------------------------------------------

@runtime_checkable
class PeriodOracle(Protocol):
    def current_period(self, project_id: int) -> Period: ...

    def ballot_state_of(self, project_id: int) -> str: ...


@runtime_checkable
class Controller(Protocol):
    """Source of per-configuration spending ceilings.

    Both methods return (amount, currency).
    """

    def distribution_limit_of(self, project_id: int, configuration: int, terminal: str) -> Tuple[int, int]: ...

    def allowance_of(self, project_id: int, configuration: int, terminal: str) -> Tuple[int, int]: ...


# ---------------------------------------------------------------------
# Prices / permissions / projects
# ---------------------------------------------------------------------

@runtime_checkable
class PriceOracle(Protocol):
    def price_for(self, from_currency: int, to_currency: int, precision: int) -> int: ...


@runtime_checkable
class PermissionOracle(Protocol):
    def has_permission(self, operator: str, account: str, project_id: int, permission_id: int) -> bool: ...


@runtime_checkable
class Projects(Protocol):
    def owner_of(self, project_id: int) -> str: ...

    def handle_of(self, project_id: int) -> str: ...


@runtime_checkable
class FeeGauge(Protocol):
    def current_discount_for(self, project_id: int) -> int: ...


@runtime_checkable
class TokenSupply(Protocol):
    """Read side of the project token store; minting and burning stay there."""

    def total_supply_of(self, project_id: int) -> int: ...

    def balance_of(self, holder: str, project_id: int) -> int: ...

# ---------------------------------------------------------------------
# Terminals / directory
# ---------------------------------------------------------------------

@runtime_checkable
class PaymentTerminal(Protocol):
    """What the directory hands back for a terminal identity."""

    @property
    def identity(self) -> str: ...

    @property
    def currency(self) -> int: ...

    def current_overflow_of(self, project_id: int) -> int: ...

    def add_to_balance_of(self, project_id: int, amount: int, memo: str = "") -> int: ...

    def pay(
        self,
        project_id: int,
        amount: int,
        *,
        payer: str,
        beneficiary: str,
        min_returned_tokens: int = 0,
        memo: str = "",
    ) -> Tuple[Period, int, int]: ...


@runtime_checkable
class Directory(Protocol):
    def terminals_of(self, project_id: int) -> Sequence[str]: ...

    def controller_of(self, project_id: int) -> str: ...

    def primary_terminal_of(self, project_id: int, currency: int) -> Optional[str]: ...

    def terminal_of(self, identity: str) -> PaymentTerminal: ...


def convert_currency(
    prices: PriceOracle,
    amount: int,
    from_currency: int,
    to_currency: int,
    precision: int = PRICE_PRECISION,
) -> int:
    """Convert through the price oracle; same-currency amounts skip the feed."""
    if int(from_currency) == int(to_currency):
        return int(amount)
    price = prices.price_for(int(from_currency), int(to_currency), int(precision))
    return convert(int(amount), int(from_currency), int(to_currency), int(price), int(precision))
