from __future__ import annotations

"""In-process collaborators.

Used by tests, the harness and single-process deployments. Each one keeps
plain dicts and offers setters for wiring; the engine only ever calls the
read methods declared in treasury.runtime.oracles.
"""

from typing import Dict, List, Optional, Set, Tuple

from treasury.ledger.constants import CURRENCY_ETH, PRICE_PRECISION
from treasury.ledger.types import BALLOT_APPROVED, Period, normalize_ballot_state
from treasury.runtime.errors import PriceFeedNotFound, TerminalNotFound
from treasury.runtime.oracles import PaymentTerminal


class MemoryPeriodOracle:
    def __init__(self) -> None:
        self._periods: Dict[int, Period] = {}
        self._ballots: Dict[int, str] = {}

    def set_period(self, project_id: int, period: Period) -> None:
        self._periods[int(project_id)] = period

    def set_ballot_state(self, project_id: int, state: str) -> None:
        self._ballots[int(project_id)] = normalize_ballot_state(state)

    def current_period(self, project_id: int) -> Period:
        # Unknown projects report the unconfigured period.
        return self._periods.get(int(project_id), Period(number=0, configuration=0))

    def ballot_state_of(self, project_id: int) -> str:
        return self._ballots.get(int(project_id), BALLOT_APPROVED)


class MemoryController:
    """Distribution limits and allowances keyed by (project, configuration, terminal)."""

    def __init__(self, *, default_currency: int = CURRENCY_ETH) -> None:
        self._default_currency = int(default_currency)
        self._limits: Dict[Tuple[int, int, str], Tuple[int, int]] = {}
        self._allowances: Dict[Tuple[int, int, str], Tuple[int, int]] = {}

    def set_distribution_limit(self, project_id: int, configuration: int, terminal: str, amount: int, currency: int) -> None:
        self._limits[(int(project_id), int(configuration), str(terminal))] = (int(amount), int(currency))

    def set_allowance(self, project_id: int, configuration: int, terminal: str, amount: int, currency: int) -> None:
        self._allowances[(int(project_id), int(configuration), str(terminal))] = (int(amount), int(currency))

    def distribution_limit_of(self, project_id: int, configuration: int, terminal: str) -> Tuple[int, int]:
        return self._limits.get((int(project_id), int(configuration), str(terminal)), (0, self._default_currency))

    def allowance_of(self, project_id: int, configuration: int, terminal: str) -> Tuple[int, int]:
        return self._allowances.get((int(project_id), int(configuration), str(terminal)), (0, self._default_currency))


class MemoryPrices:
    """Price feeds quoted as priceFor(from, to): units of `from` per unit of `to`.

    A feed registered one way also answers the inverse pair.
    """

    def __init__(self) -> None:
        # (from, to) -> (price, precision)
        self._feeds: Dict[Tuple[int, int], Tuple[int, int]] = {}

    def set_price(self, from_currency: int, to_currency: int, price: int, precision: int = PRICE_PRECISION) -> None:
        if int(price) <= 0:
            raise ValueError("price must be > 0")
        self._feeds[(int(from_currency), int(to_currency))] = (int(price), int(precision))

    @staticmethod
    def _rescale(price: int, have: int, want: int) -> int:
        if want >= have:
            return price * 10 ** (want - have)
        return price // 10 ** (have - want)

    def price_for(self, from_currency: int, to_currency: int, precision: int) -> int:
        if int(from_currency) == int(to_currency):
            return 10 ** int(precision)

        direct = self._feeds.get((int(from_currency), int(to_currency)))
        if direct is not None:
            return self._rescale(direct[0], direct[1], int(precision))

        inverse = self._feeds.get((int(to_currency), int(from_currency)))
        if inverse is not None:
            price = self._rescale(inverse[0], inverse[1], int(precision))
            return 10 ** (2 * int(precision)) // price

        raise PriceFeedNotFound(details={"from_currency": int(from_currency), "to_currency": int(to_currency)})


class MemoryPermissions:
    def __init__(self) -> None:
        self._grants: Set[Tuple[str, str, int, int]] = set()

    def grant(self, operator: str, account: str, project_id: int, permission_id: int) -> None:
        self._grants.add((str(operator), str(account), int(project_id), int(permission_id)))

    def revoke(self, operator: str, account: str, project_id: int, permission_id: int) -> None:
        self._grants.discard((str(operator), str(account), int(project_id), int(permission_id)))

    def has_permission(self, operator: str, account: str, project_id: int, permission_id: int) -> bool:
        return (str(operator), str(account), int(project_id), int(permission_id)) in self._grants


class MemoryProjects:
    def __init__(self) -> None:
        self._owners: Dict[int, str] = {}
        self._handles: Dict[int, str] = {}

    def create(self, project_id: int, *, owner: str, handle: str = "") -> None:
        self._owners[int(project_id)] = str(owner)
        self._handles[int(project_id)] = str(handle)

    def owner_of(self, project_id: int) -> str:
        return self._owners.get(int(project_id), "")

    def handle_of(self, project_id: int) -> str:
        return self._handles.get(int(project_id), "")


class MemoryTokenSupply:
    def __init__(self) -> None:
        self._balances: Dict[Tuple[str, int], int] = {}

    def mint(self, holder: str, project_id: int, amount: int) -> None:
        key = (str(holder), int(project_id))
        self._balances[key] = self._balances.get(key, 0) + int(amount)

    def burn(self, holder: str, project_id: int, amount: int) -> None:
        key = (str(holder), int(project_id))
        held = self._balances.get(key, 0)
        if int(amount) > held:
            raise ValueError(f"cannot burn {amount}; {holder!r} holds {held}")
        self._balances[key] = held - int(amount)

    def total_supply_of(self, project_id: int) -> int:
        return sum(v for (_, pid), v in self._balances.items() if pid == int(project_id))

    def balance_of(self, holder: str, project_id: int) -> int:
        return self._balances.get((str(holder), int(project_id)), 0)


class MemoryDirectory:
    """Terminal registry.

    Terminals are registered as objects so terminal_of() can hand them back;
    the engine itself is a valid registrant.
    """

    def __init__(self) -> None:
        self._terminals: Dict[str, PaymentTerminal] = {}
        self._project_terminals: Dict[int, List[str]] = {}
        self._primary: Dict[Tuple[int, int], str] = {}
        self._controllers: Dict[int, str] = {}

    def register(self, terminal: PaymentTerminal) -> None:
        self._terminals[str(terminal.identity)] = terminal

    def add_terminal(self, project_id: int, terminal: PaymentTerminal, *, primary: bool = False) -> None:
        self.register(terminal)
        ids = self._project_terminals.setdefault(int(project_id), [])
        if terminal.identity not in ids:
            ids.append(str(terminal.identity))
        if primary:
            self._primary[(int(project_id), int(terminal.currency))] = str(terminal.identity)

    def remove_terminal(self, project_id: int, identity: str) -> None:
        ids = self._project_terminals.get(int(project_id), [])
        if str(identity) in ids:
            ids.remove(str(identity))
        for key in [k for k, v in self._primary.items() if k[0] == int(project_id) and v == str(identity)]:
            del self._primary[key]

    def set_controller(self, project_id: int, controller: str) -> None:
        self._controllers[int(project_id)] = str(controller)

    def terminals_of(self, project_id: int) -> List[str]:
        return list(self._project_terminals.get(int(project_id), []))

    def controller_of(self, project_id: int) -> str:
        return self._controllers.get(int(project_id), "")

    def primary_terminal_of(self, project_id: int, currency: int) -> Optional[str]:
        ident = self._primary.get((int(project_id), int(currency)))
        if ident is not None:
            return ident
        # Fall back to the first registered terminal in that currency.
        for candidate in self._project_terminals.get(int(project_id), []):
            if int(self._terminals[candidate].currency) == int(currency):
                return candidate
        return None

    def terminal_of(self, identity: str) -> PaymentTerminal:
        terminal = self._terminals.get(str(identity))
        if terminal is None:
            raise TerminalNotFound("unknown_terminal", {"terminal": str(identity)})
        return terminal


class StaticFeeGauge:
    def __init__(self, discounts: Optional[Dict[int, int]] = None, *, default: int = 0) -> None:
        self._discounts = {int(k): int(v) for k, v in (discounts or {}).items()}
        self._default = int(default)

    def set_discount(self, project_id: int, discount: int) -> None:
        self._discounts[int(project_id)] = int(discount)

    def current_discount_for(self, project_id: int) -> int:
        return self._discounts.get(int(project_id), self._default)
