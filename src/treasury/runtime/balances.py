# src/treasury/runtime/balances.py
from __future__ import annotations

from typing import Any, Dict

from treasury.ledger.fixed_point import checked_add
from treasury.ledger.state import BALANCES, as_amount, ensure_branch, lookup
from treasury.ledger.types import Period
from treasury.runtime.errors import InsufficientBalance, InvalidPeriod, MigrationNotAllowed, TreasuryError

Json = Dict[str, Any]


def _as_amount_arg(v: Any) -> int:
    if isinstance(v, bool) or not isinstance(v, int) or v < 0:
        raise ValueError(f"amount must be a non-negative int (got {v!r})")
    return v


def balance_of(st: Json, terminal: str, project_id: int) -> int:
    return as_amount(lookup(st, BALANCES, terminal, project_id))


def _set_balance(st: Json, terminal: str, project_id: int, value: int) -> None:
    ensure_branch(st, BALANCES, terminal)[str(project_id)] = str(int(value))


def add_balance(st: Json, terminal: str, project_id: int, amount: int) -> int:
    """Credit `amount`; returns the new balance."""
    amt = _as_amount_arg(amount)
    new_balance = checked_add(balance_of(st, terminal, project_id), amt)
    _set_balance(st, terminal, project_id, new_balance)
    return new_balance


def use_balance(
    st: Json,
    terminal: str,
    project_id: int,
    amount: int,
    *,
    error: type[TreasuryError] = InsufficientBalance,
) -> int:
    """Debit `amount` after checking it is covered; returns the new balance.

    `error` lets callers report a shortfall with their own taxonomy member.
    """
    amt = _as_amount_arg(amount)
    current = balance_of(st, terminal, project_id)
    if amt > current:
        raise error(details={"project_id": int(project_id), "balance": str(current), "amount": str(amt)})
    _set_balance(st, terminal, project_id, current - amt)
    return current - amt


def record_migration(st: Json, terminal: str, project_id: int, period: Period) -> int:
    """Zero the balance and return what it held.

    Moving the funds is the caller's job.
    """
    if not period.configured:
        raise InvalidPeriod(details={"project_id": int(project_id)})
    if not period.metadata.allow_terminal_migration:
        raise MigrationNotAllowed(details={"project_id": int(project_id), "period": int(period.number)})

    prior = balance_of(st, terminal, project_id)
    _set_balance(st, terminal, project_id, 0)
    return prior
