from __future__ import annotations

import pytest

from treasury.ledger.constants import CURRENCY_ETH, CURRENCY_USD, PERMISSION_MIGRATE
from treasury.ledger.state import initial_state
from treasury.ledger.types import Period, PeriodMetadata
from treasury.runtime.balances import add_balance, balance_of, record_migration, use_balance
from treasury.runtime.engine import TreasuryEngine
from treasury.runtime.errors import (
    InsufficientBalance,
    InvalidPeriod,
    MigrationNotAllowed,
    TerminalIncompatible,
    Unauthorized,
)
from treasury.runtime.engine_boot import Collaborators
from treasury.testing.harness import build_test_engine


def test_add_and_use_balance() -> None:
    st = initial_state()
    assert balance_of(st, "t", 1) == 0
    assert add_balance(st, "t", 1, 100) == 100
    assert add_balance(st, "t", 1, 50) == 150
    assert use_balance(st, "t", 1, 120) == 30
    assert balance_of(st, "t", 1) == 30
    # Scoped per terminal.
    assert balance_of(st, "other", 1) == 0


def test_use_balance_never_goes_negative() -> None:
    st = initial_state()
    add_balance(st, "t", 1, 10)
    with pytest.raises(InsufficientBalance):
        use_balance(st, "t", 1, 11)
    assert balance_of(st, "t", 1) == 10


def test_negative_amounts_are_rejected() -> None:
    with pytest.raises(ValueError):
        add_balance(initial_state(), "t", 1, -1)


def test_record_migration_requires_flag_and_zeroes_balance() -> None:
    st = initial_state()
    add_balance(st, "t", 1, 70)

    closed = Period(number=1, configuration=1)
    with pytest.raises(MigrationNotAllowed):
        record_migration(st, "t", 1, closed)
    assert balance_of(st, "t", 1) == 70

    with pytest.raises(InvalidPeriod):
        record_migration(st, "t", 1, Period(number=0, configuration=0))

    open_ = Period(number=1, configuration=1, metadata=PeriodMetadata(allow_terminal_migration=True))
    assert record_migration(st, "t", 1, open_) == 70
    assert balance_of(st, "t", 1) == 0


def _second_terminal(c: Collaborators, identity: str, currency: int) -> TreasuryEngine:
    eng = TreasuryEngine(
        currency=currency,
        owner="terminal-owner",
        period_oracle=c.period_oracle,
        controller=c.controller,
        prices=c.prices,
        directory=c.directory,
        permissions=c.permissions,
        projects=c.projects,
        token_supply=c.token_supply,
    )
    eng.claim_for(identity)
    c.directory.register(eng)  # type: ignore[attr-defined]
    return eng


def test_migrate_moves_whole_balance_to_destination() -> None:
    c = Collaborators()
    h = build_test_engine(collaborators=c)
    dest = _second_terminal(c, "terminal-eth-v2", h.engine.currency)
    h.add_project(2, owner="alice")
    h.set_period(2, allow_terminal_migration=True)
    h.fund(2, 1234)

    moved = h.engine.migrate("alice", 2, "terminal-eth-v2")
    assert moved == 1234
    assert h.engine.balance_of(2) == 0
    assert dest.balance_of(2) == 1234

    names = [e["event"] for e in h.engine.events()]
    assert names[-1] == "migration_recorded"


def test_migrate_permission_and_compatibility() -> None:
    c = Collaborators()
    h = build_test_engine(collaborators=c)
    _second_terminal(c, "terminal-usd", CURRENCY_USD)
    _second_terminal(c, "terminal-eth-v2", h.engine.currency)
    h.add_project(2, owner="alice")
    h.set_period(2, allow_terminal_migration=True)
    h.fund(2, 10)

    with pytest.raises(Unauthorized):
        h.engine.migrate("mallory", 2, "terminal-eth-v2")

    with pytest.raises(TerminalIncompatible):
        h.engine.migrate("alice", 2, "terminal-usd")

    h.permissions.grant("ops", "alice", 2, PERMISSION_MIGRATE)
    assert h.engine.migrate("ops", 2, "terminal-eth-v2") == 10


def test_migrate_blocked_without_flag_leaves_balance() -> None:
    c = Collaborators()
    h = build_test_engine(collaborators=c)
    _second_terminal(c, "terminal-eth-v2", h.engine.currency)
    h.add_project(2, owner="alice")
    h.set_period(2)
    h.fund(2, 10)

    with pytest.raises(MigrationNotAllowed):
        h.engine.migrate("alice", 2, "terminal-eth-v2")
    assert h.engine.balance_of(2) == 10


def test_record_migration_by_terminal() -> None:
    h = build_test_engine()
    h.add_project(2, owner="alice")
    h.set_period(2, allow_terminal_migration=True)
    h.fund(2, 99)
    assert h.engine.record_migration(h.terminal, 2) == 99
    assert h.engine.balance_of(2) == 0


def _project_with_held_fee(h) -> None:
    h.add_project(2, owner="alice", handle="alice")
    h.set_period(2, hold_fees=True)
    h.set_limit(2, 1000, CURRENCY_ETH)
    h.fund(2, 1500)
    h.engine.distribute_payouts_of("anyone", 2, 1000, CURRENCY_ETH)


def test_blocked_migration_leaves_held_fees_untouched() -> None:
    c = Collaborators()
    h = build_test_engine(collaborators=c)
    _second_terminal(c, "terminal-eth-v2", h.engine.currency)
    _project_with_held_fee(h)
    before = h.engine.events(1000)

    with pytest.raises(MigrationNotAllowed):
        h.engine.migrate("alice", 2, "terminal-eth-v2")

    assert len(h.engine.held_fees_of(2)) == 1
    assert h.engine.balance_of(1) == 0
    assert h.engine.balance_of(2) == 500
    assert h.engine.events(1000) == before


def test_migration_settles_held_fees_in_the_same_commit() -> None:
    c = Collaborators()
    h = build_test_engine(collaborators=c)
    dest = _second_terminal(c, "terminal-eth-v2", h.engine.currency)
    _project_with_held_fee(h)
    h.set_period(2, hold_fees=True, allow_terminal_migration=True)
    seq_before = h.engine.events(1)[0]["seq"]

    assert h.engine.migrate("alice", 2, "terminal-eth-v2") == 500
    assert h.engine.held_fees_of(2) == []
    assert h.engine.balance_of(1) == 48
    assert dest.balance_of(2) == 500

    new = [e["event"] for e in h.engine.events(1000) if e["seq"] > seq_before]
    assert new == ["fees_processed", "fee_taken", "payment_recorded", "migration_recorded"]
