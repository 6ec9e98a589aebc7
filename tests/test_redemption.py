from __future__ import annotations

import pytest

from treasury.ledger.constants import CURRENCY_ETH, CURRENCY_USD, MAX_REDEMPTION_RATE, PERMISSION_REDEEM
from treasury.runtime.engine import TreasuryEngine
from treasury.runtime.engine_boot import Collaborators
from treasury.runtime.errors import (
    BelowMinimumReturn,
    InsufficientTokens,
    InvalidPeriod,
    RedemptionsPaused,
    Unauthorized,
)
from treasury.runtime.redemption import reclaimable_overflow
from treasury.testing.harness import ONE, build_test_engine


def test_full_supply_reclaims_entire_overflow_at_any_rate() -> None:
    for rate in (0, 1, 3333, 5000, 9999, MAX_REDEMPTION_RATE):
        assert reclaimable_overflow(1000, 100, 100, rate) == 1000
        assert reclaimable_overflow(987_654_321, 12_345, 12_345, rate) == 987_654_321


def test_full_rate_is_pro_rata() -> None:
    assert reclaimable_overflow(1000, 30, 100, MAX_REDEMPTION_RATE) == 300


def test_bonding_curve_values() -> None:
    assert reclaimable_overflow(1000, 10, 100, 5000) == 55
    # base = 69, inner = 3333 + 466 = 3799, 69 * 3799 / 10000 = 26
    assert reclaimable_overflow(999, 7, 100, 3333) == 26


def test_zero_overflow_reclaims_nothing() -> None:
    assert reclaimable_overflow(0, 10, 100, 5000) == 0


def _project(balance: int = 1000, limit: int = 0, **metadata):
    h = build_test_engine()
    h.add_project(2, owner="alice")
    h.set_period(2, **metadata)
    h.set_limit(2, limit, CURRENCY_ETH)
    h.fund(2, balance)
    h.mint(2, "bob", 10)
    h.mint(2, "carol", 90)
    return h


def test_ballot_rate_applies_while_ballot_active() -> None:
    h = _project(redemption_rate=MAX_REDEMPTION_RATE, ballot_redemption_rate=5000)
    assert h.engine.current_reclaimable_overflow_of(2, 10, 100) == 100

    h.periods.set_ballot_state(2, "active")
    assert h.engine.current_reclaimable_overflow_of(2, 10, 100) == 55


def test_redeem_debits_balance_and_records_event() -> None:
    h = _project()
    settled = h.engine.redeem_tokens_of("bob", holder="bob", project_id=2, token_count=10)
    assert settled.amount == 100
    assert settled.beneficiary == "bob"
    assert h.engine.balance_of(2) == 900

    last = h.engine.events(1)[0]
    assert last["event"] == "redemption_recorded"
    assert last["fields"]["reclaim_amount"] == "100"
    assert last["fields"]["total_supply"] == "100"


def test_redeem_permission_is_checked_against_holder() -> None:
    h = _project()
    with pytest.raises(Unauthorized):
        h.engine.redeem_tokens_of("alice", holder="bob", project_id=2, token_count=1)

    h.permissions.grant("alice", "bob", 2, PERMISSION_REDEEM)
    h.engine.redeem_tokens_of("alice", holder="bob", project_id=2, token_count=1)
    assert h.engine.balance_of(2) == 990


def test_redeem_prices_against_the_token_store_supply() -> None:
    h = _project(redemption_rate=5000)
    settled = h.engine.redeem_tokens_of("bob", holder="bob", project_id=2, token_count=1)
    # base = 1000 * 1 / 100 = 10, 10 * (5000 + 50) / 10000 = 5
    assert settled.amount == 5
    assert h.engine.balance_of(2) == 995


def test_redeem_rejects_more_tokens_than_the_holder_has() -> None:
    h = _project()
    before = len(h.engine.events(1000))
    with pytest.raises(InsufficientTokens) as e:
        h.engine.redeem_tokens_of("bob", holder="bob", project_id=2, token_count=11)
    assert e.value.reason == "holder_balance_too_low"

    with pytest.raises(InsufficientTokens):
        h.engine.redeem_tokens_of("dave", holder="dave", project_id=2, token_count=1)
    assert h.engine.balance_of(2) == 1000
    assert len(h.engine.events(1000)) == before


def test_token_count_bounds() -> None:
    h = _project()
    with pytest.raises(InsufficientTokens):
        h.engine.record_redemption_for(h.terminal, holder="bob", project_id=2, token_count=0, total_supply=100)
    with pytest.raises(InsufficientTokens):
        h.engine.record_redemption_for(h.terminal, holder="bob", project_id=2, token_count=101, total_supply=100)
    assert h.engine.balance_of(2) == 1000


def test_zero_reclaim_emits_event_without_touching_balance() -> None:
    h = _project(balance=1000, limit=1000)
    before = len(h.engine.events(1000))
    _, reclaim = h.engine.record_redemption_for(
        h.terminal, holder="bob", project_id=2, token_count=50, total_supply=100
    )
    assert reclaim == 0
    assert h.engine.balance_of(2) == 1000
    assert len(h.engine.events(1000)) == before + 1


def test_below_minimum_and_paused() -> None:
    h = _project()
    with pytest.raises(BelowMinimumReturn):
        h.engine.record_redemption_for(
            h.terminal, holder="bob", project_id=2, token_count=10, total_supply=100, min_reclaimed=101
        )

    h.set_period(2, paused_redeem=True)
    with pytest.raises(RedemptionsPaused):
        h.engine.record_redemption_for(h.terminal, holder="bob", project_id=2, token_count=10, total_supply=100)
    assert h.engine.balance_of(2) == 1000


def test_redemption_can_draw_on_project_wide_overflow() -> None:
    c = Collaborators()
    h = build_test_engine(collaborators=c)
    usd = TreasuryEngine(
        currency=CURRENCY_USD,
        owner="terminal-owner",
        period_oracle=c.period_oracle,
        controller=c.controller,
        prices=c.prices,
        directory=c.directory,
        permissions=c.permissions,
        projects=c.projects,
        token_supply=c.token_supply,
    )
    usd.claim_for("terminal-usd")
    h.add_project(2, owner="alice")
    c.directory.add_terminal(2, usd)  # type: ignore[attr-defined]
    h.prices.set_price(CURRENCY_USD, CURRENCY_ETH, ONE)
    h.fund(2, 1000)
    usd.record_added_balance_for("terminal-usd", 2, 1000)

    h.set_period(2)
    assert h.engine.current_reclaimable_overflow_of(2, 50, 100) == 500

    h.set_period(2, use_total_overflow_for_redemptions=True)
    assert h.engine.current_reclaimable_overflow_of(2, 50, 100) == 1000
    _, reclaim = h.engine.record_redemption_for(
        h.terminal, holder="bob", project_id=2, token_count=50, total_supply=100
    )
    assert reclaim == 1000
    assert h.engine.balance_of(2) == 0


def test_period_is_checked_before_overflow_is_priced() -> None:
    h = build_test_engine()
    h.add_project(2, owner="alice")
    h.mint(2, "bob", 100)
    # Unconfigured period with a USD limit and no USD price feed.
    h.set_limit(2, 100, CURRENCY_USD, configuration=0)
    h.fund(2, 1000)

    with pytest.raises(InvalidPeriod):
        h.engine.redeem_tokens_of("bob", holder="bob", project_id=2, token_count=10)
