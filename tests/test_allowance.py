from __future__ import annotations

import pytest

from treasury.ledger.constants import CURRENCY_ETH, CURRENCY_USD, PERMISSION_USE_ALLOWANCE
from treasury.runtime.errors import DistributionLimitExceeded, InsufficientStoreBalance, Unauthorized
from treasury.testing.harness import ONE, build_test_engine


def _project(*, balance: int = 1000, limit: int = 0, allowance: int = 500):
    h = build_test_engine()
    h.add_project(2, owner="alice", handle="alice")
    h.set_period(2)
    h.set_limit(2, limit, CURRENCY_ETH)
    h.set_allowance(2, allowance, CURRENCY_ETH)
    h.fund(2, balance)
    return h


def test_allowance_usage_survives_period_rollover_within_configuration() -> None:
    h = _project()
    h.engine.record_used_allowance_of(h.terminal, 2, 300, CURRENCY_ETH)

    h.set_period(2, number=2, configuration=1)
    assert h.engine.used_allowance_of(2, 1) == 300
    with pytest.raises(DistributionLimitExceeded) as e:
        h.engine.record_used_allowance_of(h.terminal, 2, 201, CURRENCY_ETH)
    assert e.value.reason == "allowance_exceeded"

    # A new configuration starts from zero.
    h.set_period(2, number=3, configuration=7)
    h.set_allowance(2, 500, CURRENCY_ETH, configuration=7)
    h.engine.record_used_allowance_of(h.terminal, 2, 500, CURRENCY_ETH)
    assert h.engine.used_allowance_of(2, 7) == 500
    assert h.engine.balance_of(2) == 200


def test_allowance_is_bounded_by_overflow() -> None:
    h = _project(balance=1000, limit=800, allowance=500)
    assert h.engine.current_overflow_of(2) == 200

    with pytest.raises(InsufficientStoreBalance) as e:
        h.engine.record_used_allowance_of(h.terminal, 2, 300, CURRENCY_ETH)
    assert e.value.reason == "inadequate_overflow"

    _, spent = h.engine.record_used_allowance_of(h.terminal, 2, 200, CURRENCY_ETH)
    assert spent == 200
    assert h.engine.balance_of(2) == 800


def test_allowance_in_other_currency_is_converted() -> None:
    h = _project(balance=2 * ONE, allowance=ONE)
    # 2000 USD per ETH.
    h.prices.set_price(CURRENCY_USD, CURRENCY_ETH, 2000 * ONE)

    _, spent = h.engine.record_used_allowance_of(h.terminal, 2, 1000 * ONE, CURRENCY_USD)
    assert spent == ONE // 2
    # Usage is counted in the allowance currency.
    assert h.engine.used_allowance_of(2, 1) == ONE // 2


def test_use_allowance_requires_owner_or_operator() -> None:
    h = _project()
    with pytest.raises(Unauthorized):
        h.engine.use_allowance_of("mallory", 2, 100, CURRENCY_ETH)

    h.permissions.grant("treasurer", "alice", 2, PERMISSION_USE_ALLOWANCE)
    settled = h.engine.use_allowance_of("treasurer", 2, 200, CURRENCY_ETH)
    assert settled.beneficiary == "alice"
    assert settled.fee_amount == 10
    assert settled.net_amount == 190
    assert h.engine.balance_of(2) == 800
    assert h.engine.balance_of(1) == 10


def test_zero_allowance_rejects_any_spend() -> None:
    h = _project(allowance=0)
    with pytest.raises(DistributionLimitExceeded):
        h.engine.use_allowance_of("alice", 2, 1, CURRENCY_ETH)
