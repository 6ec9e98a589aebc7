from __future__ import annotations

import pytest

from treasury.ledger.constants import CURRENCY_ETH, CURRENCY_USD
from treasury.runtime.errors import BelowMinimumReturn, InvalidPeriod, PaymentsPaused, Unauthorized
from treasury.testing.harness import ONE, build_test_engine


def test_pay_credits_balance_and_prices_tokens_by_weight() -> None:
    h = build_test_engine()
    h.add_project(2, owner="alice")
    h.set_period(2, weight=10 * ONE)

    period, weight, tokens = h.engine.pay(2, 2 * ONE, payer="bob", beneficiary="bob")
    assert period.number == 1
    assert weight == 10 * ONE
    assert tokens == 20 * ONE
    assert h.engine.balance_of(2) == 2 * ONE


def test_weight_is_rebased_when_quoted_in_another_currency() -> None:
    h = build_test_engine(base_weight_currency=CURRENCY_USD)
    h.add_project(2, owner="alice")
    h.set_period(2, weight=ONE)
    # 1/2000 ETH per USD.
    h.prices.set_price(CURRENCY_ETH, CURRENCY_USD, ONE // 2000)

    _, weight, tokens = h.engine.record_payment_from(
        h.terminal, payer="bob", amount=ONE, project_id=2, beneficiary="bob"
    )
    assert weight == 2000 * ONE
    assert tokens == 2000 * ONE


def test_payment_guards() -> None:
    h = build_test_engine()
    h.add_project(2, owner="alice")

    with pytest.raises(InvalidPeriod):
        h.engine.pay(2, 1, payer="bob", beneficiary="bob")

    h.set_period(2, paused_pay=True)
    with pytest.raises(PaymentsPaused):
        h.engine.pay(2, 1, payer="bob", beneficiary="bob")

    h.set_period(2)
    with pytest.raises(BelowMinimumReturn) as e:
        h.engine.pay(2, 5, payer="bob", beneficiary="bob", min_returned_tokens=6)
    assert e.value.reason == "token_count_below_minimum"
    assert h.engine.balance_of(2) == 0

    with pytest.raises(Unauthorized):
        h.engine.record_payment_from("mallory", payer="bob", amount=1, project_id=2, beneficiary="bob")


def test_zero_payment_is_valid_and_changes_nothing() -> None:
    h = build_test_engine()
    h.add_project(2, owner="alice")
    h.set_period(2)

    _, _, tokens = h.engine.pay(2, 0, payer="bob", beneficiary="bob")
    assert tokens == 0
    assert h.engine.balance_of(2) == 0
    assert h.engine.events(1)[0]["event"] == "payment_recorded"


def test_add_to_balance_mints_nothing() -> None:
    h = build_test_engine()
    h.add_project(2, owner="alice")
    assert h.engine.add_to_balance_of(2, 300, memo="top-up") == 300
    last = h.engine.events(1)[0]
    assert last["event"] == "balance_added"
    assert last["fields"]["memo"] == "top-up"
