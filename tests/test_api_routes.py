from __future__ import annotations

import json
import logging

import pytest
from fastapi.testclient import TestClient

from treasury.api import app as app_module
from treasury.api.app import create_app
from treasury.ledger.constants import CURRENCY_ETH
from treasury.runtime import metrics
from treasury.testing.harness import build_test_engine


def _client(h) -> TestClient:
    return TestClient(create_app(engine=h.engine))


@pytest.fixture
def funded():
    h = build_test_engine()
    h.add_project(2, owner="alice", handle="alice")
    h.set_period(2, hold_fees=True)
    h.set_limit(2, 400, CURRENCY_ETH)
    h.fund(2, 1000)
    return h


def test_health(funded) -> None:
    r = _client(funded).get("/v1/health")
    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True
    assert body["terminal"] == funded.terminal
    assert body["currency"] == CURRENCY_ETH
    assert body["fee"] == 10


def test_balance_and_overflow(funded) -> None:
    c = _client(funded)
    assert c.get("/v1/projects/2/balance").json()["amount"] == "1000"
    assert c.get("/v1/projects/2/overflow").json()["amount"] == "600"

    total = c.get("/v1/projects/2/overflow/total", params={"currency": CURRENCY_ETH}).json()
    assert total["amount"] == "600"
    assert total["currency"] == CURRENCY_ETH


def test_remaining_limit(funded) -> None:
    funded.engine.distribute_payouts_of("anyone", 2, 100, CURRENCY_ETH)
    r = _client(funded).get("/v1/projects/2/distribution-limit/remaining", params={"configuration": 1, "number": 1})
    assert r.status_code == 200
    assert r.json()["amount"] == "300"


def test_reclaimable(funded) -> None:
    c = _client(funded)
    r = c.get("/v1/projects/2/reclaimable", params={"token_count": "10", "total_supply": "100"})
    assert r.status_code == 200
    assert r.json()["amount"] == "60"

    r = c.get("/v1/projects/2/reclaimable", params={"token_count": "101", "total_supply": "100"})
    assert r.status_code == 400
    body = r.json()
    assert body["ok"] is False
    assert body["error"]["code"] == "insufficient_tokens"

    r = c.get("/v1/projects/2/reclaimable", params={"token_count": "-1", "total_supply": "100"})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "bad_param"


def test_held_fees_listed_and_processed(funded) -> None:
    funded.engine.distribute_payouts_of("anyone", 2, 400, CURRENCY_ETH)
    c = _client(funded)

    held = c.get("/v1/projects/2/held-fees").json()["held_fees"]
    assert held == [{"amount": "400", "fee": 10, "beneficiary": "alice", "memo": "Fee from @alice"}]

    r = c.post("/v1/projects/2/fees/process", headers={"X-Treasury-Caller": "keeper"})
    assert r.status_code == 200
    assert r.json()["processed"] == [{"amount": "400", "fee": 10, "fee_amount": "20", "beneficiary": "alice"}]
    assert c.get("/v1/projects/2/held-fees").json()["held_fees"] == []
    assert c.get("/v1/projects/1/balance").json()["amount"] == "20"


def test_metrics_endpoint_is_gated(funded, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("TREASURY_METRICS_ENABLED", raising=False)
    c = _client(funded)
    assert c.get("/v1/metrics").status_code == 404

    monkeypatch.setenv("TREASURY_METRICS_ENABLED", "1")
    metrics.reset()
    funded.engine.add_to_balance_of(2, 5)
    r = c.get("/v1/metrics")
    assert r.status_code == 200
    assert "treasury_events_balance_added_total 1" in r.text


def test_create_app_boots_engine_when_not_given(monkeypatch: pytest.MonkeyPatch) -> None:
    h = build_test_engine()
    monkeypatch.setattr(app_module, "build_engine", lambda: h.engine)
    c = TestClient(create_app())
    assert c.get("/v1/health").json()["terminal"] == h.terminal


def test_docs_hidden_in_prod(funded, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TREASURY_MODE", "prod")
    assert _client(funded).get("/openapi.json").status_code == 404

    monkeypatch.setenv("TREASURY_MODE", "dev")
    assert _client(funded).get("/openapi.json").status_code == 200


def test_requests_are_logged_with_caller(funded, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="treasury.http")
    r = _client(funded).get("/v1/health", headers={"X-Treasury-Caller": "keeper", "X-Request-Id": "req-1"})
    assert r.headers["x-request-id"] == "req-1"

    lines = [json.loads(rec.getMessage()) for rec in caplog.records if rec.name == "treasury.http"]
    assert lines[-1]["event"] == "http_request"
    assert lines[-1]["caller"] == "keeper"
    assert lines[-1]["path"] == "/v1/health"
    assert lines[-1]["status"] == 200
