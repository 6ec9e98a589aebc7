from __future__ import annotations

import pytest

from treasury.ledger.constants import PERMISSION_REDEEM
from treasury.ledger.state import initial_state
from treasury.runtime.errors import AlreadyClaimed, Unauthorized
from treasury.runtime.gatekeeper import claim, require_owner, require_permission, require_terminal
from treasury.runtime.oracles_memory import MemoryPermissions
from treasury.testing.harness import build_test_engine


def test_claim_is_write_once() -> None:
    st = initial_state()
    claim(st, "terminal-a")
    assert require_terminal(st, "terminal-a") == "terminal-a"

    with pytest.raises(AlreadyClaimed):
        claim(st, "terminal-b")
    assert st["claimed_terminal"] == "terminal-a"


def test_claim_rejects_empty_identity() -> None:
    with pytest.raises(Unauthorized):
        claim(initial_state(), "  ")


def test_require_terminal_before_claim_and_for_strangers() -> None:
    st = initial_state()
    with pytest.raises(Unauthorized) as e:
        require_terminal(st, "terminal-a")
    assert e.value.reason == "terminal_not_claimed"

    claim(st, "terminal-a")
    with pytest.raises(Unauthorized) as e2:
        require_terminal(st, "mallory")
    assert e2.value.reason == "caller_not_terminal"


def test_require_permission_accepts_account_or_operator() -> None:
    perms = MemoryPermissions()
    require_permission(perms, caller="bob", account="bob", project_id=2, permission_id=PERMISSION_REDEEM)

    with pytest.raises(Unauthorized):
        require_permission(perms, caller="op", account="bob", project_id=2, permission_id=PERMISSION_REDEEM)

    perms.grant("op", "bob", 2, PERMISSION_REDEEM)
    require_permission(perms, caller="op", account="bob", project_id=2, permission_id=PERMISSION_REDEEM)

    # Permissions are scoped per project.
    with pytest.raises(Unauthorized):
        require_permission(perms, caller="op", account="bob", project_id=3, permission_id=PERMISSION_REDEEM)


def test_require_owner() -> None:
    require_owner("root", "root")
    with pytest.raises(Unauthorized):
        require_owner("root", "someone")
    with pytest.raises(Unauthorized):
        require_owner("", "")


def test_engine_rejects_record_calls_from_other_callers() -> None:
    h = build_test_engine()
    h.add_project(2, owner="alice")
    h.fund(2, 500)

    with pytest.raises(Unauthorized):
        h.engine.record_added_balance_for("mallory", 2, 1)
    assert h.engine.balance_of(2) == 500

    with pytest.raises(AlreadyClaimed):
        h.engine.claim_for("terminal-other")
    assert h.engine.identity == h.terminal
