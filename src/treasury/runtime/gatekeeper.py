# src/treasury/runtime/gatekeeper.py
from __future__ import annotations

"""Access gatekeeper.

Two kinds of checks guard the engine:

  - terminal binding: the engine serves exactly one terminal. The binding is
    written once by claim() and every mutating record_* call must come from it.
  - delegated permission: holder/owner operations (allowance use, redemption,
    migration) accept the account itself or an operator the permission oracle
    vouches for.
"""

from typing import Any, Dict

from treasury.runtime.errors import AlreadyClaimed, Unauthorized
from treasury.runtime.oracles import PermissionOracle

Json = Dict[str, Any]


def _as_str(v: Any) -> str:
    return str(v).strip() if isinstance(v, (str, int)) else ""


def claimed_terminal(st: Json) -> str:
    return _as_str(st.get("claimed_terminal"))


def claim(st: Json, terminal: str) -> None:
    who = _as_str(terminal)
    if not who:
        raise Unauthorized("empty_terminal_identity")
    current = claimed_terminal(st)
    if current:
        raise AlreadyClaimed("terminal_already_claimed", {"claimed_terminal": current, "terminal": who})
    st["claimed_terminal"] = who


def require_terminal(st: Json, caller: str) -> str:
    """Assert `caller` is the claimed terminal and return it."""
    current = claimed_terminal(st)
    if not current:
        raise Unauthorized("terminal_not_claimed", {"caller": _as_str(caller)})
    if _as_str(caller) != current:
        raise Unauthorized("caller_not_terminal", {"caller": _as_str(caller)})
    return current


def require_permission(
    permissions: PermissionOracle,
    *,
    caller: str,
    account: str,
    project_id: int,
    permission_id: int,
) -> None:
    """Allow `account` itself, or an operator holding `permission_id` for it."""
    who = _as_str(caller)
    acct = _as_str(account)
    if who and who == acct:
        return
    if who and permissions.has_permission(who, acct, int(project_id), int(permission_id)):
        return
    raise Unauthorized(
        "missing_permission",
        {"caller": who, "account": acct, "project_id": int(project_id), "permission_id": int(permission_id)},
    )


def require_owner(owner: str, caller: str) -> None:
    if not _as_str(owner) or _as_str(caller) != _as_str(owner):
        raise Unauthorized("caller_not_owner", {"caller": _as_str(caller)})
