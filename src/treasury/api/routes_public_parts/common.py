from __future__ import annotations

from typing import Any, Dict

from fastapi import Request

from treasury.api.errors import ApiError

Json = Dict[str, Any]


def _engine(request: Request):
    eng = getattr(request.app.state, "engine", None)
    if eng is None:
        raise ApiError.internal("not_ready", "engine not attached to app.state", {})
    return eng


def _caller(request: Request) -> str:
    """Identity the request acts as; the gateway in front sets X-Treasury-Caller."""
    return (request.headers.get("x-treasury-caller") or "").strip() or "anonymous"


def _amount_param(name: str, v: str) -> int:
    """Parse a non-negative decimal-string query param."""
    s = str(v or "").strip()
    if not s.isdigit():
        raise ApiError.bad_request("bad_param", f"{name} must be a non-negative integer", {name: v})
    return int(s)
