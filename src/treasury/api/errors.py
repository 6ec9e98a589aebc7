from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from treasury.runtime.errors import TreasuryError

_STATUS_BY_CODE = {
    "unauthorized": 403,
    "already_claimed": 409,
    "terminal_not_found": 404,
}


@dataclass(frozen=True, slots=True)
class ApiError(Exception):
    status_code: int
    code: str
    message: str
    details: Dict[str, Any]

    @staticmethod
    def bad_request(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(400, code, message, details or {})

    @staticmethod
    def not_found(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(404, code, message, details or {})

    @staticmethod
    def internal(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(500, code, message, details or {})


def _error_body(code: str, message: str, details: Any) -> Dict[str, Any]:
    return {"ok": False, "error": {"code": code, "message": message, "details": details or {}}}


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.code, exc.message, exc.details))


async def treasury_error_handler(request: Request, exc: TreasuryError) -> JSONResponse:
    status = _STATUS_BY_CODE.get(exc.code, 400)
    return JSONResponse(status_code=status, content=_error_body(exc.code, exc.reason, exc.details))
