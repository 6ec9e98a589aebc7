from __future__ import annotations

from fastapi import APIRouter, Request

from treasury.api.routes_public_parts.common import _engine
from treasury.api.schemas import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
def health(request: Request) -> HealthResponse:
    eng = _engine(request)
    return HealthResponse(terminal=eng.identity, currency=eng.currency, fee=eng.fee)
