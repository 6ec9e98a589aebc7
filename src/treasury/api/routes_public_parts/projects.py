from __future__ import annotations

from fastapi import APIRouter, Query, Request

from treasury.api.routes_public_parts.common import _amount_param, _engine
from treasury.api.schemas import (
    AmountResponse,
    ReclaimableResponse,
    RemainingLimitResponse,
    TotalOverflowResponse,
)

router = APIRouter()


@router.get("/projects/{project_id}/balance", response_model=AmountResponse)
def project_balance(project_id: int, request: Request) -> AmountResponse:
    eng = _engine(request)
    return AmountResponse(project_id=project_id, amount=str(eng.balance_of(project_id)))


@router.get("/projects/{project_id}/overflow", response_model=AmountResponse)
def project_overflow(project_id: int, request: Request) -> AmountResponse:
    eng = _engine(request)
    return AmountResponse(project_id=project_id, amount=str(eng.current_overflow_of(project_id)))


@router.get("/projects/{project_id}/overflow/total", response_model=TotalOverflowResponse)
def project_total_overflow(
    project_id: int,
    request: Request,
    currency: int = Query(..., ge=1),
) -> TotalOverflowResponse:
    eng = _engine(request)
    total = eng.current_total_overflow_of(project_id, currency)
    return TotalOverflowResponse(project_id=project_id, amount=str(total), currency=currency)


@router.get("/projects/{project_id}/distribution-limit/remaining", response_model=RemainingLimitResponse)
def project_remaining_limit(
    project_id: int,
    request: Request,
    configuration: int = Query(..., ge=0),
    number: int = Query(..., ge=0),
) -> RemainingLimitResponse:
    eng = _engine(request)
    remaining = eng.remaining_distribution_limit_of(project_id, configuration, number)
    return RemainingLimitResponse(
        project_id=project_id, amount=str(remaining), configuration=configuration, number=number
    )


@router.get("/projects/{project_id}/reclaimable", response_model=ReclaimableResponse)
def project_reclaimable(
    project_id: int,
    request: Request,
    token_count: str = Query(...),
    total_supply: str = Query(...),
) -> ReclaimableResponse:
    tc = _amount_param("token_count", token_count)
    ts = _amount_param("total_supply", total_supply)
    eng = _engine(request)
    amount = eng.current_reclaimable_overflow_of(project_id, tc, ts)
    return ReclaimableResponse(project_id=project_id, amount=str(amount), token_count=str(tc), total_supply=str(ts))
