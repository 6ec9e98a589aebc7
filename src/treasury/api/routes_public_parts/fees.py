from __future__ import annotations

from fastapi import APIRouter, Request

from treasury.api.routes_public_parts.common import _caller, _engine
from treasury.api.schemas import HeldFeeItem, HeldFeesResponse, ProcessedFeeItem, ProcessFeesResponse

router = APIRouter()


@router.get("/projects/{project_id}/held-fees", response_model=HeldFeesResponse)
def held_fees(project_id: int, request: Request) -> HeldFeesResponse:
    eng = _engine(request)
    items = [HeldFeeItem(**h.to_json()) for h in eng.held_fees_of(project_id)]
    return HeldFeesResponse(project_id=project_id, held_fees=items)


@router.post("/projects/{project_id}/fees/process", response_model=ProcessFeesResponse)
def process_fees(project_id: int, request: Request) -> ProcessFeesResponse:
    """Drain the held-fee list. Anyone may trigger it; an empty list is a no-op."""
    eng = _engine(request)
    report = eng.process_fees(_caller(request), project_id)
    return ProcessFeesResponse(project_id=project_id, processed=[ProcessedFeeItem(**r) for r in report])
