from __future__ import annotations

"""Pydantic response schemas for the public API.

Amounts are decimal strings: uint256 values do not survive JSON number
parsing in most clients.
"""

from typing import List

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    ok: bool = True
    terminal: str = Field(default="", description="Claimed terminal identity; empty until claimed")
    currency: int
    fee: int


class AmountResponse(BaseModel):
    ok: bool = True
    project_id: int
    amount: str = Field(..., description="Decimal string")


class TotalOverflowResponse(AmountResponse):
    currency: int


class RemainingLimitResponse(AmountResponse):
    configuration: int
    number: int


class ReclaimableResponse(AmountResponse):
    token_count: str
    total_supply: str


class HeldFeeItem(BaseModel):
    amount: str
    fee: int
    beneficiary: str
    memo: str = ""


class HeldFeesResponse(BaseModel):
    ok: bool = True
    project_id: int
    held_fees: List[HeldFeeItem] = Field(default_factory=list)


class ProcessedFeeItem(BaseModel):
    amount: str
    fee: int
    fee_amount: str
    beneficiary: str


class ProcessFeesResponse(BaseModel):
    ok: bool = True
    project_id: int
    processed: List[ProcessedFeeItem] = Field(default_factory=list)
