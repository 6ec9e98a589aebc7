# src/treasury/api/routes_public.py
from __future__ import annotations

from fastapi import APIRouter

from treasury.api.routes_public_parts.fees import router as fees_router
from treasury.api.routes_public_parts.health import router as health_router
from treasury.api.routes_public_parts.metrics import router as metrics_router
from treasury.api.routes_public_parts.projects import router as projects_router

public_router = APIRouter()

public_router.include_router(health_router, prefix="/v1", tags=["health"])
public_router.include_router(projects_router, prefix="/v1", tags=["projects"])
public_router.include_router(fees_router, prefix="/v1", tags=["fees"])

# Ops
public_router.include_router(metrics_router, prefix="/v1", tags=["metrics"])
