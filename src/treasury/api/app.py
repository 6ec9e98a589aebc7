from __future__ import annotations

import os
from typing import Optional

from fastapi import FastAPI

from treasury.api.errors import ApiError, api_error_handler, treasury_error_handler
from treasury.api.routes_public import public_router
from treasury.api.structured_logging import RequestLogMiddleware
from treasury.runtime.engine import TreasuryEngine
from treasury.runtime.engine_boot import build_engine as _build_engine
from treasury.runtime.errors import TreasuryError


def build_engine() -> TreasuryEngine:
    """Build the engine for API runtime.

    This wrapper exists so tests can monkeypatch `treasury.api.app.build_engine`
    without reaching into runtime modules.
    """
    return _build_engine()


def create_app(*, engine: Optional[TreasuryEngine] = None) -> FastAPI:
    """Create the FastAPI application.

    engine:
      - None (default): boot one from config/environment via build_engine()
      - an instance: attach it as-is (tests, embedding hosts)
    """
    mode = os.environ.get("TREASURY_MODE", "prod").strip().lower()

    # Disable docs in production.
    if mode == "prod":
        app = FastAPI(title="Treasury API", docs_url=None, redoc_url=None, openapi_url=None)
    else:
        app = FastAPI(title="Treasury API")

    app.state.engine = engine if engine is not None else build_engine()

    app.add_middleware(RequestLogMiddleware)
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(TreasuryError, treasury_error_handler)

    app.include_router(public_router)
    return app
