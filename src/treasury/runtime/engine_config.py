# src/treasury/runtime/engine_config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional

from treasury.ledger.constants import CURRENCY_ETH, DEFAULT_FEE, FEE_PROJECT_ID, MAX_FEE, PRICE_PRECISION

Json = Dict[str, Any]


def _as_int(v: Any, default: int) -> int:
    if v is None or isinstance(v, bool):
        return int(default)
    try:
        return int(v)
    except (TypeError, ValueError):
        raise ValueError(f"expected an integer, got: {v!r}") from None


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


@dataclass(frozen=True)
class EngineConfig:
    mode: str  # "dev" | "test" | "prod"

    # SQLite file for the treasury state; empty keeps state in memory.
    db_path: str

    currency: int
    owner: str

    fee: int
    fee_project_id: int

    # 0 means "same as currency".
    base_weight_currency: int
    price_precision: int

    log_level: str


_ALLOWED_MODES = {"dev", "test", "prod"}
_ALLOWED_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def validate_engine_config(cfg: EngineConfig) -> None:
    """Fail-fast validation for operator config."""
    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {sorted(_ALLOWED_MODES)}; got: {cfg.mode!r}")

    if int(cfg.currency) <= 0:
        raise ValueError(f"currency must be > 0; got: {cfg.currency}")

    if not isinstance(cfg.owner, str) or not cfg.owner.strip():
        raise ValueError("owner must be a non-empty string")

    if int(cfg.fee) < 0 or int(cfg.fee) > MAX_FEE:
        raise ValueError(f"fee must be within 0..{MAX_FEE}; got: {cfg.fee}")

    if int(cfg.fee_project_id) <= 0:
        raise ValueError(f"fee_project_id must be > 0; got: {cfg.fee_project_id}")

    if int(cfg.base_weight_currency) < 0:
        raise ValueError(f"base_weight_currency must be >= 0; got: {cfg.base_weight_currency}")

    if int(cfg.price_precision) <= 0 or int(cfg.price_precision) > 36:
        raise ValueError(f"price_precision must be 1..36; got: {cfg.price_precision}")

    if str(cfg.log_level).strip().upper() not in _ALLOWED_LEVELS:
        raise ValueError(f"log_level must be one of {sorted(_ALLOWED_LEVELS)}; got: {cfg.log_level!r}")

    if mode == "prod" and not str(cfg.db_path or "").strip():
        # An in-memory ledger loses every balance on restart.
        raise ValueError("db_path is required in prod mode")


def default_engine_config() -> EngineConfig:
    return EngineConfig(
        mode="dev",
        db_path="",
        currency=CURRENCY_ETH,
        owner="treasury-owner",
        fee=DEFAULT_FEE,
        fee_project_id=FEE_PROJECT_ID,
        base_weight_currency=0,
        price_precision=PRICE_PRECISION,
        log_level="INFO",
    )


def engine_config_from_json(raw: Json) -> EngineConfig:
    if not isinstance(raw, dict):
        raise ValueError("engine config must be a JSON object")

    d = default_engine_config()
    return EngineConfig(
        mode=_as_str(raw.get("mode"), d.mode).strip().lower(),
        db_path=_as_str(raw.get("db_path"), d.db_path),
        currency=_as_int(raw.get("currency"), d.currency),
        owner=_as_str(raw.get("owner"), d.owner),
        fee=_as_int(raw.get("fee"), d.fee),
        fee_project_id=_as_int(raw.get("fee_project_id"), d.fee_project_id),
        base_weight_currency=_as_int(raw.get("base_weight_currency"), d.base_weight_currency),
        price_precision=_as_int(raw.get("price_precision"), d.price_precision),
        log_level=_as_str(raw.get("log_level"), d.log_level).strip().upper(),
    )


def read_engine_config_file(path: str) -> EngineConfig:
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    return engine_config_from_json(raw)


def apply_env_overrides(cfg: EngineConfig) -> EngineConfig:
    db_path = os.environ.get("TREASURY_DB_PATH")
    log_level = os.environ.get("TREASURY_LOG_LEVEL")
    if db_path is not None and db_path.strip():
        cfg = replace(cfg, db_path=db_path.strip())
    if log_level is not None and log_level.strip():
        cfg = replace(cfg, log_level=log_level.strip().upper())
    return cfg


def load_engine_config(*, config_path: Optional[str] = None) -> EngineConfig:
    p = config_path or os.environ.get("TREASURY_CONFIG_PATH")
    cfg = read_engine_config_file(p) if p else default_engine_config()
    cfg = apply_env_overrides(cfg)
    validate_engine_config(cfg)
    return cfg
