# src/treasury/runtime/engine_boot.py

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

from treasury.env import load_dotenv_if_present
from treasury.ledger.state import initial_state
from treasury.runtime.engine import TreasuryEngine
from treasury.runtime.engine_config import EngineConfig, load_engine_config
from treasury.runtime.event_log import configure_structured_logging
from treasury.runtime.oracles import (
    Controller,
    Directory,
    FeeGauge,
    PeriodOracle,
    PermissionOracle,
    PriceOracle,
    Projects,
    TokenSupply,
)
from treasury.runtime.oracles_memory import (
    MemoryController,
    MemoryDirectory,
    MemoryPeriodOracle,
    MemoryPermissions,
    MemoryPrices,
    MemoryProjects,
    MemoryTokenSupply,
)
from treasury.runtime.sqlite_db import SqliteDB, SqliteStateStore
from treasury.runtime.state_store import MemoryStateStore, StateStore


@dataclass
class Collaborators:
    period_oracle: PeriodOracle = field(default_factory=MemoryPeriodOracle)
    controller: Controller = field(default_factory=MemoryController)
    prices: PriceOracle = field(default_factory=MemoryPrices)
    directory: Directory = field(default_factory=MemoryDirectory)
    permissions: PermissionOracle = field(default_factory=MemoryPermissions)
    projects: Projects = field(default_factory=MemoryProjects)
    token_supply: TokenSupply = field(default_factory=MemoryTokenSupply)
    fee_gauge: Optional[FeeGauge] = None


def build_store(cfg: EngineConfig) -> StateStore:
    if not str(cfg.db_path or "").strip():
        return MemoryStateStore(initial_state(cfg.fee))
    return SqliteStateStore(db=SqliteDB(path=cfg.db_path), initial=initial_state(cfg.fee))


def build_engine(cfg: Optional[EngineConfig] = None, collaborators: Optional[Collaborators] = None) -> TreasuryEngine:
    """
    Build a TreasuryEngine from an explicit config or, if omitted, from
    TREASURY_CONFIG_PATH / environment.

    Collaborators default to the in-memory implementations; a deployment that
    reads periods, prices or permissions from elsewhere passes its own.
    """
    if cfg is None:
        load_dotenv_if_present()
        cfg = load_engine_config()

    os.environ.setdefault("TREASURY_MODE", cfg.mode)
    configure_structured_logging(cfg.log_level)

    c = collaborators or Collaborators()
    return TreasuryEngine(
        currency=cfg.currency,
        owner=cfg.owner,
        period_oracle=c.period_oracle,
        controller=c.controller,
        prices=c.prices,
        directory=c.directory,
        permissions=c.permissions,
        projects=c.projects,
        token_supply=c.token_supply,
        store=build_store(cfg),
        fee_gauge=c.fee_gauge,
        fee=cfg.fee,
        fee_project_id=cfg.fee_project_id,
        base_weight_currency=cfg.base_weight_currency or None,
        price_precision=cfg.price_precision,
    )
