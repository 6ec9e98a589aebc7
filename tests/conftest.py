from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Local "src/" wins over an installed "treasury" distribution.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


@pytest.fixture(autouse=True)
def _isolated_process_state(monkeypatch: pytest.MonkeyPatch):
    """Counters and the once-per-process .env latch are module globals."""
    from treasury.env import reset_dotenv_loaded
    from treasury.runtime import metrics

    for k in ("TREASURY_CONFIG_PATH", "TREASURY_DB_PATH", "TREASURY_METRICS_ENABLED"):
        monkeypatch.delenv(k, raising=False)
    metrics.reset()
    reset_dotenv_loaded()
    yield
    reset_dotenv_loaded()
