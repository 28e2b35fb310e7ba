from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Local "src/" wins over any installed "flexvault" distribution.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

src_str = str(SRC)
if src_str not in sys.path:
    sys.path.insert(0, src_str)


@pytest.fixture(autouse=True)
def _isolated_vault_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("FLEXVAULT_CONFIG_PATH", raising=False)
    monkeypatch.setenv("FLEXVAULT_LOG_REQUESTS", "1")
