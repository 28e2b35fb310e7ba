#!/usr/bin/env python3

"""Production-ish smoke run for flexvault.

It verifies:
  - a fresh SQLite db boots a full vault system
  - the FastAPI app serves /v1/health, /v1/engine and /v1/strategy
  - a reopened db reattaches to the same deployment

Usage:
  python3 scripts/prod_smoke.py

Optional env overrides:
  FLEXVAULT_CONFIG_PATH=./vault.yaml
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import replace

from fastapi.testclient import TestClient

from flexvault.api.app import create_app
from flexvault.runtime.bootstrap import build_system
from flexvault.runtime.vault_config import load_vault_config


def main() -> int:
    with tempfile.TemporaryDirectory(prefix="flexvault-smoke-") as td:
        cfg = replace(load_vault_config(), db_path=os.path.join(td, "flexvault.db"))

        first = build_system(cfg)
        client = TestClient(create_app(system=first))
        for path in ("/v1/health", "/v1/engine", "/v1/strategy", "/v1/sweeper"):
            r = client.get(path)
            if r.status_code != 200:
                raise RuntimeError(f"{path} -> {r.status_code}: {r.text}")

        again = build_system(cfg)
        if again.engine.address != first.engine.address:
            raise RuntimeError("reopened db did not reattach to the same deployment")

    print("OK: flexvault smoke")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
