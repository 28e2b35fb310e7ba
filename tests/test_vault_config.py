from __future__ import annotations

import json
import os
from dataclasses import replace
from pathlib import Path

import pytest

from flexvault.ledger.constants import MAX_LOSS_FLOOR, MAX_TARGET_RATE, SCALE
from flexvault.runtime.vault_config import (
    apply_vault_config_to_env,
    default_vault_config,
    load_vault_config,
    read_vault_config_file,
    validate_vault_config,
)


def test_defaults_are_valid_and_prod() -> None:
    cfg = default_vault_config()
    validate_vault_config(cfg)
    assert cfg.mode == "prod"
    assert cfg.target_rate == SCALE // 10


def test_json_file_overrides_defaults(tmp_path: Path) -> None:
    p = tmp_path / "vault.json"
    p.write_text(json.dumps({"mode": "dev", "target_rate": str(SCALE // 20), "api_port": 9001}), encoding="utf-8")
    cfg = read_vault_config_file(str(p))
    assert cfg.mode == "dev"
    assert cfg.target_rate == SCALE // 20
    assert cfg.api_port == 9001
    assert cfg.vault_symbol == default_vault_config().vault_symbol


def test_yaml_file_is_supported(tmp_path: Path) -> None:
    p = tmp_path / "vault.yaml"
    p.write_text("mode: testnet\ncooldown_seconds: 7200\ncustodian: multisig\n", encoding="utf-8")
    cfg = read_vault_config_file(str(p))
    assert cfg.mode == "testnet"
    assert cfg.cooldown_seconds == 7200
    assert cfg.custodian == "multisig"


def test_config_path_from_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    p = tmp_path / "vault.json"
    p.write_text(json.dumps({"vault_name": "Env Vault"}), encoding="utf-8")
    monkeypatch.setenv("FLEXVAULT_CONFIG_PATH", str(p))
    assert load_vault_config().vault_name == "Env Vault"


def test_non_mapping_file_rejected(tmp_path: Path) -> None:
    p = tmp_path / "vault.json"
    p.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(ValueError):
        read_vault_config_file(str(p))


@pytest.mark.parametrize(
    "changes",
    [
        {"mode": "staging"},
        {"target_rate": MAX_TARGET_RATE + 1},
        {"loss_floor": MAX_LOSS_FLOOR + 1},
        {"cooldown_seconds": -1},
        {"api_port": 0},
        {"custodian": ""},
        {"custodian": "admin"},
    ],
)
def test_validation_fails_fast(changes: dict) -> None:
    with pytest.raises(ValueError):
        validate_vault_config(replace(default_vault_config(), **changes))


def test_shared_custodian_allowed_outside_prod() -> None:
    validate_vault_config(replace(default_vault_config(), mode="dev", custodian="admin"))


def test_apply_to_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for k in (
        "FLEXVAULT_MODE",
        "FLEXVAULT_DB_PATH",
        "FLEXVAULT_TARGET_RATE",
        "FLEXVAULT_LOSS_FLOOR",
        "FLEXVAULT_COOLDOWN_SECONDS",
        "FLEXVAULT_API_HOST",
        "FLEXVAULT_API_PORT",
        "FLEXVAULT_LOG_LEVEL",
    ):
        # registers the original value so it is restored after the test
        monkeypatch.setenv(k, "unset")
    cfg = replace(default_vault_config(), mode="DEV", db_path="/tmp/x.db")
    apply_vault_config_to_env(cfg)
    assert os.environ["FLEXVAULT_MODE"] == "dev"
    assert os.environ["FLEXVAULT_DB_PATH"] == "/tmp/x.db"
    assert os.environ["FLEXVAULT_TARGET_RATE"] == str(cfg.target_rate)
