# src/flexvault/runtime/vault_config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from flexvault.ledger.constants import (
    DEFAULT_COOLDOWN_SECONDS,
    DEFAULT_MIN_REWARDABLE_SUPPLY,
    MAX_LOSS_FLOOR,
    MAX_TARGET_RATE,
    SCALE,
)

Json = Dict[str, Any]


def _as_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


@dataclass(frozen=True)
class VaultConfig:
    vault_name: str
    vault_symbol: str
    base_asset_symbol: str
    base_asset_decimals: int
    mode: str  # "dev" | "testnet" | "prod"

    # Single SQLite DB file holding the state snapshot.
    db_path: str

    # Engine bounds, scaled by SCALE (10**18 == 100%).
    target_rate: int
    loss_floor: int
    cooldown_seconds: int
    min_rewardable_supply: int

    # Principals wired at deployment.
    admin: str
    custodian: str
    allocator: str
    processor: str

    api_host: str
    api_port: int

    log_level: str


_ALLOWED_MODES = {"dev", "testnet", "prod"}


def validate_vault_config(cfg: VaultConfig) -> None:
    """Fail-fast validation for operator config."""

    for name in ("vault_name", "vault_symbol", "base_asset_symbol", "db_path", "admin", "custodian"):
        v = getattr(cfg, name)
        if not isinstance(v, str) or not v.strip():
            raise ValueError(f"{name} must be a non-empty string")

    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {_ALLOWED_MODES}; got: {cfg.mode!r}")

    if int(cfg.base_asset_decimals) < 0 or int(cfg.base_asset_decimals) > 36:
        raise ValueError(f"base_asset_decimals must be 0..36; got: {cfg.base_asset_decimals}")

    if int(cfg.target_rate) < 0 or int(cfg.target_rate) > MAX_TARGET_RATE:
        raise ValueError(f"target_rate must be 0..{MAX_TARGET_RATE}; got: {cfg.target_rate}")

    if int(cfg.loss_floor) < 0 or int(cfg.loss_floor) > MAX_LOSS_FLOOR:
        raise ValueError(f"loss_floor must be 0..{MAX_LOSS_FLOOR}; got: {cfg.loss_floor}")

    if int(cfg.cooldown_seconds) < 0:
        raise ValueError(f"cooldown_seconds must be >= 0; got: {cfg.cooldown_seconds}")

    if int(cfg.min_rewardable_supply) < 0:
        raise ValueError(f"min_rewardable_supply must be >= 0; got: {cfg.min_rewardable_supply}")

    if int(cfg.api_port) <= 0 or int(cfg.api_port) > 65535:
        raise ValueError(f"api_port must be 1..65535; got: {cfg.api_port}")

    if cfg.custodian.strip().lower() == cfg.admin.strip().lower() and mode == "prod":
        # A single key holding both custody and admin defeats the custodian split.
        raise ValueError("custodian must differ from admin in prod mode")


def default_vault_config() -> VaultConfig:
    return VaultConfig(
        vault_name="Flex Vault",
        vault_symbol="fvUSD",
        base_asset_symbol="USD",
        base_asset_decimals=6,
        mode="prod",
        db_path="./data/flexvault.db",
        target_rate=SCALE // 10,
        loss_floor=SCALE // 10,
        cooldown_seconds=DEFAULT_COOLDOWN_SECONDS,
        min_rewardable_supply=DEFAULT_MIN_REWARDABLE_SUPPLY,
        admin="admin",
        custodian="custodian",
        allocator="allocator",
        processor="processor",
        api_host="0.0.0.0",
        api_port=8000,
        log_level="INFO",
    )


def _read_raw(p: Path) -> Json:
    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in {".yaml", ".yml"}:
        raw = yaml.safe_load(text)
    else:
        raw = json.loads(text)
    if not isinstance(raw, dict):
        raise ValueError("vault config must be a mapping")
    return raw


def read_vault_config_file(path: str) -> VaultConfig:
    raw = _read_raw(Path(path))
    d = default_vault_config()

    cfg = VaultConfig(
        vault_name=_as_str(raw.get("vault_name"), d.vault_name),
        vault_symbol=_as_str(raw.get("vault_symbol"), d.vault_symbol),
        base_asset_symbol=_as_str(raw.get("base_asset_symbol"), d.base_asset_symbol),
        base_asset_decimals=_as_int(raw.get("base_asset_decimals"), d.base_asset_decimals),
        mode=_as_str(raw.get("mode"), d.mode),
        db_path=_as_str(raw.get("db_path"), d.db_path),
        target_rate=_as_int(raw.get("target_rate"), d.target_rate),
        loss_floor=_as_int(raw.get("loss_floor"), d.loss_floor),
        cooldown_seconds=_as_int(raw.get("cooldown_seconds"), d.cooldown_seconds),
        min_rewardable_supply=_as_int(raw.get("min_rewardable_supply"), d.min_rewardable_supply),
        admin=_as_str(raw.get("admin"), d.admin),
        custodian=_as_str(raw.get("custodian"), d.custodian),
        allocator=_as_str(raw.get("allocator"), d.allocator),
        processor=_as_str(raw.get("processor"), d.processor),
        api_host=_as_str(raw.get("api_host"), d.api_host),
        api_port=_as_int(raw.get("api_port"), d.api_port),
        log_level=_as_str(raw.get("log_level"), d.log_level),
    )

    validate_vault_config(cfg)
    return cfg


def load_vault_config(*, config_path: Optional[str] = None) -> VaultConfig:
    p = config_path or os.environ.get("FLEXVAULT_CONFIG_PATH")
    if p:
        return read_vault_config_file(p)

    cfg = default_vault_config()
    validate_vault_config(cfg)
    return cfg


def apply_vault_config_to_env(cfg: VaultConfig) -> None:
    validate_vault_config(cfg)
    os.environ["FLEXVAULT_MODE"] = (cfg.mode or "prod").strip().lower()
    os.environ["FLEXVAULT_DB_PATH"] = cfg.db_path
    os.environ["FLEXVAULT_TARGET_RATE"] = str(int(cfg.target_rate))
    os.environ["FLEXVAULT_LOSS_FLOOR"] = str(int(cfg.loss_floor))
    os.environ["FLEXVAULT_COOLDOWN_SECONDS"] = str(int(cfg.cooldown_seconds))
    os.environ["FLEXVAULT_API_HOST"] = cfg.api_host
    os.environ["FLEXVAULT_API_PORT"] = str(int(cfg.api_port))
    os.environ["FLEXVAULT_LOG_LEVEL"] = cfg.log_level


__all__ = [
    "VaultConfig",
    "apply_vault_config_to_env",
    "default_vault_config",
    "load_vault_config",
    "read_vault_config_file",
    "validate_vault_config",
]
