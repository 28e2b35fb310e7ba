# src/flexvault/runtime/bootstrap.py
from __future__ import annotations

"""Wire a complete vault system from a VaultConfig.

Creation order:

  base asset -> ledger token -> strategy -> rate provider -> engine
  -> bind token and strategy to the engine -> custodian allowance -> sweeper
  -> capability grants -> deployment record

The deployment record (state["deployment"]) lets a persisted state be
reattached with VaultSystem.from_state().
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from flexvault.ledger.constants import (
    ALLOCATOR,
    ASSET_MANAGER,
    LOSS_PROCESSOR,
    MAX_UINT256,
    PAUSER,
    REWARDS_PROCESSOR,
    UNPAUSER,
)
from flexvault.runtime.accounting import AccountingModule
from flexvault.runtime.accounting_token import AccountingToken
from flexvault.runtime.asset_token import AssetToken
from flexvault.runtime.errors import InvalidConfiguration
from flexvault.runtime.rate_provider import FixedRateProvider
from flexvault.runtime.sqlite_db import SqliteDB, SqliteStateStore
from flexvault.runtime.strategy import FlexStrategy, load_strategy
from flexvault.runtime.sweeper import RewardsSweeper
from flexvault.runtime.vault_config import VaultConfig, load_vault_config
from flexvault.runtime.vault_logging import log_event
from flexvault.runtime.world import World

_log = logging.getLogger("flexvault.bootstrap")

_DEPLOYMENT_KEYS = ("base_asset", "accounting_token", "strategy", "rate_provider", "accounting_module", "sweeper")


@dataclass
class VaultSystem:
    world: World
    base_asset: AssetToken
    accounting_token: AccountingToken
    strategy: FlexStrategy
    rate_provider: FixedRateProvider
    engine: AccountingModule
    sweeper: RewardsSweeper

    @classmethod
    def from_state(cls, world: World) -> "VaultSystem":
        dep = world.state.get("deployment") or {}
        missing = [k for k in _DEPLOYMENT_KEYS if not dep.get(k)]
        if missing:
            raise InvalidConfiguration("deployment_incomplete", {"missing": missing})
        return cls(
            world=world,
            base_asset=AssetToken(world, dep["base_asset"]),
            accounting_token=AccountingToken(world, dep["accounting_token"]),
            strategy=load_strategy(world, dep["strategy"]),
            rate_provider=FixedRateProvider(world, dep["rate_provider"]),
            engine=AccountingModule(world, dep["accounting_module"]),
            sweeper=RewardsSweeper(world, dep["sweeper"]),
        )


def deploy_vault_system(world: World, cfg: VaultConfig, *, base_asset: Optional[str] = None) -> VaultSystem:
    admin = cfg.admin
    with world.atomic():
        if base_asset:
            base = AssetToken(world, base_asset)
        else:
            base = AssetToken.deploy(
                world,
                name=cfg.base_asset_symbol,
                symbol=cfg.base_asset_symbol,
                decimals=cfg.base_asset_decimals,
                admin=admin,
            )

        token = AccountingToken.deploy(world, tracked_asset=base.address, admin=admin)
        strategy = FlexStrategy.deploy(world, name=cfg.vault_name, symbol=cfg.vault_symbol, base_asset=base.address, admin=admin)
        rp = FixedRateProvider.deploy(world, base_asset=base.address, accounting_token=token.address)
        strategy.set_rate_provider(admin, rp.address)

        engine = AccountingModule.deploy(
            world,
            strategy=strategy.address,
            accounting_token=token.address,
            admin=admin,
            safe=admin,
            custodian=cfg.custodian,
            target_rate=cfg.target_rate,
            loss_floor=cfg.loss_floor,
            cooldown_seconds=cfg.cooldown_seconds,
            min_rewardable_supply=cfg.min_rewardable_supply,
        )
        token.set_accounting_module(admin, engine.address)
        strategy.set_accounting_module(admin, engine.address)

        # Standing allowance from the custodian back to the engine for withdrawals.
        base.approve(cfg.custodian, engine.address, MAX_UINT256)

        sweeper = RewardsSweeper.deploy(world, accounting_module=engine.address, admin=admin, sweeper=cfg.processor)

        engine.capabilities.grant(admin, REWARDS_PROCESSOR, cfg.processor)
        engine.capabilities.grant(admin, LOSS_PROCESSOR, cfg.processor)
        engine.capabilities.grant(admin, REWARDS_PROCESSOR, sweeper.address)
        strategy.capabilities.grant(admin, ALLOCATOR, cfg.allocator)
        for cap in (PAUSER, UNPAUSER, ASSET_MANAGER):
            strategy.capabilities.grant(admin, cap, admin)

        world.state["deployment"] = {
            "base_asset": base.address,
            "accounting_token": token.address,
            "strategy": strategy.address,
            "rate_provider": rp.address,
            "accounting_module": engine.address,
            "sweeper": sweeper.address,
            "custodian": cfg.custodian,
            "deployed_at": world.now(),
        }

    log_event(
        _log,
        "vault_system_deployed",
        strategy=strategy.address,
        accounting_module=engine.address,
        accounting_token=token.address,
        sweeper=sweeper.address,
    )
    return VaultSystem(
        world=world,
        base_asset=base,
        accounting_token=token,
        strategy=strategy,
        rate_provider=rp,
        engine=engine,
        sweeper=sweeper,
    )


def build_system(cfg: Optional[VaultConfig] = None) -> VaultSystem:
    """Open the configured SQLite store and reattach (or create) the vault system."""
    cfg = cfg or load_vault_config()
    store = SqliteStateStore(db=SqliteDB(path=cfg.db_path))
    if store.exists():
        world = World(store.read(), store=store, clock=time.time)
        log_event(_log, "vault_state_loaded", db_path=cfg.db_path, time=world.now())
        return VaultSystem.from_state(world)

    world = World(store=store, clock=time.time)
    return deploy_vault_system(world, cfg)


__all__ = ["VaultSystem", "build_system", "deploy_vault_system"]
