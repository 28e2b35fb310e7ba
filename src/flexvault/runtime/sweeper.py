from __future__ import annotations

"""Rewards sweeper.

Holds base-asset yield that arrives from outside (e.g. a yield buffer), forwards
it to the custodian and books it through the engine's reward path. The sweeper
must hold REWARDS_PROCESSOR on its engine.

Anything it cannot book in the current window stays on the sweeper until the
next one.
"""

from typing import Any, Dict, Optional

from flexvault.ledger import token_book
from flexvault.ledger.constants import DEFAULT_ADMIN, REWARDS_SWEEPER, SCALE, YEAR
from flexvault.runtime.accounting import AccountingModule, CooldownState
from flexvault.runtime.asset_token import AssetToken
from flexvault.runtime.errors import AccountingTokenMismatch, CannotSweepRewards, InvalidConfiguration
from flexvault.runtime.gates import CapabilityRegistry, require_amount, require_not_zero, resolve_registry
from flexvault.runtime.world import World, transactional

Json = Dict[str, Any]


class RewardsSweeper:
    def __init__(self, world: World, address: str, *, capabilities: Optional[CapabilityRegistry] = None) -> None:
        self.world = world
        self.address = str(address)
        self.capabilities = resolve_registry(world, self.address, capabilities)

    @classmethod
    def deploy(cls, world: World, *, accounting_module: str, admin: str, sweeper: Optional[str] = None) -> "RewardsSweeper":
        with world.atomic():
            engine = AccountingModule(world, require_not_zero(accounting_module, field="accounting_module"))
            addr = world.new_address("rewards_sweeper")
            world.state["sweepers"][addr] = {"accounting_module": engine.address}
            sw = cls(world, addr)
            sw.capabilities.bootstrap(DEFAULT_ADMIN, admin)
            if sweeper:
                sw.capabilities.bootstrap(REWARDS_SWEEPER, sweeper)
            return sw

    def _record(self) -> Json:
        rec = self.world.state.get("sweepers", {}).get(self.address)
        if not isinstance(rec, dict):
            raise InvalidConfiguration("unknown_sweeper", {"sweeper": self.address})
        return rec

    def accounting_module(self) -> str:
        return str(self._record().get("accounting_module", ""))

    def engine(self) -> AccountingModule:
        return AccountingModule(self.world, self.accounting_module())

    # --- views ---

    def held_balance(self) -> int:
        return token_book.balance_of(self.world.state, self.engine().base_asset(), self.address)

    def can_sweep_rewards(self) -> bool:
        return self.engine().cooldown_state() is CooldownState.IDLE and self.held_balance() > 0

    def max_rewards(self) -> int:
        """Ceiling for this window: total_assets * target_rate * elapsed // (YEAR * SCALE)."""
        engine = self.engine()
        elapsed = self.world.now() - engine.latest_checkpoint().timestamp
        if elapsed <= 0:
            return 0
        total_assets = engine.strategy_vault().total_assets()
        return total_assets * engine.target_rate() * elapsed // (YEAR * SCALE)

    def preview_sweep_up_to_apr_max(self) -> int:
        if not self.can_sweep_rewards():
            return 0
        return min(self.max_rewards(), self.held_balance())

    # --- sweeping ---

    def _require_can_sweep(self) -> None:
        engine = self.engine()
        if engine.cooldown_state() is not CooldownState.IDLE:
            raise CannotSweepRewards(
                "cooldown_active", {"now": self.world.now(), "next_update_window": engine.next_update_window()}
            )
        if self.held_balance() <= 0:
            raise CannotSweepRewards("nothing_held")

    def _sweep(self, amount: int) -> int:
        engine = self.engine()
        AssetToken(self.world, engine.base_asset()).transfer(self.address, engine.custodian(), amount)
        engine.process_rewards(self.address, amount)
        self.world.emit("RewardsSwept", sweeper=self.address, accounting_module=engine.address, amount=amount)
        return amount

    @transactional
    def sweep_rewards_up_to_apr_max(self, sender: str) -> int:
        self._require_can_sweep()
        held = self.held_balance()
        ceiling = self.max_rewards()
        amount = min(ceiling, held)
        if amount <= 0:
            raise CannotSweepRewards("zero_amount", {"max_rewards": ceiling, "held": held})
        return self._sweep(amount)

    @transactional
    def sweep_rewards(self, sender: str, amount: int) -> int:
        self.capabilities.require(sender, REWARDS_SWEEPER)
        amt = require_amount(amount)
        self._require_can_sweep()
        return self._sweep(amt)

    # --- admin ---

    @transactional
    def set_accounting_module(self, sender: str, accounting_module: str) -> None:
        self.capabilities.require(sender, DEFAULT_ADMIN)
        new = AccountingModule(self.world, require_not_zero(accounting_module, field="accounting_module"))
        old_addr = self.accounting_module()
        if old_addr:
            old = AccountingModule(self.world, old_addr)
            if old.accounting_token() != new.accounting_token():
                raise AccountingTokenMismatch(old.accounting_token(), new.accounting_token())
        self._record()["accounting_module"] = new.address
        self.world.emit("SweeperAccountingModuleUpdated", sweeper=self.address, old=old_addr, new=new.address)


__all__ = ["RewardsSweeper"]
