from __future__ import annotations

"""Bounded accrual accounting engine.

The engine custodies nothing itself. It:

  - forwards strategy deposits to the custodian and mints the ledger token 1:1
  - pulls withdrawals back from the custodian and burns the ledger token 1:1
  - applies rewards (mint) and losses (burn) under rate and history bounds
  - keeps an append-only checkpoint log (checkpoint #0 is written at creation)

Bounds (all divisions floor):

  reward bound = target_rate * reference_supply * elapsed // (SCALE * YEAR)
  loss bound   = loss_floor * current_supply // SCALE

The reward reference is the latest checkpoint (supply = current ledger supply)
or an explicit checkpoint index (supply = supply at that checkpoint). `elapsed`
is always measured from the reference checkpoint's timestamp.

Rewards and losses share one cooldown clock: a successful call sets
next_update_window = now + cooldown_seconds.
"""

import enum
from typing import Any, Dict, List, Optional

from flexvault.ledger.checkpoints import Checkpoint, append_checkpoint, get_checkpoint, latest_checkpoint
from flexvault.ledger.constants import (
    DEFAULT_ADMIN,
    DEFAULT_COOLDOWN_SECONDS,
    DEFAULT_MIN_REWARDABLE_SUPPLY,
    LOSS_PROCESSOR,
    MAX_LOSS_FLOOR,
    MAX_TARGET_RATE,
    REWARDS_PROCESSOR,
    SAFE_MANAGER,
    SCALE,
    YEAR,
)
from flexvault.runtime.accounting_token import AccountingToken
from flexvault.runtime.asset_token import AssetToken
from flexvault.runtime.errors import (
    AccountingLimitsExceeded,
    AccountingTokenMismatch,
    InvalidCheckpoint,
    InvalidConfiguration,
    LossLimitsExceeded,
    NotStrategy,
    TvlTooLow,
)
from flexvault.runtime.gates import (
    CapabilityRegistry,
    require_amount,
    require_cooldown_elapsed,
    require_not_zero,
    resolve_registry,
)
from flexvault.runtime.world import World, transactional

Json = Dict[str, Any]


class CooldownState(str, enum.Enum):
    IDLE = "idle"
    COOLING = "cooling"


def reward_bound(target_rate: int, reference_supply: int, elapsed: int) -> int:
    """Maximum mint allowed for `elapsed` seconds of accrual on `reference_supply` (floor)."""
    if elapsed <= 0 or reference_supply <= 0 or target_rate <= 0:
        return 0
    return int(target_rate) * int(reference_supply) * int(elapsed) // (SCALE * YEAR)


def loss_bound(loss_floor: int, supply: int) -> int:
    """Maximum burn allowed against `supply` (floor)."""
    if loss_floor <= 0 or supply <= 0:
        return 0
    return int(loss_floor) * int(supply) // SCALE


def _check_target_rate(rate: int) -> int:
    r = require_amount(rate, field="target_rate")
    if r > MAX_TARGET_RATE:
        raise InvalidConfiguration("target_rate_too_high", {"target_rate": r, "max": MAX_TARGET_RATE})
    return r


def _check_loss_floor(floor: int) -> int:
    f = require_amount(floor, field="loss_floor")
    if f > MAX_LOSS_FLOOR:
        raise InvalidConfiguration("loss_floor_too_high", {"loss_floor": f, "max": MAX_LOSS_FLOOR})
    return f


class AccountingModule:
    def __init__(self, world: World, address: str, *, capabilities: Optional[CapabilityRegistry] = None) -> None:
        self.world = world
        self.address = str(address)
        self.capabilities = resolve_registry(world, self.address, capabilities)

    @classmethod
    def deploy(
        cls,
        world: World,
        *,
        strategy: str,
        accounting_token: str,
        admin: str,
        safe: str,
        custodian: str,
        target_rate: int,
        loss_floor: int,
        cooldown_seconds: int = DEFAULT_COOLDOWN_SECONDS,
        min_rewardable_supply: int = DEFAULT_MIN_REWARDABLE_SUPPLY,
    ) -> "AccountingModule":
        from flexvault.runtime.strategy import load_strategy

        with world.atomic():
            strat = load_strategy(world, strategy)
            token = AccountingToken(world, require_not_zero(accounting_token, field="accounting_token"))
            base_asset = strat.asset()
            if token.tracked_asset() != base_asset:
                raise AccountingTokenMismatch(base_asset, token.tracked_asset())

            addr = world.new_address("accounting_module")
            rec: Json = {
                "strategy": strat.address,
                "base_asset": base_asset,
                "accounting_token": token.address,
                "custodian": "",
                "cooldown_seconds": require_amount(cooldown_seconds, field="cooldown_seconds"),
                "next_update_window": world.now(),
                "target_rate": _check_target_rate(target_rate),
                "loss_floor": _check_loss_floor(loss_floor),
                "min_rewardable_supply": require_amount(min_rewardable_supply, field="min_rewardable_supply"),
                "checkpoints": [],
            }
            world.state["accounting_modules"][addr] = rec

            engine = cls(world, addr)
            rec["custodian"] = engine._verify_custodian(custodian)
            engine.capabilities.bootstrap(DEFAULT_ADMIN, admin)
            engine.capabilities.bootstrap(SAFE_MANAGER, safe)
            append_checkpoint(
                rec["checkpoints"],
                timestamp=world.now(),
                supply=token.total_supply(),
                price_per_unit=strat.convert_to_assets(10 ** strat.decimals()),
            )
            world.emit("AccountingModuleCreated", accounting_module=addr, strategy=strat.address, token=token.address)
            return engine

    def _record(self) -> Json:
        rec = self.world.state.get("accounting_modules", {}).get(self.address)
        if not isinstance(rec, dict):
            raise InvalidConfiguration("unknown_accounting_module", {"accounting_module": self.address})
        return rec

    def _verify_custodian(self, custodian: str) -> str:
        """Best-effort custodian check; the custodian's own security setup is not inspected."""
        c = require_not_zero(custodian, field="custodian")
        rec = self._record()
        if c in (self.address, rec.get("strategy"), rec.get("accounting_token")):
            raise InvalidConfiguration("custodian_is_internal", {"custodian": c})
        return c

    # --- collaborators ---

    def token(self) -> AccountingToken:
        return AccountingToken(self.world, str(self._record()["accounting_token"]))

    def base_asset_token(self) -> AssetToken:
        return AssetToken(self.world, str(self._record()["base_asset"]))

    def strategy_vault(self):
        from flexvault.runtime.strategy import load_strategy

        return load_strategy(self.world, self.strategy())

    # --- views ---

    def strategy(self) -> str:
        return str(self._record().get("strategy", ""))

    def base_asset(self) -> str:
        return str(self._record().get("base_asset", ""))

    def accounting_token(self) -> str:
        return str(self._record().get("accounting_token", ""))

    def custodian(self) -> str:
        return str(self._record().get("custodian", ""))

    def target_rate(self) -> int:
        return int(self._record().get("target_rate", 0))

    def loss_floor(self) -> int:
        return int(self._record().get("loss_floor", 0))

    def cooldown_seconds(self) -> int:
        return int(self._record().get("cooldown_seconds", 0))

    def next_update_window(self) -> int:
        return int(self._record().get("next_update_window", 0))

    def min_rewardable_supply(self) -> int:
        return int(self._record().get("min_rewardable_supply", 0))

    def cooldown_state(self) -> CooldownState:
        if self.world.now() < self.next_update_window():
            return CooldownState.COOLING
        return CooldownState.IDLE

    def checkpoint_count(self) -> int:
        return len(self._record().get("checkpoints") or [])

    def checkpoint(self, index: int) -> Checkpoint:
        return get_checkpoint(self._record().get("checkpoints") or [], index)

    def latest_checkpoint(self) -> Checkpoint:
        return latest_checkpoint(self._record().get("checkpoints") or [])

    def checkpoints(self, offset: int = 0, limit: Optional[int] = None) -> List[Checkpoint]:
        log = self._record().get("checkpoints") or []
        start = max(int(offset), 0)
        end = len(log) if limit is None else start + max(int(limit), 0)
        return [Checkpoint.from_json(cp) for cp in log[start:end]]

    def _reference(self, checkpoint_index: Optional[int]) -> tuple[Checkpoint, int]:
        log = self._record().get("checkpoints") or []
        if checkpoint_index is None:
            return latest_checkpoint(log), self.token().total_supply()
        ref = get_checkpoint(log, checkpoint_index)
        return ref, ref.supply

    def reward_bound(self, checkpoint_index: Optional[int] = None) -> int:
        """Current reward ceiling for the given reference (raises TvlTooLow below the minimum)."""
        ref, supply = self._reference(checkpoint_index)
        minimum = self.min_rewardable_supply()
        if supply < minimum:
            raise TvlTooLow(supply, minimum)
        return reward_bound(self.target_rate(), supply, self.world.now() - ref.timestamp)

    def loss_bound(self) -> int:
        return loss_bound(self.loss_floor(), self.token().total_supply())

    def realized_rate(self, from_index: int, to_index: int) -> int:
        """Annualized price-per-unit growth between two checkpoints, scaled by SCALE (floor)."""
        a = self.checkpoint(from_index)
        b = self.checkpoint(to_index)
        if b.index <= a.index:
            raise InvalidCheckpoint(to_index, self.checkpoint_count())
        dt = b.timestamp - a.timestamp
        if dt <= 0 or a.price_per_unit <= 0:
            return 0
        return (b.price_per_unit - a.price_per_unit) * SCALE * YEAR // (a.price_per_unit * dt)

    # --- strategy entry points ---

    def _only_strategy(self, sender: str) -> None:
        if sender != self.strategy():
            raise NotStrategy(sender)

    @transactional
    def deposit(self, sender: str, amount: int) -> None:
        self._only_strategy(sender)
        amt = require_amount(amount)
        rec = self._record()
        self.base_asset_token().transfer_from(self.address, rec["strategy"], rec["custodian"], amt)
        self.token().mint_to(self.address, rec["strategy"], amt)

    @transactional
    def withdraw(self, sender: str, amount: int, receiver: str) -> None:
        self._only_strategy(sender)
        amt = require_amount(amount)
        rcv = require_not_zero(receiver, field="receiver")
        rec = self._record()
        self.token().burn_from(self.address, rec["strategy"], amt)
        self.base_asset_token().transfer_from(self.address, rec["custodian"], rcv, amt)

    # --- processors ---

    @transactional
    def process_rewards(self, sender: str, amount: int, checkpoint_index: Optional[int] = None) -> Checkpoint:
        self.capabilities.require(sender, REWARDS_PROCESSOR)
        now = self.world.now()
        require_cooldown_elapsed(now, self.next_update_window())
        amt = require_amount(amount)

        bound = self.reward_bound(checkpoint_index)
        if amt > bound:
            raise AccountingLimitsExceeded(amt, bound)

        self.token().mint_to(self.address, self.strategy(), amt)
        cp = self._settle(now)
        self.world.emit(
            "RewardsProcessed",
            accounting_module=self.address,
            amount=amt,
            bound=bound,
            reference_index=checkpoint_index,
            checkpoint=cp.index,
            supply=cp.supply,
        )
        return cp

    @transactional
    def process_losses(self, sender: str, amount: int) -> Checkpoint:
        self.capabilities.require(sender, LOSS_PROCESSOR)
        now = self.world.now()
        require_cooldown_elapsed(now, self.next_update_window())
        amt = require_amount(amount)

        bound = self.loss_bound()
        if amt > bound:
            raise LossLimitsExceeded(amt, bound)

        self.token().burn_from(self.address, self.strategy(), amt)
        cp = self._settle(now)
        self.world.emit(
            "LossesProcessed",
            accounting_module=self.address,
            amount=amt,
            bound=bound,
            checkpoint=cp.index,
            supply=cp.supply,
        )
        return cp

    def _settle(self, now: int) -> Checkpoint:
        strat = self.strategy_vault()
        strat.process_accounting()
        rec = self._record()
        cp = append_checkpoint(
            rec["checkpoints"],
            timestamp=now,
            supply=self.token().total_supply(),
            price_per_unit=strat.convert_to_assets(10 ** strat.decimals()),
        )
        rec["next_update_window"] = now + int(rec.get("cooldown_seconds", 0))
        return cp

    # --- safe manager ---

    @transactional
    def set_target_rate(self, sender: str, target_rate: int) -> None:
        self.capabilities.require(sender, SAFE_MANAGER)
        rec = self._record()
        old = int(rec.get("target_rate", 0))
        rec["target_rate"] = _check_target_rate(target_rate)
        self.world.emit("TargetRateUpdated", accounting_module=self.address, old=old, new=rec["target_rate"])

    @transactional
    def set_loss_floor(self, sender: str, loss_floor: int) -> None:
        self.capabilities.require(sender, SAFE_MANAGER)
        rec = self._record()
        old = int(rec.get("loss_floor", 0))
        rec["loss_floor"] = _check_loss_floor(loss_floor)
        self.world.emit("LossFloorUpdated", accounting_module=self.address, old=old, new=rec["loss_floor"])

    @transactional
    def set_cooldown(self, sender: str, cooldown_seconds: int) -> None:
        self.capabilities.require(sender, SAFE_MANAGER)
        rec = self._record()
        old = int(rec.get("cooldown_seconds", 0))
        rec["cooldown_seconds"] = require_amount(cooldown_seconds, field="cooldown_seconds")
        self.world.emit("CooldownUpdated", accounting_module=self.address, old=old, new=rec["cooldown_seconds"])

    @transactional
    def set_custodian(self, sender: str, custodian: str) -> None:
        self.capabilities.require(sender, SAFE_MANAGER)
        rec = self._record()
        old = str(rec.get("custodian", ""))
        rec["custodian"] = self._verify_custodian(custodian)
        self.world.emit("CustodianUpdated", accounting_module=self.address, old=old, new=rec["custodian"])

    @transactional
    def set_min_rewardable_supply(self, sender: str, min_rewardable_supply: int) -> None:
        self.capabilities.require(sender, SAFE_MANAGER)
        rec = self._record()
        old = int(rec.get("min_rewardable_supply", 0))
        rec["min_rewardable_supply"] = require_amount(min_rewardable_supply, field="min_rewardable_supply")
        self.world.emit("MinRewardableSupplyUpdated", accounting_module=self.address, old=old, new=rec["min_rewardable_supply"])


__all__ = ["AccountingModule", "CooldownState", "loss_bound", "reward_bound"]
