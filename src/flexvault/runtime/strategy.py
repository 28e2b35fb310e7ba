from __future__ import annotations

"""Vault strategy adapter binding a host vault to an accounting engine.

Deposited base assets never stay on the strategy: they are pulled through to the
custodian by the engine, which mints the ledger token 1:1 to the strategy. The
strategy's total assets are therefore the ledger token balance it holds, and
that equality is checked after every deposit and withdrawal.
"""

from typing import Optional

from flexvault.ledger import token_book
from flexvault.ledger.constants import ALLOCATOR, DEFAULT_ADMIN, MAX_UINT256
from flexvault.runtime.accounting import AccountingModule
from flexvault.runtime.asset_token import AssetToken
from flexvault.runtime.errors import (
    AccountingTokenMismatch,
    AssetNotWithdrawable,
    InvalidConfiguration,
    InvariantViolation,
    NoAccountingModule,
    UnsupportedAsset,
)
from flexvault.runtime.gates import require_not_zero
from flexvault.runtime.rate_provider import FixedRateProvider
from flexvault.runtime.vault import Json, Vault
from flexvault.runtime.world import World, transactional


class FlexStrategy(Vault):
    """Strategy bound to one accounting engine.

    Deposits are open to any holder of the base asset; withdrawals move value
    back out of custody and require ALLOCATOR on the caller.
    """

    KIND = "flex_strategy"

    def _init_record(self, rec: Json) -> None:
        rec["accounting_module"] = ""

    # --- bindings ---

    def accounting_module(self) -> str:
        return str(self._record().get("accounting_module", ""))

    def engine(self) -> AccountingModule:
        addr = self.accounting_module()
        if not addr:
            raise NoAccountingModule(self.address)
        return AccountingModule(self.world, addr)

    def accounting_token(self) -> str:
        addr = self.accounting_module()
        if not addr:
            return ""
        return AccountingModule(self.world, addr).accounting_token()

    def ledger_balance(self) -> int:
        tok = self.accounting_token()
        if not tok:
            return 0
        return token_book.balance_of(self.world.state, tok, self.address)

    def idle_base_balance(self) -> int:
        """Base asset sitting on the strategy itself (donations); never counted as TVL."""
        return token_book.balance_of(self.world.state, self.asset(), self.address)

    # --- total assets ---

    def _compute_total_assets(self) -> int:
        tok = self.accounting_token()
        if not tok:
            return 0
        bal = token_book.balance_of(self.world.state, tok, self.address)
        rp = self.rate_provider()
        if not rp:
            return bal
        return FixedRateProvider(self.world, rp).to_base(tok, bal)

    def _check_invariant(self) -> None:
        reported = int(self._record().get("total_assets", 0))
        held = self._compute_total_assets()
        if reported != held:
            raise InvariantViolation("total_assets_mismatch", {"total_assets": reported, "ledger_balance": held})

    # --- hooks ---

    def _deposit(self, asset: str, caller: str, receiver: str, assets: int, shares: int, base_assets: int) -> None:
        if asset != self.asset():
            raise UnsupportedAsset(asset)
        engine = self.engine()
        super()._deposit(asset, caller, receiver, assets, shares, base_assets)
        engine.deposit(self.address, assets)
        self._check_invariant()

    def _withdraw(self, asset: str, caller: str, receiver: str, owner: str, assets: int, shares: int) -> None:
        self.capabilities.require(caller, ALLOCATOR)
        if asset != self.asset() or not self.asset_withdrawable(asset):
            raise AssetNotWithdrawable(asset)
        engine = self.engine()

        # shares go first so a reentrant path cannot spend them twice
        self._burn_shares(caller, owner, shares)
        rec = self._record()
        rec["total_assets"] = int(rec.get("total_assets", 0)) - int(assets)

        engine.withdraw(self.address, assets, receiver)
        self._check_invariant()

    @transactional
    def process_accounting(self) -> int:
        total = super().process_accounting()
        idle = self.idle_base_balance()
        if idle > 0:
            self.world.emit("StrategyIdleBaseBalance", strategy=self.address, amount=idle)
        return total

    # --- admin ---

    @transactional
    def set_accounting_module(self, sender: str, accounting_module: str) -> None:
        self.capabilities.require(sender, DEFAULT_ADMIN)
        new_addr = require_not_zero(accounting_module, field="accounting_module")
        new = AccountingModule(self.world, new_addr)
        if new.strategy() != self.address:
            raise InvalidConfiguration("engine_strategy_mismatch", {"strategy": self.address, "engine_strategy": new.strategy()})

        old_addr = self.accounting_module()
        base = AssetToken(self.world, self.asset())
        if old_addr:
            old = AccountingModule(self.world, old_addr)
            if new.accounting_token() != old.accounting_token():
                raise AccountingTokenMismatch(old.accounting_token(), new.accounting_token())
            base.approve(self.address, old_addr, 0)
        elif new.base_asset() != self.asset():
            raise InvalidConfiguration("engine_asset_mismatch", {"asset": self.asset(), "engine_asset": new.base_asset()})

        base.approve(self.address, new_addr, MAX_UINT256)
        self._record()["accounting_module"] = new_addr
        self.world.emit("AccountingModuleUpdated", strategy=self.address, old=old_addr, new=new_addr)

    @transactional
    def set_always_compute_total_assets(self, sender: str, always_compute: bool) -> None:
        raise InvariantViolation("always_compute_total_assets_forbidden", {"strategy": self.address})


def load_strategy(world: World, address: Optional[str]) -> FlexStrategy:
    addr = require_not_zero(address, field="strategy")
    rec = world.state.get("vaults", {}).get(addr)
    if not isinstance(rec, dict) or rec.get("kind") != FlexStrategy.KIND:
        raise InvalidConfiguration("unknown_strategy", {"strategy": addr})
    return FlexStrategy(world, addr)


__all__ = ["FlexStrategy", "load_strategy"]
