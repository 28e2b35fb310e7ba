from __future__ import annotations

"""Minimal host vault framework.

Provides the pieces a strategy adapter plugs into:

  - share book (tokens[vault_address], kind "shares")
  - asset()/total_assets() and ERC-4626 style conversions (virtual offset of 1)
  - per-asset active/withdrawable flags
  - pause/unpause and capability checks
  - _deposit/_withdraw hooks that subclasses extend

Rounding: conversions used for deposits and redemptions floor (in favour of the
vault); previews for mint and withdraw round up.
"""

from typing import Any, Dict, Optional

from flexvault.ledger import token_book
from flexvault.ledger.constants import ASSET_MANAGER, DEFAULT_ADMIN, PAUSER, UNPAUSER
from flexvault.runtime.asset_token import AssetToken
from flexvault.runtime.errors import AssetNotWithdrawable, InvalidConfiguration, UnsupportedAsset, VaultPaused
from flexvault.runtime.gates import CapabilityRegistry, require_amount, require_not_zero, resolve_registry
from flexvault.runtime.rate_provider import FixedRateProvider
from flexvault.runtime.world import World, transactional

Json = Dict[str, Any]


def _mul_div(x: int, y: int, d: int, *, up: bool = False) -> int:
    n = int(x) * int(y)
    q, r = divmod(n, int(d))
    return q + 1 if (up and r) else q


class Vault:
    KIND = "vault"

    def __init__(self, world: World, address: str, *, capabilities: Optional[CapabilityRegistry] = None) -> None:
        self.world = world
        self.address = str(address)
        self.capabilities = resolve_registry(world, self.address, capabilities)

    @classmethod
    def deploy(
        cls,
        world: World,
        *,
        name: str,
        symbol: str,
        base_asset: str,
        admin: str,
        rate_provider: str = "",
        withdrawable: bool = True,
    ) -> "Vault":
        with world.atomic():
            base = require_not_zero(base_asset, field="base_asset")
            adm = require_not_zero(admin, field="admin")
            decimals = int(token_book.token_record(world.state, base).get("decimals", 18))
            addr = world.new_address(f"vault:{symbol}")
            token_book.create_token(world.state, addr, kind="shares", name=name, symbol=symbol, decimals=decimals)
            rec: Json = {
                "kind": cls.KIND,
                "base_asset": base,
                "decimals": decimals,
                "assets": {base: {"active": True, "withdrawable": bool(withdrawable)}},
                "total_assets": 0,
                "paused": False,
                "always_compute_total_assets": False,
                "rate_provider": str(rate_provider or ""),
            }
            world.state["vaults"][addr] = rec
            v = cls(world, addr)
            v.capabilities.bootstrap(DEFAULT_ADMIN, adm)
            v._init_record(rec)
            return v

    def _init_record(self, rec: Json) -> None:
        """Subclass hook for extra record fields."""

    def _record(self) -> Json:
        rec = self.world.state.get("vaults", {}).get(self.address)
        if not isinstance(rec, dict):
            raise InvalidConfiguration("unknown_vault", {"vault": self.address})
        return rec

    # --- share token views ---

    def name(self) -> str:
        return str(token_book.token_record(self.world.state, self.address).get("name", ""))

    def symbol(self) -> str:
        return str(token_book.token_record(self.world.state, self.address).get("symbol", ""))

    def decimals(self) -> int:
        return int(self._record().get("decimals", 18))

    def total_supply(self) -> int:
        return token_book.total_supply(self.world.state, self.address)

    def balance_of(self, owner: str) -> int:
        return token_book.balance_of(self.world.state, self.address, owner)

    def allowance(self, owner: str, spender: str) -> int:
        return token_book.allowance(self.world.state, self.address, owner, spender)

    @transactional
    def approve(self, sender: str, spender: str, shares: int) -> bool:
        sp = require_not_zero(spender, field="spender")
        token_book.set_allowance(self.world.state, self.address, sender, sp, require_amount(shares, field="shares"))
        return True

    @transactional
    def transfer(self, sender: str, to: str, shares: int) -> bool:
        dst = require_not_zero(to, field="to")
        token_book.move(self.world.state, self.address, sender, dst, require_amount(shares, field="shares"))
        return True

    # --- asset views ---

    def asset(self) -> str:
        return str(self._record().get("base_asset", ""))

    def assets(self) -> Dict[str, Json]:
        return dict(self._record().get("assets") or {})

    def asset_withdrawable(self, asset: str) -> bool:
        cfg = (self._record().get("assets") or {}).get(asset)
        return bool(isinstance(cfg, dict) and cfg.get("active") and cfg.get("withdrawable"))

    def rate_provider(self) -> str:
        return str(self._record().get("rate_provider", ""))

    def paused(self) -> bool:
        return bool(self._record().get("paused", False))

    def total_assets(self) -> int:
        rec = self._record()
        if bool(rec.get("always_compute_total_assets", False)):
            return self._compute_total_assets()
        return int(rec.get("total_assets", 0))

    def _to_base(self, asset: str, amount: int) -> int:
        if asset == self.asset():
            return int(amount)
        rp = self.rate_provider()
        if not rp:
            raise UnsupportedAsset(asset)
        return FixedRateProvider(self.world, rp).to_base(asset, amount)

    def _compute_total_assets(self) -> int:
        total = 0
        for asset, cfg in (self._record().get("assets") or {}).items():
            if not (isinstance(cfg, dict) and cfg.get("active")):
                continue
            total += self._to_base(asset, token_book.balance_of(self.world.state, asset, self.address))
        return total

    # --- conversions ---

    def _convert_to_shares(self, assets: int, *, up: bool = False) -> int:
        return _mul_div(assets, self.total_supply() + 1, self.total_assets() + 1, up=up)

    def _convert_to_assets(self, shares: int, *, up: bool = False) -> int:
        return _mul_div(shares, self.total_assets() + 1, self.total_supply() + 1, up=up)

    def convert_to_shares(self, assets: int) -> int:
        return self._convert_to_shares(require_amount(assets, field="assets"))

    def convert_to_assets(self, shares: int) -> int:
        return self._convert_to_assets(require_amount(shares, field="shares"))

    def preview_deposit(self, assets: int) -> int:
        return self._convert_to_shares(require_amount(assets, field="assets"))

    def preview_mint(self, shares: int) -> int:
        return self._convert_to_assets(require_amount(shares, field="shares"), up=True)

    def preview_withdraw(self, assets: int) -> int:
        return self._convert_to_shares(require_amount(assets, field="assets"), up=True)

    def preview_redeem(self, shares: int) -> int:
        return self._convert_to_assets(require_amount(shares, field="shares"))

    def max_withdraw(self, owner: str) -> int:
        return self._convert_to_assets(self.balance_of(owner))

    def max_redeem(self, owner: str) -> int:
        return self.balance_of(owner)

    # --- entry points ---

    def _require_not_paused(self) -> None:
        if self.paused():
            raise VaultPaused(self.address)

    def _require_active_asset(self, asset: str) -> None:
        cfg = (self._record().get("assets") or {}).get(asset)
        if not (isinstance(cfg, dict) and cfg.get("active")):
            raise UnsupportedAsset(asset)

    def deposit(self, sender: str, assets: int, receiver: str) -> int:
        return self.deposit_asset(sender, self.asset(), assets, receiver)

    @transactional
    def deposit_asset(self, sender: str, asset: str, assets: int, receiver: str) -> int:
        self._require_not_paused()
        amt = require_amount(assets, field="assets")
        rcv = require_not_zero(receiver, field="receiver")
        self._require_active_asset(asset)
        base_assets = self._to_base(asset, amt)
        shares = self._convert_to_shares(base_assets)
        self._deposit(asset, sender, rcv, amt, shares, base_assets)
        self.world.emit("Deposit", vault=self.address, sender=sender, owner=rcv, asset=asset, assets=amt, shares=shares)
        return shares

    @transactional
    def mint(self, sender: str, shares: int, receiver: str) -> int:
        self._require_not_paused()
        s = require_amount(shares, field="shares")
        rcv = require_not_zero(receiver, field="receiver")
        assets = self._convert_to_assets(s, up=True)
        self._deposit(self.asset(), sender, rcv, assets, s, assets)
        self.world.emit("Deposit", vault=self.address, sender=sender, owner=rcv, asset=self.asset(), assets=assets, shares=s)
        return assets

    def withdraw(self, sender: str, assets: int, receiver: str, owner: str) -> int:
        return self.withdraw_asset(sender, self.asset(), assets, receiver, owner)

    @transactional
    def withdraw_asset(self, sender: str, asset: str, assets: int, receiver: str, owner: str) -> int:
        self._require_not_paused()
        amt = require_amount(assets, field="assets")
        rcv = require_not_zero(receiver, field="receiver")
        self._require_active_asset(asset)
        shares = self._convert_to_shares(self._to_base(asset, amt), up=True)
        self._withdraw(asset, sender, rcv, owner, amt, shares)
        self.world.emit(
            "Withdraw", vault=self.address, sender=sender, receiver=rcv, owner=owner, asset=asset, assets=amt, shares=shares
        )
        return shares

    @transactional
    def redeem(self, sender: str, shares: int, receiver: str, owner: str) -> int:
        self._require_not_paused()
        s = require_amount(shares, field="shares")
        rcv = require_not_zero(receiver, field="receiver")
        assets = self._convert_to_assets(s)
        self._withdraw(self.asset(), sender, rcv, owner, assets, s)
        self.world.emit(
            "Withdraw", vault=self.address, sender=sender, receiver=rcv, owner=owner, asset=self.asset(), assets=assets, shares=s
        )
        return assets

    # --- hooks ---

    def _deposit(self, asset: str, caller: str, receiver: str, assets: int, shares: int, base_assets: int) -> None:
        AssetToken(self.world, asset).transfer_from(self.address, caller, self.address, assets)
        token_book.mint(self.world.state, self.address, receiver, shares)
        rec = self._record()
        rec["total_assets"] = int(rec.get("total_assets", 0)) + int(base_assets)

    def _burn_shares(self, caller: str, owner: str, shares: int) -> None:
        if caller != owner:
            token_book.spend_allowance(self.world.state, self.address, owner, caller, shares)
        token_book.burn(self.world.state, self.address, owner, shares)

    def _withdraw(self, asset: str, caller: str, receiver: str, owner: str, assets: int, shares: int) -> None:
        if not self.asset_withdrawable(asset):
            raise AssetNotWithdrawable(asset)
        self._burn_shares(caller, owner, shares)
        rec = self._record()
        rec["total_assets"] = int(rec.get("total_assets", 0)) - self._to_base(asset, assets)
        AssetToken(self.world, asset).transfer(self.address, receiver, assets)

    # --- accounting ---

    @transactional
    def process_accounting(self) -> int:
        with self.world.nonreentrant(f"process_accounting:{self.address}"):
            rec = self._record()
            old = int(rec.get("total_assets", 0))
            new = self._compute_total_assets()
            rec["total_assets"] = new
            self.world.emit("ProcessAccounting", vault=self.address, old_total_assets=old, total_assets=new)
            return new

    # --- admin ---

    @transactional
    def pause(self, sender: str) -> None:
        self.capabilities.require(sender, PAUSER)
        self._record()["paused"] = True
        self.world.emit("Paused", vault=self.address, sender=sender)

    @transactional
    def unpause(self, sender: str) -> None:
        self.capabilities.require(sender, UNPAUSER)
        self._record()["paused"] = False
        self.world.emit("Unpaused", vault=self.address, sender=sender)

    @transactional
    def add_asset(self, sender: str, asset: str, *, active: bool = True, withdrawable: bool = False) -> None:
        self.capabilities.require(sender, ASSET_MANAGER)
        a = require_not_zero(asset, field="asset")
        token_book.token_record(self.world.state, a)
        if a != self.asset():
            rp = self.rate_provider()
            if not rp or not FixedRateProvider(self.world, rp).supports(a):
                raise UnsupportedAsset(a)
        self._record()["assets"][a] = {"active": bool(active), "withdrawable": bool(withdrawable)}
        self.world.emit("AssetAdded", vault=self.address, asset=a, active=bool(active), withdrawable=bool(withdrawable))

    @transactional
    def set_asset_withdrawable(self, sender: str, asset: str, withdrawable: bool) -> None:
        self.capabilities.require(sender, ASSET_MANAGER)
        cfg = (self._record().get("assets") or {}).get(asset)
        if not isinstance(cfg, dict):
            raise UnsupportedAsset(asset)
        cfg["withdrawable"] = bool(withdrawable)
        self.world.emit("AssetWithdrawableSet", vault=self.address, asset=asset, withdrawable=bool(withdrawable))

    @transactional
    def set_rate_provider(self, sender: str, rate_provider: str) -> None:
        self.capabilities.require(sender, DEFAULT_ADMIN)
        self._record()["rate_provider"] = require_not_zero(rate_provider, field="rate_provider")

    @transactional
    def set_always_compute_total_assets(self, sender: str, always_compute: bool) -> None:
        self.capabilities.require(sender, DEFAULT_ADMIN)
        self._record()["always_compute_total_assets"] = bool(always_compute)


__all__ = ["Vault"]
