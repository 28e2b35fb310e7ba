from __future__ import annotations

"""Ledger token tracking the virtual TVL of a strategy.

Only the bound accounting module may mint or burn. Transfers and approvals
always fail: the token is an internal unit of account, never a liquid asset.
Decimals mirror the tracked base asset so pricing logic can treat it as a 1:1
peg.
"""

from typing import Optional

from flexvault.ledger import token_book
from flexvault.ledger.constants import TOKEN_ADMIN
from flexvault.runtime.errors import NotAccountingModule, TransferNotAllowed
from flexvault.runtime.gates import CapabilityRegistry, require_amount, require_not_zero, resolve_registry
from flexvault.runtime.world import World, transactional


class AccountingToken:
    KIND = "accounting"

    def __init__(self, world: World, address: str, *, capabilities: Optional[CapabilityRegistry] = None) -> None:
        self.world = world
        self.address = str(address)
        self.capabilities = resolve_registry(world, self.address, capabilities)

    @classmethod
    def deploy(
        cls,
        world: World,
        *,
        tracked_asset: str,
        admin: str,
        name: Optional[str] = None,
        symbol: Optional[str] = None,
    ) -> "AccountingToken":
        with world.atomic():
            asset = require_not_zero(tracked_asset, field="tracked_asset")
            base = token_book.token_record(world.state, asset)
            base_symbol = str(base.get("symbol", ""))
            addr = world.new_address(f"accounting:{base_symbol}")
            token_book.create_token(
                world.state,
                addr,
                kind=cls.KIND,
                name=name or f"{base_symbol} Virtual TVL",
                symbol=symbol or f"v{base_symbol}",
                decimals=int(base.get("decimals", 18)),
                tracked_asset=asset,
                accounting_module="",
            )
            tok = cls(world, addr)
            tok.capabilities.bootstrap(TOKEN_ADMIN, admin)
            return tok

    def _record(self) -> dict:
        return token_book.token_record(self.world.state, self.address)

    # --- views ---

    def name(self) -> str:
        return str(self._record().get("name", ""))

    def symbol(self) -> str:
        return str(self._record().get("symbol", ""))

    def decimals(self) -> int:
        return int(self._record().get("decimals", 18))

    def tracked_asset(self) -> str:
        return str(self._record().get("tracked_asset", ""))

    def accounting_module(self) -> str:
        return str(self._record().get("accounting_module", ""))

    def total_supply(self) -> int:
        return token_book.total_supply(self.world.state, self.address)

    def balance_of(self, holder: str) -> int:
        return token_book.balance_of(self.world.state, self.address, holder)

    def allowance(self, owner: str, spender: str) -> int:
        return 0

    # --- accounting module only ---

    def _only_accounting_module(self, sender: str) -> None:
        bound = self.accounting_module()
        if not bound or sender != bound:
            raise NotAccountingModule(sender)

    @transactional
    def mint_to(self, sender: str, holder: str, amount: int) -> None:
        self._only_accounting_module(sender)
        dst = require_not_zero(holder, field="holder")
        token_book.mint(self.world.state, self.address, dst, require_amount(amount))

    @transactional
    def burn_from(self, sender: str, holder: str, amount: int) -> None:
        self._only_accounting_module(sender)
        token_book.burn(self.world.state, self.address, holder, require_amount(amount))

    # --- admin ---

    @transactional
    def set_accounting_module(self, sender: str, accounting_module: str) -> None:
        self.capabilities.require(sender, TOKEN_ADMIN)
        new = require_not_zero(accounting_module, field="accounting_module")
        rec = self._record()
        old = str(rec.get("accounting_module", ""))
        rec["accounting_module"] = new
        self.world.emit("AccountingTokenModuleSet", token=self.address, old=old, new=new)

    # --- disabled ERC20 surface ---

    def transfer(self, sender: str, to: str, amount: int) -> bool:
        raise TransferNotAllowed(self.address)

    def transfer_from(self, sender: str, frm: str, to: str, amount: int) -> bool:
        raise TransferNotAllowed(self.address)

    def approve(self, sender: str, spender: str, amount: int) -> bool:
        raise TransferNotAllowed(self.address)
