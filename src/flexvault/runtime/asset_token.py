from __future__ import annotations

from typing import Optional

from flexvault.ledger import token_book
from flexvault.ledger.constants import TOKEN_ADMIN
from flexvault.runtime.gates import CapabilityRegistry, require_amount, require_not_zero, resolve_registry
from flexvault.runtime.world import World, transactional


class AssetToken:
    """Plain fungible base asset (e.g. a stablecoin or wrapped native token)."""

    KIND = "asset"

    def __init__(self, world: World, address: str, *, capabilities: Optional[CapabilityRegistry] = None) -> None:
        self.world = world
        self.address = str(address)
        self.capabilities = resolve_registry(world, self.address, capabilities)

    @classmethod
    def deploy(cls, world: World, *, name: str, symbol: str, decimals: int, admin: str) -> "AssetToken":
        with world.atomic():
            addr = world.new_address(f"asset:{symbol}")
            token_book.create_token(world.state, addr, kind=cls.KIND, name=name, symbol=symbol, decimals=int(decimals))
            tok = cls(world, addr)
            tok.capabilities.bootstrap(TOKEN_ADMIN, admin)
            return tok

    # --- views ---

    def name(self) -> str:
        return str(token_book.token_record(self.world.state, self.address).get("name", ""))

    def symbol(self) -> str:
        return str(token_book.token_record(self.world.state, self.address).get("symbol", ""))

    def decimals(self) -> int:
        return int(token_book.token_record(self.world.state, self.address).get("decimals", 18))

    def total_supply(self) -> int:
        return token_book.total_supply(self.world.state, self.address)

    def balance_of(self, holder: str) -> int:
        return token_book.balance_of(self.world.state, self.address, holder)

    def allowance(self, owner: str, spender: str) -> int:
        return token_book.allowance(self.world.state, self.address, owner, spender)

    # --- mutations ---

    @transactional
    def mint(self, sender: str, to: str, amount: int) -> None:
        self.capabilities.require(sender, TOKEN_ADMIN)
        dst = require_not_zero(to, field="to")
        token_book.mint(self.world.state, self.address, dst, require_amount(amount))

    @transactional
    def transfer(self, sender: str, to: str, amount: int) -> bool:
        dst = require_not_zero(to, field="to")
        token_book.move(self.world.state, self.address, sender, dst, require_amount(amount))
        return True

    @transactional
    def approve(self, sender: str, spender: str, amount: int) -> bool:
        sp = require_not_zero(spender, field="spender")
        token_book.set_allowance(self.world.state, self.address, sender, sp, require_amount(amount))
        return True

    @transactional
    def transfer_from(self, sender: str, frm: str, to: str, amount: int) -> bool:
        amt = require_amount(amount)
        dst = require_not_zero(to, field="to")
        token_book.spend_allowance(self.world.state, self.address, frm, sender, amt)
        token_book.move(self.world.state, self.address, frm, dst, amt)
        return True
