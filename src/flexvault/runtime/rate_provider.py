from __future__ import annotations

from typing import Any, Dict

from flexvault.ledger import token_book
from flexvault.runtime.errors import InvalidConfiguration, UnsupportedAsset
from flexvault.runtime.gates import require_not_zero
from flexvault.runtime.world import World

Json = Dict[str, Any]


class FixedRateProvider:
    """1:1 rate between the ledger token and the base asset.

    Rates are expressed in base-asset units per one whole unit of the asset,
    i.e. 10**decimals(base) for both supported assets.
    """

    def __init__(self, world: World, address: str) -> None:
        self.world = world
        self.address = str(address)

    @classmethod
    def deploy(cls, world: World, *, base_asset: str, accounting_token: str) -> "FixedRateProvider":
        with world.atomic():
            base = require_not_zero(base_asset, field="base_asset")
            acct = require_not_zero(accounting_token, field="accounting_token")
            base_dec = int(token_book.token_record(world.state, base).get("decimals", 18))
            acct_dec = int(token_book.token_record(world.state, acct).get("decimals", 18))
            if base_dec != acct_dec:
                raise InvalidConfiguration("decimals_mismatch", {"base": base_dec, "accounting": acct_dec})
            addr = world.new_address("rate_provider")
            world.state["rate_providers"][addr] = {"base_asset": base, "accounting_token": acct}
            return cls(world, addr)

    def _record(self) -> Json:
        rec = self.world.state.get("rate_providers", {}).get(self.address)
        if not isinstance(rec, dict):
            raise InvalidConfiguration("unknown_rate_provider", {"rate_provider": self.address})
        return rec

    def supports(self, asset: str) -> bool:
        rec = self._record()
        return asset in (rec.get("base_asset"), rec.get("accounting_token"))

    def get_rate(self, asset: str) -> int:
        if not self.supports(asset):
            raise UnsupportedAsset(asset)
        base = str(self._record().get("base_asset"))
        return 10 ** int(token_book.token_record(self.world.state, base).get("decimals", 18))

    def to_base(self, asset: str, amount: int) -> int:
        """Value `amount` of `asset` in base-asset units (floor)."""
        dec = int(token_book.token_record(self.world.state, asset).get("decimals", 18))
        return int(amount) * self.get_rate(asset) // (10**dec)
