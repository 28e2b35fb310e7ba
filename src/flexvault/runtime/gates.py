# src/flexvault/runtime/gates.py
from __future__ import annotations

"""Precondition guards.

Each guard is called at the top of an entry point and raises a typed
VaultError immediately; no guard mutates state.
"""

from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from flexvault.ledger.constants import DEFAULT_ADMIN, ZERO_ADDRESS
from flexvault.ledger.roles_schema import grant_capability, has_capability, members, revoke_capability
from flexvault.runtime.errors import InvalidAmount, TooEarly, Unauthorized, ZeroAddress

if TYPE_CHECKING:
    from flexvault.runtime.world import World

Json = Dict[str, Any]

HasCapability = Callable[[str, str], bool]


def _as_str(v: Any) -> str:
    return str(v) if v is not None else ""


def is_zero_address(addr: Any) -> bool:
    s = _as_str(addr).strip().lower()
    return not s or s == ZERO_ADDRESS


def require_not_zero(addr: Any, *, field: str) -> str:
    if is_zero_address(addr):
        raise ZeroAddress(field)
    return _as_str(addr).strip()


def require_amount(amount: Any, *, field: str = "amount") -> int:
    """Amounts are non-negative ints (bool rejected)."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount(amount, field)
    if amount < 0:
        raise InvalidAmount(amount, field)
    return int(amount)


def require_capability(has_cap: HasCapability, principal: str, capability: str, *, scope: str = "") -> None:
    if not has_cap(principal, capability):
        raise Unauthorized(principal, capability, scope)


def require_cooldown_elapsed(now: int, next_update_window: int) -> None:
    if int(now) < int(next_update_window):
        raise TooEarly(int(now), int(next_update_window))


class CapabilityRegistry:
    """Capability checks for one component scope, backed by state['roles']."""

    def __init__(self, world: "World", scope: str) -> None:
        self.world = world
        self.scope = str(scope)

    def has_capability(self, principal: str, capability: str) -> bool:
        return has_capability(self.world.state, self.scope, principal, capability)

    def require(self, principal: str, capability: str) -> None:
        require_capability(self.has_capability, principal, capability, scope=self.scope)

    def members(self, capability: str) -> list[str]:
        return members(self.world.state, self.scope, capability)

    def grant(self, sender: str, capability: str, principal: str) -> bool:
        with self.world.atomic():
            self.require(sender, DEFAULT_ADMIN)
            p = require_not_zero(principal, field="principal")
            changed = grant_capability(self.world.state, self.scope, capability, p)
            if changed:
                self.world.emit("CapabilityGranted", scope=self.scope, capability=capability, principal=p, sender=sender)
            return changed

    def revoke(self, sender: str, capability: str, principal: str) -> bool:
        with self.world.atomic():
            self.require(sender, DEFAULT_ADMIN)
            changed = revoke_capability(self.world.state, self.scope, capability, principal)
            if changed:
                self.world.emit("CapabilityRevoked", scope=self.scope, capability=capability, principal=principal, sender=sender)
            return changed

    def renounce(self, sender: str, capability: str) -> bool:
        with self.world.atomic():
            return revoke_capability(self.world.state, self.scope, capability, sender)

    def bootstrap(self, capability: str, principal: str) -> None:
        """Unchecked grant used while a component is being created."""
        grant_capability(self.world.state, self.scope, capability, require_not_zero(principal, field="principal"))


def resolve_registry(world: "World", scope: str, capabilities: Optional[CapabilityRegistry]) -> CapabilityRegistry:
    return capabilities if capabilities is not None else CapabilityRegistry(world, scope)


__all__ = [
    "CapabilityRegistry",
    "HasCapability",
    "is_zero_address",
    "require_amount",
    "require_capability",
    "require_cooldown_elapsed",
    "require_not_zero",
    "resolve_registry",
]
