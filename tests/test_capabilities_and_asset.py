from __future__ import annotations

import pytest

from flexvault.ledger.constants import ALLOCATOR, MAX_UINT256
from flexvault.runtime.accounting import AccountingModule
from flexvault.runtime.errors import InsufficientAllowance, InvalidAmount, Unauthorized, ZeroAddress
from flexvault.runtime.gates import CapabilityRegistry, require_amount, require_capability
from flexvault.testing.harness import fund, make_vault_system


def test_grant_revoke_and_renounce() -> None:
    sys = make_vault_system()
    caps = sys.strategy.capabilities

    assert caps.grant("admin", ALLOCATOR, "bob") is True
    assert caps.grant("admin", ALLOCATOR, "bob") is False
    assert "bob" in caps.members(ALLOCATOR)

    with pytest.raises(Unauthorized):
        caps.grant("bob", ALLOCATOR, "carol")
    with pytest.raises(ZeroAddress):
        caps.grant("admin", ALLOCATOR, "")

    assert caps.revoke("admin", ALLOCATOR, "bob") is True
    assert caps.has_capability("bob", ALLOCATOR) is False

    assert caps.renounce("allocator", ALLOCATOR) is True
    assert caps.members(ALLOCATOR) == []
    assert sys.world.events_named("CapabilityGranted")[-1]["principal"] == "bob"


def test_capabilities_are_scoped_per_component() -> None:
    sys = make_vault_system()
    # "processor" may process rewards on the engine but holds nothing on the strategy
    assert sys.engine.capabilities.has_capability("processor", "REWARDS_PROCESSOR")
    assert not sys.strategy.capabilities.has_capability("processor", "REWARDS_PROCESSOR")


def test_injected_capability_collaborator() -> None:
    calls: list[tuple[str, str]] = []

    def has_cap(principal: str, capability: str) -> bool:
        calls.append((principal, capability))
        return principal == "ok"

    require_capability(has_cap, "ok", "X")
    with pytest.raises(Unauthorized):
        require_capability(has_cap, "nope", "X", scope="s")
    assert calls == [("ok", "X"), ("nope", "X")]


def test_custom_registry_can_be_injected() -> None:
    sys = make_vault_system()

    class _Everyone(CapabilityRegistry):
        def has_capability(self, principal: str, capability: str) -> bool:
            return True

    eng = AccountingModule(sys.world, sys.engine.address, capabilities=_Everyone(sys.world, sys.engine.address))
    eng.set_cooldown("anyone", 5)
    assert sys.engine.cooldown_seconds() == 5


def test_require_amount() -> None:
    assert require_amount(0) == 0
    for bad in (-1, 1.5, "3", None, False):
        with pytest.raises(InvalidAmount):
            require_amount(bad)


def test_unlimited_allowance_is_never_decremented() -> None:
    sys = make_vault_system()
    base = sys.base_asset
    fund(sys, "alice", 100)

    base.approve("alice", "bob", MAX_UINT256)
    base.transfer_from("bob", "alice", "carol", 40)
    assert base.allowance("alice", "bob") == MAX_UINT256

    base.approve("alice", "bob", 10)
    base.transfer_from("bob", "alice", "carol", 10)
    assert base.allowance("alice", "bob") == 0
    with pytest.raises(InsufficientAllowance):
        base.transfer_from("bob", "alice", "carol", 1)
    assert base.balance_of("carol") == 50


def test_only_token_admin_mints_base_asset() -> None:
    sys = make_vault_system()
    with pytest.raises(Unauthorized):
        sys.base_asset.mint("alice", "alice", 1)
