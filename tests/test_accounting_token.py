from __future__ import annotations

import pytest

from flexvault.runtime.accounting_token import AccountingToken
from flexvault.runtime.errors import InsufficientBalance, NotAccountingModule, TransferNotAllowed, Unauthorized, ZeroAddress
from flexvault.testing.harness import fund_and_deposit, make_vault_system


def test_decimals_mirror_base_asset() -> None:
    sys = make_vault_system(base_asset_decimals=8)
    assert sys.base_asset.decimals() == 8
    assert sys.accounting_token.decimals() == 8
    assert sys.accounting_token.tracked_asset() == sys.base_asset.address
    assert sys.accounting_token.accounting_module() == sys.engine.address


def test_only_bound_engine_can_mint_or_burn() -> None:
    sys = make_vault_system()
    tok = sys.accounting_token

    with pytest.raises(NotAccountingModule):
        tok.mint_to("admin", "alice", 1)
    with pytest.raises(NotAccountingModule):
        tok.burn_from(sys.strategy.address, sys.strategy.address, 1)

    tok.mint_to(sys.engine.address, "alice", 10)
    tok.burn_from(sys.engine.address, "alice", 4)
    assert tok.balance_of("alice") == 6
    assert tok.total_supply() == 6


def test_burn_more_than_balance_fails_and_leaves_supply() -> None:
    sys = make_vault_system()
    tok = sys.accounting_token
    tok.mint_to(sys.engine.address, "alice", 5)

    with pytest.raises(InsufficientBalance):
        tok.burn_from(sys.engine.address, "alice", 6)

    assert tok.balance_of("alice") == 5
    assert tok.total_supply() == 5


def test_transfers_and_approvals_always_fail() -> None:
    sys = make_vault_system()
    fund_and_deposit(sys, "allocator", 100)
    tok = sys.accounting_token
    strat = sys.strategy.address

    with pytest.raises(TransferNotAllowed):
        tok.transfer(strat, "alice", 1)
    with pytest.raises(TransferNotAllowed):
        tok.transfer_from("alice", strat, "alice", 1)
    with pytest.raises(TransferNotAllowed):
        tok.approve(strat, "alice", 1)

    assert tok.balance_of(strat) == 100
    assert tok.allowance(strat, "alice") == 0


def test_set_accounting_module_is_admin_gated() -> None:
    sys = make_vault_system()
    tok = sys.accounting_token

    with pytest.raises(Unauthorized):
        tok.set_accounting_module("mallory", "0xabc")
    with pytest.raises(ZeroAddress):
        tok.set_accounting_module("admin", "")

    tok.set_accounting_module("admin", "0xabc")
    assert tok.accounting_module() == "0xabc"
    assert sys.world.events_named("AccountingTokenModuleSet")[-1]["new"] == "0xabc"


def test_fresh_token_has_no_minter() -> None:
    sys = make_vault_system()
    tok = AccountingToken.deploy(sys.world, tracked_asset=sys.base_asset.address, admin="admin")
    assert tok.accounting_module() == ""
    assert tok.symbol() == "v" + sys.base_asset.symbol()
    with pytest.raises(NotAccountingModule):
        tok.mint_to("", "alice", 1)
