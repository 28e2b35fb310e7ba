from __future__ import annotations

import pytest

from flexvault.ledger.constants import SCALE, YEAR
from flexvault.runtime.accounting import AccountingModule
from flexvault.runtime.accounting_token import AccountingToken
from flexvault.runtime.errors import AccountingLimitsExceeded, AccountingTokenMismatch, CannotSweepRewards, Unauthorized
from flexvault.testing.harness import DAY, fund, fund_and_deposit, make_vault_system

RATE = SCALE // 10


def _funded_system(held: int, *, deposit: int = 1_000_000):
    sys = make_vault_system(target_rate=RATE)
    fund_and_deposit(sys, "allocator", deposit)
    fund(sys, sys.sweeper.address, held)
    return sys


def test_sweep_up_to_apr_max_caps_at_rate_ceiling() -> None:
    sys = _funded_system(10_000)
    sys.world.advance(10 * DAY)

    expected = 1_000_000 * RATE * 10 * DAY // (YEAR * SCALE)
    assert sys.sweeper.max_rewards() == expected
    assert sys.sweeper.preview_sweep_up_to_apr_max() == expected

    swept = sys.sweeper.sweep_rewards_up_to_apr_max("anyone")
    assert swept == expected
    assert sys.sweeper.held_balance() == 10_000 - expected
    assert sys.base_asset.balance_of("custodian") == 1_000_000 + expected
    assert sys.accounting_token.total_supply() == 1_000_000 + expected
    assert sys.strategy.total_assets() == 1_000_000 + expected
    assert sys.world.events_named("RewardsSwept")[-1]["amount"] == expected


def test_remainder_waits_for_next_window() -> None:
    sys = _funded_system(10_000)
    sys.world.advance(10 * DAY)
    first = sys.sweeper.sweep_rewards_up_to_apr_max("anyone")

    assert sys.sweeper.can_sweep_rewards() is False
    assert sys.sweeper.preview_sweep_up_to_apr_max() == 0
    with pytest.raises(CannotSweepRewards) as ei:
        sys.sweeper.sweep_rewards_up_to_apr_max("anyone")
    assert ei.value.why == "cooldown_active"

    sys.world.advance(sys.engine.cooldown_seconds())
    supply = 1_000_000 + first
    second = sys.sweeper.sweep_rewards_up_to_apr_max("anyone")
    assert second == supply * RATE * sys.engine.cooldown_seconds() // (YEAR * SCALE)
    assert sys.sweeper.held_balance() == 10_000 - first - second


def test_sweep_is_limited_by_held_balance() -> None:
    sys = _funded_system(100)
    sys.world.advance(30 * DAY)

    assert sys.sweeper.max_rewards() > 100
    assert sys.sweeper.sweep_rewards_up_to_apr_max("anyone") == 100
    assert sys.sweeper.held_balance() == 0
    assert sys.accounting_token.total_supply() == 1_000_100


def test_nothing_held_cannot_sweep() -> None:
    sys = _funded_system(0)
    sys.world.advance(DAY)

    assert sys.sweeper.can_sweep_rewards() is False
    with pytest.raises(CannotSweepRewards) as ei:
        sys.sweeper.sweep_rewards_up_to_apr_max("anyone")
    assert ei.value.why == "nothing_held"


def test_zero_ceiling_cannot_sweep() -> None:
    sys = _funded_system(500)
    with pytest.raises(CannotSweepRewards) as ei:
        sys.sweeper.sweep_rewards_up_to_apr_max("anyone")
    assert ei.value.why == "zero_amount"
    assert sys.sweeper.held_balance() == 500


def test_manual_sweep_is_gated_and_bounded() -> None:
    sys = _funded_system(10_000)
    sys.world.advance(10 * DAY)

    with pytest.raises(Unauthorized):
        sys.sweeper.sweep_rewards("mallory", 10)

    bound = sys.engine.reward_bound()
    with pytest.raises(AccountingLimitsExceeded):
        sys.sweeper.sweep_rewards("processor", bound + 1)
    assert sys.sweeper.held_balance() == 10_000
    assert sys.base_asset.balance_of("custodian") == 1_000_000

    assert sys.sweeper.sweep_rewards("processor", 50) == 50
    assert sys.sweeper.held_balance() == 9_950
    assert sys.accounting_token.total_supply() == 1_000_050

    with pytest.raises(CannotSweepRewards):
        sys.sweeper.sweep_rewards("processor", 1)


def test_swept_yield_is_redeemable() -> None:
    sys = _funded_system(10_000)
    sys.world.advance(10 * DAY)
    sys.sweeper.sweep_rewards_up_to_apr_max("anyone")

    shares = sys.strategy.balance_of("allocator")
    assets = sys.strategy.redeem("allocator", shares, "allocator", "allocator")
    assert assets > 1_000_000
    assert sys.base_asset.balance_of("allocator") == assets
    assert sys.strategy.total_assets() == sys.accounting_token.balance_of(sys.strategy.address)


def test_sweeper_rebind_checks_ledger_token() -> None:
    sys = _funded_system(0)
    twin = AccountingModule.deploy(
        sys.world,
        strategy=sys.strategy.address,
        accounting_token=sys.accounting_token.address,
        admin="admin",
        safe="admin",
        custodian="custodian",
        target_rate=RATE,
        loss_floor=0,
    )
    foreign_token = AccountingToken.deploy(sys.world, tracked_asset=sys.base_asset.address, admin="admin")
    foreign = AccountingModule.deploy(
        sys.world,
        strategy=sys.strategy.address,
        accounting_token=foreign_token.address,
        admin="admin",
        safe="admin",
        custodian="custodian",
        target_rate=RATE,
        loss_floor=0,
    )

    with pytest.raises(Unauthorized):
        sys.sweeper.set_accounting_module("processor", twin.address)
    with pytest.raises(AccountingTokenMismatch):
        sys.sweeper.set_accounting_module("admin", foreign.address)

    sys.sweeper.set_accounting_module("admin", twin.address)
    assert sys.sweeper.accounting_module() == twin.address
