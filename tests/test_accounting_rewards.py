from __future__ import annotations

import pytest

from flexvault.ledger.constants import SCALE, YEAR
from flexvault.runtime.accounting import CooldownState, reward_bound
from flexvault.runtime.errors import (
    AccountingLimitsExceeded,
    InvalidAmount,
    InvalidCheckpoint,
    TooEarly,
    TvlTooLow,
    Unauthorized,
)
from flexvault.testing.harness import DAY, GENESIS_TIME, fund_and_deposit, make_vault_system


def test_reward_bound_formula_floors() -> None:
    assert reward_bound(SCALE, 1000, DAY) == 2  # 2.737...
    assert reward_bound(SCALE // 10, 1000, 10 * DAY) == 2
    assert reward_bound(SCALE, 0, DAY) == 0
    assert reward_bound(SCALE, 1000, 0) == 0
    assert reward_bound(SCALE, YEAR, YEAR) == YEAR


def test_genesis_checkpoint_written_at_creation() -> None:
    sys = make_vault_system()
    assert sys.engine.checkpoint_count() == 1
    cp = sys.engine.checkpoint(0)
    assert cp.index == 0
    assert cp.timestamp == GENESIS_TIME
    assert cp.supply == 0
    assert sys.engine.next_update_window() == GENESIS_TIME
    assert sys.engine.cooldown_state() is CooldownState.IDLE


def test_rewards_on_empty_ledger_fail_tvl_too_low() -> None:
    sys = make_vault_system()
    sys.world.advance(DAY)
    with pytest.raises(TvlTooLow) as ei:
        sys.engine.process_rewards("processor", 1)
    assert ei.value.supply == 0
    assert ei.value.minimum == 1


def test_one_day_of_accrual_on_1000_units() -> None:
    sys = make_vault_system(target_rate=SCALE)
    fund_and_deposit(sys, "allocator", 1000)
    sys.world.advance(DAY)

    assert sys.engine.reward_bound() == 2

    with pytest.raises(AccountingLimitsExceeded) as ei:
        sys.engine.process_rewards("processor", 3)
    assert (ei.value.amount, ei.value.bound) == (3, 2)

    cp = sys.engine.process_rewards("processor", 2)
    assert cp.index == 1
    assert cp.supply == 1002
    assert sys.accounting_token.total_supply() == 1002
    assert sys.strategy.total_assets() == 1002


def test_ten_percent_over_ten_days_matches_same_bound() -> None:
    sys = make_vault_system(target_rate=SCALE // 10)
    fund_and_deposit(sys, "allocator", 1000)
    sys.world.advance(10 * DAY)

    with pytest.raises(AccountingLimitsExceeded):
        sys.engine.process_rewards("processor", 3)
    sys.engine.process_rewards("processor", 2)
    assert sys.accounting_token.total_supply() == 1002


def test_bound_succeeds_and_bound_plus_one_fails() -> None:
    sys = make_vault_system(target_rate=SCALE // 10)
    fund_and_deposit(sys, "allocator", 1_000_000)
    sys.world.advance(7 * DAY)

    bound = sys.engine.reward_bound()
    assert bound == (SCALE // 10) * 1_000_000 * 7 * DAY // (SCALE * YEAR)

    with pytest.raises(AccountingLimitsExceeded):
        sys.engine.process_rewards("processor", bound + 1)
    sys.engine.process_rewards("processor", bound)
    assert sys.accounting_token.total_supply() == 1_000_000 + bound


def test_second_call_before_cooldown_fails_too_early() -> None:
    sys = make_vault_system(target_rate=SCALE // 10, cooldown_seconds=3600)
    fund_and_deposit(sys, "allocator", 1_000_000)
    sys.world.advance(DAY)
    sys.engine.process_rewards("processor", 1)

    now = sys.world.now()
    assert sys.engine.next_update_window() == now + 3600
    assert sys.engine.cooldown_state() is CooldownState.COOLING

    sys.world.advance(3599)
    with pytest.raises(TooEarly) as ei:
        sys.engine.process_rewards("processor", 1)
    assert ei.value.next_update_window == now + 3600

    sys.world.advance(1)
    assert sys.engine.cooldown_state() is CooldownState.IDLE
    sys.engine.process_rewards("processor", 1)
    assert sys.accounting_token.total_supply() == 1_000_002


def test_zero_reward_still_starts_cooldown_and_checkpoints() -> None:
    sys = make_vault_system()
    fund_and_deposit(sys, "allocator", 1000)

    cp = sys.engine.process_rewards("processor", 0)
    assert cp.index == 1
    assert sys.engine.cooldown_state() is CooldownState.COOLING


def test_failed_reward_leaves_no_trace() -> None:
    sys = make_vault_system(target_rate=SCALE)
    fund_and_deposit(sys, "allocator", 1000)
    sys.world.advance(DAY)
    window = sys.engine.next_update_window()

    with pytest.raises(AccountingLimitsExceeded):
        sys.engine.process_rewards("processor", 100)

    assert sys.engine.checkpoint_count() == 1
    assert sys.engine.next_update_window() == window
    assert sys.accounting_token.total_supply() == 1000
    assert sys.world.events_named("RewardsProcessed") == []


def test_rewards_require_processor_capability_and_valid_amount() -> None:
    sys = make_vault_system()
    fund_and_deposit(sys, "allocator", 1000)
    sys.world.advance(DAY)

    with pytest.raises(Unauthorized):
        sys.engine.process_rewards("mallory", 1)
    with pytest.raises(InvalidAmount):
        sys.engine.process_rewards("processor", -1)
    with pytest.raises(InvalidAmount):
        sys.engine.process_rewards("processor", True)


def test_daily_rewards_then_indexed_catch_up() -> None:
    rate = SCALE // 10
    sys = make_vault_system(target_rate=rate)
    fund_and_deposit(sys, "allocator", 1_000_000_000)

    supply = 1_000_000_000
    for _ in range(5):
        sys.world.advance(DAY)
        bound = rate * supply * DAY // (SCALE * YEAR)
        assert sys.engine.reward_bound() == bound
        sys.engine.process_rewards("processor", bound)
        supply += bound

    assert sys.engine.checkpoint_count() == 6
    assert sys.accounting_token.total_supply() == supply

    cp1 = sys.engine.checkpoint(1)
    sys.world.advance(DAY)
    elapsed = sys.world.now() - cp1.timestamp
    assert elapsed == 5 * DAY

    catch_up = rate * cp1.supply * elapsed // (SCALE * YEAR)
    assert sys.engine.reward_bound(1) == catch_up
    assert catch_up > sys.engine.reward_bound()

    with pytest.raises(AccountingLimitsExceeded):
        sys.engine.process_rewards("processor", catch_up + 1, checkpoint_index=1)

    cp = sys.engine.process_rewards("processor", catch_up, checkpoint_index=1)
    assert cp.index == 6
    assert cp.supply == supply + catch_up
    assert sys.accounting_token.total_supply() == supply + catch_up
    assert sys.strategy.total_assets() == supply + catch_up

    ev = sys.world.events_named("RewardsProcessed")[-1]
    assert ev["reference_index"] == 1
    assert ev["amount"] == catch_up


def test_indexed_reference_checks_supply_and_range() -> None:
    sys = make_vault_system()
    fund_and_deposit(sys, "allocator", 1000)
    sys.world.advance(DAY)

    # checkpoint #0 was written before any deposit
    with pytest.raises(TvlTooLow):
        sys.engine.process_rewards("processor", 1, checkpoint_index=0)
    with pytest.raises(InvalidCheckpoint):
        sys.engine.process_rewards("processor", 1, checkpoint_index=7)
