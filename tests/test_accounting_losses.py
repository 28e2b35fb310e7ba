from __future__ import annotations

import pytest

from flexvault.ledger.constants import SCALE
from flexvault.runtime.accounting import CooldownState, loss_bound
from flexvault.runtime.errors import LossLimitsExceeded, TooEarly, Unauthorized
from flexvault.testing.harness import DAY, fund_and_deposit, make_vault_system


def test_loss_bound_formula_floors() -> None:
    assert loss_bound(SCALE // 10, 1000) == 100
    assert loss_bound(SCALE // 10, 12_345) == 1234
    assert loss_bound(0, 1000) == 0
    assert loss_bound(SCALE // 2, 0) == 0


def test_ten_percent_floor_on_1000_units() -> None:
    sys = make_vault_system(loss_floor=SCALE // 10)
    fund_and_deposit(sys, "allocator", 1000)

    with pytest.raises(LossLimitsExceeded) as ei:
        sys.engine.process_losses("processor", 150)
    assert (ei.value.amount, ei.value.bound) == (150, 100)

    cp = sys.engine.process_losses("processor", 100)
    assert cp.supply == 900
    assert sys.accounting_token.total_supply() == 900
    assert sys.strategy.total_assets() == 900
    assert sys.world.events_named("LossesProcessed")[-1]["amount"] == 100


def test_loss_bound_succeeds_and_one_more_fails() -> None:
    sys = make_vault_system(loss_floor=SCALE // 10)
    fund_and_deposit(sys, "allocator", 12_345)

    bound = sys.engine.loss_bound()
    assert bound == 1234
    with pytest.raises(LossLimitsExceeded):
        sys.engine.process_losses("processor", bound + 1)
    sys.engine.process_losses("processor", bound)
    assert sys.accounting_token.total_supply() == 12_345 - 1234


def test_losses_and_rewards_share_one_cooldown() -> None:
    sys = make_vault_system(loss_floor=SCALE // 10, target_rate=SCALE // 10, cooldown_seconds=600)
    fund_and_deposit(sys, "allocator", 1_000_000)
    sys.world.advance(DAY)

    sys.engine.process_losses("processor", 10)
    assert sys.engine.cooldown_state() is CooldownState.COOLING

    with pytest.raises(TooEarly):
        sys.engine.process_rewards("processor", 1)
    with pytest.raises(TooEarly):
        sys.engine.process_losses("processor", 1)

    sys.world.advance(600)
    sys.engine.process_rewards("processor", 1)
    assert sys.engine.checkpoint_count() == 3


def test_losses_require_loss_processor() -> None:
    sys = make_vault_system(loss_floor=SCALE // 10)
    fund_and_deposit(sys, "allocator", 1000)

    # the sweeper may book rewards but never losses
    with pytest.raises(Unauthorized):
        sys.engine.process_losses(sys.sweeper.address, 1)
    with pytest.raises(Unauthorized):
        sys.engine.process_losses("mallory", 1)


def test_price_per_unit_tracks_losses() -> None:
    sys = make_vault_system(loss_floor=SCALE // 10)
    fund_and_deposit(sys, "allocator", 1_000_000)
    before = sys.engine.latest_checkpoint().price_per_unit

    cp = sys.engine.process_losses("processor", 100_000)
    assert cp.price_per_unit < before
    assert cp.price_per_unit == sys.strategy.convert_to_assets(10 ** sys.strategy.decimals())
