from __future__ import annotations

import pytest

from flexvault.runtime.errors import InsufficientBalance, InvariantViolation
from flexvault.runtime.world import World
from flexvault.testing.harness import GENESIS_TIME, fund, make_vault_system


def test_failed_transaction_restores_state_and_drops_events() -> None:
    sys = make_vault_system()
    fund(sys, "alice", 10)
    before = sys.world.state["tokens"][sys.base_asset.address]["balances"].copy()
    n_events = len(sys.world.events)

    with pytest.raises(InsufficientBalance):
        with sys.world.atomic():
            sys.base_asset.transfer("alice", "bob", 5)
            sys.world.emit("Marker")
            sys.base_asset.transfer("alice", "bob", 50)

    assert sys.world.state["tokens"][sys.base_asset.address]["balances"] == before
    assert len(sys.world.events) == n_events
    assert sys.world.events_named("Marker") == []


def test_commit_checks_token_supply_invariant() -> None:
    sys = make_vault_system()
    fund(sys, "alice", 10)

    with pytest.raises(InvariantViolation) as ei:
        with sys.world.atomic() as st:
            st["tokens"][sys.base_asset.address]["balances"]["alice"] = 11
    assert ei.value.what == "token_supply_mismatch"
    assert sys.base_asset.balance_of("alice") == 10


def test_events_flush_only_after_outermost_commit() -> None:
    world = World(genesis_time=GENESIS_TIME)
    with world.atomic():
        world.emit("Outer")
        with world.atomic():
            world.emit("Inner")
        assert list(world.events) == []
    assert [e["event"] for e in world.events] == ["Outer", "Inner"]


def test_clock_is_monotonic() -> None:
    world = World(genesis_time=GENESIS_TIME)
    assert world.now() == GENESIS_TIME
    assert world.advance(10) == GENESIS_TIME + 10
    with pytest.raises(ValueError):
        world.advance(-1)
    with pytest.raises(ValueError):
        world.warp(GENESIS_TIME)

    ticks = iter([GENESIS_TIME + 100, GENESIS_TIME + 50])
    clocked = World(genesis_time=GENESIS_TIME, clock=lambda: next(ticks))
    assert clocked.now() == GENESIS_TIME + 100
    assert clocked.now() == GENESIS_TIME + 100


def test_addresses_are_unique_and_hex() -> None:
    world = World()
    a = world.new_address("x")
    b = world.new_address("x")
    assert a != b
    assert a.startswith("0x") and len(a) == 42
    int(a[2:], 16)


def test_store_receives_each_committed_state() -> None:
    class _Store:
        def __init__(self) -> None:
            self.writes: list[dict] = []

        def write(self, st: dict) -> None:
            self.writes.append(dict(st))

    store = _Store()
    sys = make_vault_system(store=store)
    n = len(store.writes)
    assert n >= 1

    fund(sys, "alice", 1)
    assert len(store.writes) == n + 1
    assert store.writes[-1]["tokens"][sys.base_asset.address]["balances"]["alice"] == 1
