"""Append-only checkpoint log helpers."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, List

from flexvault.runtime.errors import InvalidCheckpoint, InvariantViolation

Json = Dict[str, Any]


@dataclass(frozen=True, slots=True)
class Checkpoint:
    index: int
    timestamp: int
    supply: int
    price_per_unit: int

    def to_json(self) -> Json:
        return asdict(self)

    @classmethod
    def from_json(cls, d: Json) -> "Checkpoint":
        return cls(
            index=int(d.get("index", 0)),
            timestamp=int(d.get("timestamp", 0)),
            supply=int(d.get("supply", 0)),
            price_per_unit=int(d.get("price_per_unit", 0)),
        )


def append_checkpoint(log: List[Json], *, timestamp: int, supply: int, price_per_unit: int) -> Checkpoint:
    """Append a checkpoint; its index is its position and never changes."""
    if log:
        last = int(log[-1].get("timestamp", 0))
        if int(timestamp) < last:
            raise InvariantViolation("checkpoint_timestamp_regressed", {"timestamp": int(timestamp), "last": last})
    cp = Checkpoint(index=len(log), timestamp=int(timestamp), supply=int(supply), price_per_unit=int(price_per_unit))
    log.append(cp.to_json())
    return cp


def get_checkpoint(log: List[Json], index: Any) -> Checkpoint:
    if isinstance(index, bool) or not isinstance(index, int) or index < 0 or index >= len(log):
        raise InvalidCheckpoint(index, len(log))
    return Checkpoint.from_json(log[index])


def latest_checkpoint(log: List[Json]) -> Checkpoint:
    if not log:
        raise InvalidCheckpoint(-1, 0)
    return Checkpoint.from_json(log[-1])


__all__ = ["Checkpoint", "append_checkpoint", "get_checkpoint", "latest_checkpoint"]
