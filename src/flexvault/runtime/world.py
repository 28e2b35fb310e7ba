from __future__ import annotations

"""Transactional world state shared by every component.

All components (tokens, engines, vaults, sweepers) keep their records inside a
single JSON-like state dict. Entry points run inside `World.atomic()`:

  - the outermost frame deep-copies the state before running
  - any exception restores the snapshot in place and drops pending events
  - nested frames join the outermost one (one atomic unit per entry point)
  - on commit: global invariants are checked, the snapshot is persisted
    (if a store is attached) and pending events are logged

Time is an externally-advancing monotonic clock stored in state["time"].
"""

import copy
import functools
import hashlib
import logging
from collections import deque
from contextlib import contextmanager
from typing import Any, Callable, Deque, Dict, Iterator, List, Optional, Protocol, Set, TypeVar

from flexvault.ledger.migrations import migrate_state_dict
from flexvault.runtime.errors import ReentrantCall
from flexvault.runtime.state_invariants import check_state_invariants, ensure_state
from flexvault.runtime.vault_logging import log_event

Json = Dict[str, Any]

F = TypeVar("F", bound=Callable[..., Any])


class StateStore(Protocol):
    def write(self, st: Json) -> None: ...


class World:
    def __init__(
        self,
        state: Optional[Json] = None,
        *,
        store: Optional[StateStore] = None,
        clock: Optional[Callable[[], float]] = None,
        genesis_time: Optional[int] = None,
        max_events: int = 10_000,
    ) -> None:
        st = migrate_state_dict(state if state is not None else {})
        ensure_state(st)
        if genesis_time is not None and int(st.get("time", 0) or 0) == 0:
            st["time"] = int(genesis_time)

        self.state: Json = st
        self._store = store
        self._clock = clock
        self._depth = 0
        self._pending: List[Json] = []
        self._entered: Set[str] = set()
        self.events: Deque[Json] = deque(maxlen=int(max_events))
        self._log = logging.getLogger("flexvault.world")

    # ----------------------------
    # Clock
    # ----------------------------

    def now(self) -> int:
        cur = int(self.state.get("time", 0) or 0)
        if self._clock is not None:
            t = int(self._clock())
            if t > cur:
                self.state["time"] = t
                cur = t
        return cur

    def advance(self, seconds: int) -> int:
        s = int(seconds)
        if s < 0:
            raise ValueError(f"clock cannot move backwards (advance by {s})")
        self.state["time"] = self.now() + s
        return int(self.state["time"])

    def warp(self, ts: int) -> int:
        t = int(ts)
        if t < self.now():
            raise ValueError(f"clock cannot move backwards (warp to {t} < {self.now()})")
        self.state["time"] = t
        return t

    # ----------------------------
    # Addresses
    # ----------------------------

    def new_address(self, label: str) -> str:
        n = int(self.state.get("address_nonce", 0) or 0)
        self.state["address_nonce"] = n + 1
        digest = hashlib.sha256(f"{label}:{n}".encode("utf-8")).hexdigest()
        return "0x" + digest[:40]

    # ----------------------------
    # Transactions
    # ----------------------------

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    @contextmanager
    def atomic(self) -> Iterator[Json]:
        outer = self._depth == 0
        snapshot = copy.deepcopy(self.state) if outer else None
        mark = len(self._pending)
        self._depth += 1
        try:
            yield self.state
            if outer:
                check_state_invariants(self.state)
                if self._store is not None:
                    self._store.write(self.state)
        except BaseException:
            if outer:
                self.state.clear()
                self.state.update(snapshot or {})
                self._pending.clear()
            else:
                del self._pending[mark:]
            raise
        finally:
            self._depth -= 1

        if outer:
            self._flush()

    @contextmanager
    def nonreentrant(self, scope: str) -> Iterator[None]:
        if scope in self._entered:
            raise ReentrantCall(scope)
        self._entered.add(scope)
        try:
            yield
        finally:
            self._entered.discard(scope)

    # ----------------------------
    # Events
    # ----------------------------

    def emit(self, event: str, **fields: Any) -> None:
        self._pending.append({"event": str(event), "time": self.now(), **fields})
        if self._depth == 0:
            self._flush()

    def events_named(self, event: str) -> List[Json]:
        return [e for e in self.events if e.get("event") == event]

    def _flush(self) -> None:
        pending, self._pending = self._pending, []
        for ev in pending:
            self.events.append(ev)
            fields = {k: v for k, v in ev.items() if k != "event"}
            log_event(self._log, ev["event"], **fields)


def transactional(fn: F) -> F:
    """Run a component method inside its world's atomic frame."""

    @functools.wraps(fn)
    def _wrapped(self: Any, *args: Any, **kwargs: Any) -> Any:
        with self.world.atomic():
            return fn(self, *args, **kwargs)

    return _wrapped  # type: ignore[return-value]


__all__ = ["StateStore", "World", "transactional"]
