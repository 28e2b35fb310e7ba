# src/flexvault/runtime/state_invariants.py
from __future__ import annotations

"""State invariants / normalization helpers.

Vault state is a nested JSON-like dict that is mutated by the runtime
components (tokens, engines, vaults, sweepers). This module is the single place
that:

  - validates the state is dict-like
  - ensures core top-level containers exist
  - checks the global token invariant on every outermost commit

Component-specific post-conditions (e.g. the strategy's reported total assets)
remain the responsibility of the component that owns them.
"""

from collections.abc import MutableMapping
from typing import Any, Dict

from flexvault.runtime.errors import InvariantViolation

Json = Dict[str, Any]

_DICT_ROOTS = ("tokens", "roles", "accounting_modules", "vaults", "sweepers", "rate_providers", "deployment")


def ensure_state(st: Any) -> Json:
    """Ensure `st` is a dict and contains core keys.

    Returns the (possibly mutated) dict.

    Raises:
        TypeError: if st is not a MutableMapping or a root has the wrong shape
    """
    if not isinstance(st, MutableMapping):
        raise TypeError(f"state must be MutableMapping, got {type(st)}")

    for key in _DICT_ROOTS:
        v = st.get(key)
        if v is None:
            st[key] = {}
        elif not isinstance(v, dict):
            # Fail closed: do not attempt to coerce arbitrary types.
            raise TypeError(f"state[{key!r}] must be dict, got {type(v)}")

    st.setdefault("time", 0)
    st.setdefault("address_nonce", 0)
    return st  # type: ignore[return-value]


def check_state_invariants(st: Json) -> None:
    """Every token's total supply equals the sum of its balances; no balance is negative."""
    tokens = st.get("tokens") or {}
    for addr, tok in tokens.items():
        if not isinstance(tok, dict):
            raise InvariantViolation("token_record_malformed", {"token": addr})
        balances = tok.get("balances") or {}
        total = 0
        for holder, bal in balances.items():
            b = int(bal)
            if b < 0:
                raise InvariantViolation("negative_balance", {"token": addr, "holder": holder, "balance": b})
            total += b
        supply = int(tok.get("total_supply", 0))
        if total != supply:
            raise InvariantViolation(
                "token_supply_mismatch",
                {"token": addr, "total_supply": supply, "sum_of_balances": total},
            )


__all__ = ["check_state_invariants", "ensure_state"]
