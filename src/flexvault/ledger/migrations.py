from __future__ import annotations

from typing import Any, Callable, Dict

Json = Dict[str, Any]

# Increment this when you add a new migration step.
CURRENT_STATE_VERSION = 2


def _as_int(v: Any, default: int = 0) -> int:
    try:
        if isinstance(v, bool):
            return default
        return int(v)
    except (TypeError, ValueError):
        return default


def _ensure_dict(root: Json, key: str) -> Json:
    v = root.get(key)
    if not isinstance(v, dict):
        v = {}
        root[key] = v
    return v


def _ensure_int(root: Json, key: str, default: int = 0) -> int:
    if key not in root:
        root[key] = int(default)
        return int(default)
    x = _as_int(root.get(key), default)
    root[key] = int(x)
    return int(x)


def _migrate_v0_to_v1(st: Json) -> Json:
    """
    v0 -> v1: introduce explicit state_version and normalize minimal roots.

    v0 characteristics:
      - no 'state_version'
      - may have missing roots or wrong shapes
    """
    _ensure_int(st, "time", 0)
    _ensure_int(st, "address_nonce", 0)

    tokens = _ensure_dict(st, "tokens")
    _ensure_dict(st, "roles")
    engines = _ensure_dict(st, "accounting_modules")
    _ensure_dict(st, "vaults")
    _ensure_dict(st, "sweepers")
    _ensure_dict(st, "rate_providers")
    _ensure_dict(st, "deployment")

    for addr, tok in list(tokens.items()):
        if not isinstance(tok, dict):
            tokens[addr] = {}
            tok = tokens[addr]
        _ensure_int(tok, "total_supply", 0)
        _ensure_int(tok, "decimals", 18)
        _ensure_dict(tok, "balances")
        _ensure_dict(tok, "allowances")

    for addr, eng in list(engines.items()):
        if not isinstance(eng, dict):
            engines[addr] = {}
            eng = engines[addr]
        _ensure_int(eng, "next_update_window", 0)
        _ensure_int(eng, "cooldown_seconds", 0)
        if not isinstance(eng.get("checkpoints"), list):
            eng["checkpoints"] = []

    st["state_version"] = 1
    return st


def _migrate_v1_to_v2(st: Json) -> Json:
    """
    v1 -> v2: checkpoints carry an explicit ordinal index and a price per unit.

    v1 checkpoints only stored {timestamp, supply}. Their price per unit is
    unknown and is stored as 0, which realized_rate reads as "no data".
    """
    engines = _ensure_dict(st, "accounting_modules")
    for eng in engines.values():
        if not isinstance(eng, dict):
            continue
        log = eng.get("checkpoints")
        if not isinstance(log, list):
            eng["checkpoints"] = []
            continue
        fixed = []
        for cp in log:
            if not isinstance(cp, dict):
                continue
            fixed.append(
                {
                    "index": len(fixed),
                    "timestamp": _as_int(cp.get("timestamp"), 0),
                    "supply": _as_int(cp.get("supply"), 0),
                    "price_per_unit": _as_int(cp.get("price_per_unit"), 0),
                }
            )
        eng["checkpoints"] = fixed

    st["state_version"] = 2
    return st


_MIGRATIONS: Dict[int, Callable[[Json], Json]] = {
    0: _migrate_v0_to_v1,
    1: _migrate_v1_to_v2,
}


def migrate_state_dict(raw: Any) -> Json:
    """
    Upgrade a raw persisted JSON dict to CURRENT_STATE_VERSION.

    - Best-effort: never raises for simple shape issues; it normalizes.
    - If raw isn't a dict, returns an empty vCURRENT state skeleton.
    """
    st: Json = raw if isinstance(raw, dict) else {}

    v = _as_int(st.get("state_version"), 0)
    if v > CURRENT_STATE_VERSION:
        # Future state created by a newer binary; refuse to downgrade silently.
        raise ValueError(
            f"Vault state version {v} is newer than this binary supports (max {CURRENT_STATE_VERSION})."
        )

    while v < CURRENT_STATE_VERSION:
        step = _MIGRATIONS.get(v)
        if step is None:
            raise ValueError(f"No migration path from state_version={v} to {CURRENT_STATE_VERSION}.")
        st = step(st)
        v = _as_int(st.get("state_version"), v + 1)

    st["state_version"] = CURRENT_STATE_VERSION
    return st
