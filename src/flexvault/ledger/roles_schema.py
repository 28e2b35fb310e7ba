# src/flexvault/ledger/roles_schema.py
from __future__ import annotations

from typing import Any, Dict, List

Json = Dict[str, Any]


def _as_str(x: Any) -> str:
    return str(x) if x is not None else ""


def _uniq_str_list(xs: Any) -> List[str]:
    out: List[str] = []
    seen: set[str] = set()
    for it in xs if isinstance(xs, list) else []:
        s = _as_str(it).strip()
        if s and s not in seen:
            seen.add(s)
            out.append(s)
    return out


def ensure_roles_schema(state: Json) -> Json:
    """
    Ensure state['roles'] exists.

    Shape: roles[scope][capability] = [principal, ...]
    where scope is the address of the component that checks the capability.
    Non-destructive: does not delete unknown keys.
    """
    roles = state.get("roles")
    if not isinstance(roles, dict):
        roles = {}
        state["roles"] = roles
    return roles


def ensure_scope(state: Json, scope: str) -> Json:
    roles = ensure_roles_schema(state)
    sc = _as_str(scope).strip()
    if not sc:
        raise ValueError("scope must be non-empty")
    obj = roles.get(sc)
    if not isinstance(obj, dict):
        obj = {}
        roles[sc] = obj
    return obj


def members(state: Json, scope: str, capability: str) -> List[str]:
    roles = ensure_roles_schema(state)
    obj = roles.get(_as_str(scope).strip())
    if not isinstance(obj, dict):
        return []
    return _uniq_str_list(obj.get(_as_str(capability).strip()))


def has_capability(state: Json, scope: str, principal: str, capability: str) -> bool:
    p = _as_str(principal).strip()
    if not p:
        return False
    return p in members(state, scope, capability)


def grant_capability(state: Json, scope: str, capability: str, principal: str) -> bool:
    """Grant `capability` in `scope` to `principal`. Returns False if already held."""
    cap = _as_str(capability).strip()
    p = _as_str(principal).strip()
    if not cap or not p:
        raise ValueError("capability and principal must be non-empty")
    obj = ensure_scope(state, scope)
    cur = _uniq_str_list(obj.get(cap))
    if p in cur:
        obj[cap] = cur
        return False
    cur.append(p)
    obj[cap] = cur
    return True


def revoke_capability(state: Json, scope: str, capability: str, principal: str) -> bool:
    """Revoke `capability` in `scope` from `principal`. Returns False if not held."""
    obj = ensure_scope(state, scope)
    cap = _as_str(capability).strip()
    p = _as_str(principal).strip()
    cur = _uniq_str_list(obj.get(cap))
    if p not in cur:
        return False
    obj[cap] = [x for x in cur if x != p]
    return True
