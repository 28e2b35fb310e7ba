# src/flexvault/ledger/token_book.py
from __future__ import annotations

"""Token balance books stored under state["tokens"].

Record shape:
  tokens[address] = {
    "kind": "asset" | "accounting" | "shares",
    "name", "symbol", "decimals",
    "total_supply": int,
    "balances": {holder: int},
    "allowances": {owner: {spender: int}},
  }

These are raw book operations; authorization belongs to the token handles.
"""

from typing import Any, Dict

from flexvault.ledger.constants import MAX_UINT256
from flexvault.runtime.errors import InsufficientAllowance, InsufficientBalance, InvalidConfiguration

Json = Dict[str, Any]


def _as_int(v: Any, default: int = 0) -> int:
    try:
        return int(v)
    except (TypeError, ValueError):
        return int(default)


def _tokens(state: Json) -> Json:
    t = state.get("tokens")
    if not isinstance(t, dict):
        t = {}
        state["tokens"] = t
    return t


def create_token(state: Json, address: str, *, kind: str, name: str, symbol: str, decimals: int, **extra: Any) -> Json:
    tokens = _tokens(state)
    if address in tokens:
        raise InvalidConfiguration("token_exists", {"token": address})
    rec: Json = {
        "kind": str(kind),
        "name": str(name),
        "symbol": str(symbol),
        "decimals": int(decimals),
        "total_supply": 0,
        "balances": {},
        "allowances": {},
    }
    rec.update(extra)
    tokens[address] = rec
    return rec


def token_record(state: Json, address: str) -> Json:
    rec = _tokens(state).get(str(address))
    if not isinstance(rec, dict):
        raise InvalidConfiguration("unknown_token", {"token": address})
    return rec


def balance_of(state: Json, token: str, holder: str) -> int:
    rec = token_record(state, token)
    return _as_int((rec.get("balances") or {}).get(holder), 0)


def total_supply(state: Json, token: str) -> int:
    return _as_int(token_record(state, token).get("total_supply"), 0)


def allowance(state: Json, token: str, owner: str, spender: str) -> int:
    rec = token_record(state, token)
    return _as_int(((rec.get("allowances") or {}).get(owner) or {}).get(spender), 0)


def _set_balance(rec: Json, holder: str, value: int) -> None:
    balances = rec.setdefault("balances", {})
    if value == 0:
        balances.pop(holder, None)
    else:
        balances[holder] = int(value)


def mint(state: Json, token: str, to: str, amount: int) -> None:
    rec = token_record(state, token)
    cur = _as_int((rec.get("balances") or {}).get(to), 0)
    _set_balance(rec, to, cur + int(amount))
    rec["total_supply"] = _as_int(rec.get("total_supply"), 0) + int(amount)


def burn(state: Json, token: str, frm: str, amount: int) -> None:
    rec = token_record(state, token)
    cur = _as_int((rec.get("balances") or {}).get(frm), 0)
    if cur < int(amount):
        raise InsufficientBalance(token, frm, cur, int(amount))
    _set_balance(rec, frm, cur - int(amount))
    rec["total_supply"] = _as_int(rec.get("total_supply"), 0) - int(amount)


def move(state: Json, token: str, frm: str, to: str, amount: int) -> None:
    rec = token_record(state, token)
    cur = _as_int((rec.get("balances") or {}).get(frm), 0)
    if cur < int(amount):
        raise InsufficientBalance(token, frm, cur, int(amount))
    _set_balance(rec, frm, cur - int(amount))
    dst = _as_int((rec.get("balances") or {}).get(to), 0)
    _set_balance(rec, to, dst + int(amount))


def set_allowance(state: Json, token: str, owner: str, spender: str, amount: int) -> None:
    rec = token_record(state, token)
    allowances = rec.setdefault("allowances", {})
    per_owner = allowances.get(owner)
    if not isinstance(per_owner, dict):
        per_owner = {}
        allowances[owner] = per_owner
    if int(amount) == 0:
        per_owner.pop(spender, None)
        if not per_owner:
            allowances.pop(owner, None)
    else:
        per_owner[spender] = int(amount)


def spend_allowance(state: Json, token: str, owner: str, spender: str, amount: int) -> None:
    """Decrease the allowance; an unlimited (MAX_UINT256) allowance is never decremented."""
    cur = allowance(state, token, owner, spender)
    if cur == MAX_UINT256:
        return
    if cur < int(amount):
        raise InsufficientAllowance(token, owner, spender, cur, int(amount))
    set_allowance(state, token, owner, spender, cur - int(amount))
