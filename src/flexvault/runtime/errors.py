from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

Json = Dict[str, Any]


@dataclass
class VaultError(Exception):
    """Canonical error type for every rejected vault transition."""

    code: str
    reason: str
    details: Any | None = None

    def __str__(self) -> str:  # pragma: no cover
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


# --- authorization ---------------------------------------------------------


class Unauthorized(VaultError):
    def __init__(self, principal: str, capability: str, scope: str = "") -> None:
        super().__init__(
            "unauthorized",
            "missing_capability",
            {"principal": principal, "capability": capability, "scope": scope},
        )
        self.principal = principal
        self.capability = capability


class NotStrategy(VaultError):
    def __init__(self, sender: str) -> None:
        super().__init__("unauthorized", "not_strategy", {"sender": sender})
        self.sender = sender


class NotAccountingModule(VaultError):
    def __init__(self, sender: str) -> None:
        super().__init__("unauthorized", "not_accounting_module", {"sender": sender})
        self.sender = sender


# --- timing ----------------------------------------------------------------


class TooEarly(VaultError):
    def __init__(self, now: int, next_update_window: int) -> None:
        super().__init__("timing", "too_early", {"now": now, "next_update_window": next_update_window})
        self.now = now
        self.next_update_window = next_update_window


class CannotSweepRewards(VaultError):
    def __init__(self, why: str, details: Optional[Json] = None) -> None:
        d: Json = {"why": why}
        d.update(details or {})
        super().__init__("timing", "cannot_sweep_rewards", d)
        self.why = why


# --- bound violations --------------------------------------------------------


class AccountingLimitsExceeded(VaultError):
    def __init__(self, amount: int, bound: int) -> None:
        super().__init__("bound_violation", "accounting_limits_exceeded", {"amount": amount, "bound": bound})
        self.amount = amount
        self.bound = bound


class LossLimitsExceeded(VaultError):
    def __init__(self, amount: int, bound: int) -> None:
        super().__init__("bound_violation", "loss_limits_exceeded", {"amount": amount, "bound": bound})
        self.amount = amount
        self.bound = bound


class InvariantViolation(VaultError):
    def __init__(self, what: str, details: Optional[Json] = None) -> None:
        d: Json = {"what": what}
        d.update(details or {})
        super().__init__("bound_violation", "invariant_violation", d)
        self.what = what


class TvlTooLow(VaultError):
    def __init__(self, supply: int, minimum: int) -> None:
        super().__init__("bound_violation", "tvl_too_low", {"supply": supply, "minimum": minimum})
        self.supply = supply
        self.minimum = minimum


# --- configuration -----------------------------------------------------------


class ZeroAddress(VaultError):
    def __init__(self, field: str) -> None:
        super().__init__("configuration", "zero_address", {"field": field})
        self.field = field


class AccountingTokenMismatch(VaultError):
    def __init__(self, expected: str, got: str) -> None:
        super().__init__("configuration", "accounting_token_mismatch", {"expected": expected, "got": got})
        self.expected = expected
        self.got = got


class NoAccountingModule(VaultError):
    def __init__(self, strategy: str) -> None:
        super().__init__("configuration", "no_accounting_module", {"strategy": strategy})


class InvalidConfiguration(VaultError):
    def __init__(self, reason: str, details: Optional[Json] = None) -> None:
        super().__init__("configuration", reason, details or {})


# --- forbidden operations ----------------------------------------------------


class TransferNotAllowed(VaultError):
    def __init__(self, token: str) -> None:
        super().__init__("forbidden", "accounting_token_non_transferable", {"token": token})


class AssetNotWithdrawable(VaultError):
    def __init__(self, asset: str) -> None:
        super().__init__("forbidden", "asset_not_withdrawable", {"asset": asset})
        self.asset = asset


class UnsupportedAsset(VaultError):
    def __init__(self, asset: str) -> None:
        super().__init__("forbidden", "unsupported_asset", {"asset": asset})
        self.asset = asset


class VaultPaused(VaultError):
    def __init__(self, vault: str) -> None:
        super().__init__("forbidden", "paused", {"vault": vault})


class ReentrantCall(VaultError):
    def __init__(self, scope: str) -> None:
        super().__init__("forbidden", "reentrant_call", {"scope": scope})


# --- balances ----------------------------------------------------------------


class InsufficientBalance(VaultError):
    def __init__(self, token: str, holder: str, balance: int, amount: int) -> None:
        super().__init__(
            "balance",
            "insufficient_balance",
            {"token": token, "holder": holder, "balance": balance, "amount": amount},
        )
        self.balance = balance
        self.amount = amount


class InsufficientAllowance(VaultError):
    def __init__(self, token: str, owner: str, spender: str, allowance: int, amount: int) -> None:
        super().__init__(
            "balance",
            "insufficient_allowance",
            {"token": token, "owner": owner, "spender": spender, "allowance": allowance, "amount": amount},
        )


# --- input -------------------------------------------------------------------


class InvalidAmount(VaultError):
    def __init__(self, amount: Any, field: str = "amount") -> None:
        super().__init__("invalid_input", "invalid_amount", {"field": field, "value": repr(amount)})


class InvalidCheckpoint(VaultError):
    def __init__(self, index: Any, length: int) -> None:
        super().__init__("invalid_input", "checkpoint_not_found", {"index": repr(index), "length": length})
        self.index = index


__all__ = [
    "AccountingLimitsExceeded",
    "AccountingTokenMismatch",
    "AssetNotWithdrawable",
    "CannotSweepRewards",
    "InsufficientAllowance",
    "InsufficientBalance",
    "InvalidAmount",
    "InvalidCheckpoint",
    "InvalidConfiguration",
    "InvariantViolation",
    "LossLimitsExceeded",
    "NoAccountingModule",
    "NotAccountingModule",
    "NotStrategy",
    "ReentrantCall",
    "TooEarly",
    "TransferNotAllowed",
    "TvlTooLow",
    "Unauthorized",
    "UnsupportedAsset",
    "VaultError",
    "VaultPaused",
    "ZeroAddress",
]
