from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from flexvault.runtime.errors import VaultError

# VaultError.code -> HTTP status
_STATUS_BY_CODE: Dict[str, int] = {
    "unauthorized": 403,
    "timing": 409,
    "bound_violation": 422,
    "invalid_input": 400,
}


def _describe(e: VaultError) -> str:
    """Readable message, e.g. "cannot sweep rewards: cooldown active"."""
    msg = e.reason.replace("_", " ")
    why = e.details.get("why") if isinstance(e.details, dict) else None
    if why:
        msg = f"{msg}: {str(why).replace('_', ' ')}"
    return msg


@dataclass
class ApiError(Exception):
    status_code: int
    code: str
    message: str
    details: Dict[str, Any]

    @staticmethod
    def bad_request(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(400, code, message, details or {})

    @staticmethod
    def not_found(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(404, code, message, details or {})

    @staticmethod
    def internal(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(500, code, message, details or {})

    @staticmethod
    def from_vault_error(e: VaultError) -> "ApiError":
        details = dict(e.details) if isinstance(e.details, dict) else {"details": e.details}
        details.setdefault("category", e.code)
        return ApiError(_STATUS_BY_CODE.get(e.code, 400), e.reason, _describe(e), details)

    def to_json(self) -> Dict[str, Any]:
        return {"ok": False, "error": {"code": self.code, "message": self.message, "details": self.details}}
