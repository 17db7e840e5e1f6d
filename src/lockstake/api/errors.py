from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from lockstake.runtime.errors import StakingError


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
    def forbidden(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(403, code, message, details or {})

    @staticmethod
    def not_found(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(404, code, message, details or {})

    @staticmethod
    def internal(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(500, code, message, details or {})

    def to_body(self) -> Dict[str, Any]:
        return {"ok": False, "error": {"code": self.code, "message": self.message, "details": self.details}}


_STATUS_BY_CODE: Dict[str, int] = {
    "invalid_amount": 400,
    "invalid_rate": 400,
    "unknown_tier": 400,
    "cannot_recover_staked_asset": 400,
    "unauthenticated": 401,
    "unauthorized": 403,
    "no_active_position": 404,
    "position_exists": 409,
    "still_locked": 409,
    "insufficient_rewards": 409,
    "paused": 409,
    "reentrant_call": 409,
    "admin_must_be_multi_party": 500,
    "token_transfer_failed": 502,
}


def from_staking_error(e: StakingError) -> ApiError:
    return ApiError(_STATUS_BY_CODE.get(e.code, 400), e.code, e.reason, dict(e.details or {}))
