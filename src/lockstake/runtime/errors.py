from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Optional

Json = Dict[str, Any]


@dataclass
class StakingError(Exception):
    """Canonical error type for staking operations.

    Every failure rejects the whole requested operation. `code` is stable and
    machine-readable; callers switch on it (or on the subclass), never on
    `reason`.
    """

    reason: str
    details: Optional[Json] = None

    code: ClassVar[str] = "staking_error"

    def __str__(self) -> str:
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


class InvalidAmount(StakingError):
    code = "invalid_amount"


class InvalidRate(StakingError):
    code = "invalid_rate"


class PositionExists(StakingError):
    code = "position_exists"


class NoActivePosition(StakingError):
    code = "no_active_position"


class StillLocked(StakingError):
    code = "still_locked"


class InsufficientRewards(StakingError):
    code = "insufficient_rewards"


class CannotRecoverStakedAsset(StakingError):
    code = "cannot_recover_staked_asset"


class Unauthorized(StakingError):
    code = "unauthorized"


class Unauthenticated(StakingError):
    code = "unauthenticated"


class Paused(StakingError):
    code = "paused"


class ReentrantCall(StakingError):
    code = "reentrant_call"


class AdministratorMustBeMultiParty(StakingError):
    code = "admin_must_be_multi_party"


class TokenTransferError(StakingError):
    code = "token_transfer_failed"


class UnknownTier(StakingError):
    code = "unknown_tier"


__all__ = [
    "StakingError",
    "InvalidAmount",
    "InvalidRate",
    "PositionExists",
    "NoActivePosition",
    "StillLocked",
    "InsufficientRewards",
    "CannotRecoverStakedAsset",
    "Unauthorized",
    "Unauthenticated",
    "Paused",
    "ReentrantCall",
    "AdministratorMustBeMultiParty",
    "TokenTransferError",
    "UnknownTier",
]
