# src/lockstake/ledger/governor.py
from __future__ import annotations

"""Administrator-tunable rate parameters.

One validated setter per field. Setters only replace state: nothing already
settled is touched, and every open position accrues at the new values from
the next read onward.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from lockstake.ledger.constants import (
    DEFAULT_BASE_RATE_BPS,
    DEFAULT_MIN_STAKE_AMOUNT,
    MAX_BASE_RATE_BPS,
    MIN_BASE_RATE_BPS,
)
from lockstake.ledger.tiers import LockTier, LockTierTable, parse_tier
from lockstake.runtime.errors import InvalidAmount, InvalidRate, Unauthorized

Json = Dict[str, Any]


def _strict_int(v: Any) -> Optional[int]:
    if isinstance(v, bool) or not isinstance(v, int):
        return None
    return int(v)


def validate_base_rate(v: Any) -> int:
    r = _strict_int(v)
    if r is None or r < MIN_BASE_RATE_BPS or r > MAX_BASE_RATE_BPS:
        raise InvalidRate(
            "base_rate_out_of_bounds",
            {"base_rate_bps": v, "min": MIN_BASE_RATE_BPS, "max": MAX_BASE_RATE_BPS},
        )
    return r


def validate_min_stake(v: Any) -> int:
    a = _strict_int(v)
    if a is None or a <= 0:
        raise InvalidAmount("min_stake_must_be_positive", {"min_stake_amount": v})
    return a


@dataclass
class RateParams:
    """Snapshot of everything the accrual engine reads."""

    base_rate_bps: int = DEFAULT_BASE_RATE_BPS
    min_stake_amount: int = DEFAULT_MIN_STAKE_AMOUNT
    tiers: LockTierTable = field(default_factory=LockTierTable)

    def multiplier_bps(self, tier: LockTier) -> int:
        return self.tiers.multiplier_bps(tier)

    def lock_seconds(self, tier: LockTier) -> int:
        return self.tiers.lock_seconds(tier)

    def to_dict(self) -> Json:
        return {
            "base_rate_bps": int(self.base_rate_bps),
            "min_stake_amount": int(self.min_stake_amount),
            "tiers": self.tiers.to_dict(),
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "RateParams":
        tiers_raw = raw.get("tiers")
        return cls(
            base_rate_bps=validate_base_rate(raw.get("base_rate_bps", DEFAULT_BASE_RATE_BPS)),
            min_stake_amount=validate_min_stake(raw.get("min_stake_amount", DEFAULT_MIN_STAKE_AMOUNT)),
            tiers=LockTierTable.from_dict(tiers_raw) if isinstance(tiers_raw, Mapping) else LockTierTable(),
        )


class ConfigGovernor:
    def __init__(self, *, admin: str, params: Optional[RateParams] = None) -> None:
        admin_s = str(admin or "").strip()
        if not admin_s:
            raise Unauthorized("admin_not_configured")
        self._admin = admin_s

        p = copy.deepcopy(params) if params is not None else RateParams()
        validate_base_rate(p.base_rate_bps)
        validate_min_stake(p.min_stake_amount)
        p.tiers.validate()
        self._params = p

    @property
    def admin(self) -> str:
        return self._admin

    @property
    def params(self) -> RateParams:
        return self._params

    def is_admin(self, caller: str) -> bool:
        return str(caller or "").strip() == self._admin

    def require_admin(self, caller: str, *, op: str) -> None:
        if not self.is_admin(caller):
            raise Unauthorized("admin_only", {"op": op, "caller": str(caller)})

    def set_base_rate(self, caller: str, new_bps: Any) -> int:
        self.require_admin(caller, op="set_base_rate")
        self._params.base_rate_bps = validate_base_rate(new_bps)
        return self._params.base_rate_bps

    def set_tier_multiplier(self, caller: str, tier: Any, new_bps: Any) -> int:
        self.require_admin(caller, op="set_tier_multiplier")
        t = parse_tier(tier)
        self._params.tiers = self._params.tiers.with_multiplier(t, new_bps)
        return self._params.multiplier_bps(t)

    def set_min_stake(self, caller: str, new_amount: Any) -> int:
        self.require_admin(caller, op="set_min_stake")
        self._params.min_stake_amount = validate_min_stake(new_amount)
        return self._params.min_stake_amount

    def restore(self, params: RateParams) -> None:
        self._params = params
