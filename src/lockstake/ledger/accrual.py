# src/lockstake/ledger/accrual.py
from __future__ import annotations

"""Continuous reward accrual.

    effective_rate_bps = base_rate_bps * tier_multiplier_bps // 10000
    reward = principal * effective_rate_bps * elapsed // (10000 * SECONDS_PER_YEAR)

Integer math throughout; truncation always rounds in the pool's favor.
These functions never mutate a position. Settling (moving
last_settlement_time forward) is the caller's job and must happen in the same
operation that consumed the computed reward.
"""

from lockstake.ledger.constants import BPS_DENOMINATOR, SECONDS_PER_YEAR
from lockstake.ledger.types import Position
from lockstake.runtime.errors import NoActivePosition

_REWARD_DIVISOR: int = BPS_DENOMINATOR * SECONDS_PER_YEAR


def effective_rate_bps(base_rate_bps: int, tier_multiplier_bps: int) -> int:
    return int(base_rate_bps) * int(tier_multiplier_bps) // BPS_DENOMINATOR


def elapsed_seconds(last_settlement_time: int, now_s: int) -> int:
    """Seconds since last settlement; a clock that went backwards counts as zero."""
    return max(int(now_s) - int(last_settlement_time), 0)


def reward_for(principal: int, rate_bps: int, elapsed_s: int) -> int:
    if elapsed_s <= 0 or principal <= 0 or rate_bps <= 0:
        return 0
    return int(principal) * int(rate_bps) * int(elapsed_s) // _REWARD_DIVISOR


def accrued_reward(position: Position, now_s: int, base_rate_bps: int, tier_multiplier_bps: int) -> int:
    if not position.active:
        raise NoActivePosition("position_inactive", {"lock_tier": position.lock_tier.key})

    elapsed = elapsed_seconds(position.last_settlement_time, now_s)
    if elapsed == 0:
        return 0

    rate = effective_rate_bps(base_rate_bps, tier_multiplier_bps)
    return reward_for(position.principal, rate, elapsed)


def projected_reward(principal: int, duration_s: int, base_rate_bps: int, tier_multiplier_bps: int) -> int:
    """Reward a fresh position of `principal` would accrue over `duration_s` at current rates."""
    rate = effective_rate_bps(base_rate_bps, tier_multiplier_bps)
    return reward_for(int(principal), rate, max(int(duration_s), 0))


__all__ = [
    "accrued_reward",
    "effective_rate_bps",
    "elapsed_seconds",
    "projected_reward",
    "reward_for",
]
