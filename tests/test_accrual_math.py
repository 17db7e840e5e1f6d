from __future__ import annotations

import pytest

from lockstake.ledger.accrual import (
    accrued_reward,
    effective_rate_bps,
    elapsed_seconds,
    projected_reward,
    reward_for,
)
from lockstake.ledger.constants import COIN, SECONDS_PER_DAY, SECONDS_PER_YEAR
from lockstake.ledger.tiers import LockTier
from lockstake.ledger.types import Position
from lockstake.runtime.errors import NoActivePosition

T0 = 1_700_000_000


def _pos(principal: int, *, tier: LockTier = LockTier.FLEX, settled: int = T0) -> Position:
    return Position(principal=principal, unlock_time=settled, last_settlement_time=settled, lock_tier=tier, active=True)


def test_one_year_flex_at_base_rate_pays_exact_percentage() -> None:
    assert accrued_reward(_pos(10_000), T0 + SECONDS_PER_YEAR, 1200, 10_000) == 1200
    assert accrued_reward(_pos(10_000 * COIN), T0 + SECONDS_PER_YEAR, 1200, 10_000) == 1200 * COIN


def test_effective_rate_applies_multiplier_with_floor() -> None:
    assert effective_rate_bps(1200, 10_000) == 1200
    assert effective_rate_bps(1200, 12_500) == 1500
    assert effective_rate_bps(1200, 15_000) == 1800
    assert effective_rate_bps(1200, 20_000) == 2400
    assert effective_rate_bps(1, 12_500) == 1


def test_zero_base_rate_accrues_nothing() -> None:
    for tier, mult in ((LockTier.FLEX, 10_000), (LockTier.DAYS_180, 20_000)):
        assert accrued_reward(_pos(10**18, tier=tier), T0 + 10 * SECONDS_PER_YEAR, 0, mult) == 0


def test_zero_elapsed_is_zero() -> None:
    assert accrued_reward(_pos(10**18), T0, 10_000, 20_000) == 0


def test_clock_behind_last_settlement_floors_to_zero() -> None:
    assert elapsed_seconds(T0, T0 - 5) == 0
    assert accrued_reward(_pos(10**18), T0 - SECONDS_PER_DAY, 1200, 10_000) == 0


def test_reward_is_monotonic_in_elapsed_time() -> None:
    prev = -1
    for elapsed in (0, 1, 59, 3600, SECONDS_PER_DAY, 7 * SECONDS_PER_DAY, SECONDS_PER_YEAR, 3 * SECONDS_PER_YEAR):
        r = accrued_reward(_pos(12_345 * COIN), T0 + elapsed, 1200, 15_000)
        assert r >= prev
        prev = r


def test_reward_is_linear_up_to_truncation() -> None:
    principal = 10_000 * COIN
    elapsed = 12_345

    half = reward_for(principal, effective_rate_bps(600, 12_500), elapsed)
    full = reward_for(principal, effective_rate_bps(1200, 12_500), elapsed)
    assert full in (2 * half, 2 * half + 1)

    single = reward_for(principal, 1200, elapsed)
    double = reward_for(2 * principal, 1200, elapsed)
    assert double in (2 * single, 2 * single + 1)


def test_sub_unit_rewards_truncate_toward_zero() -> None:
    # 1 unit at 1% for one second is far below one base unit.
    assert reward_for(1, 100, 1) == 0


def test_inactive_position_is_rejected() -> None:
    with pytest.raises(NoActivePosition):
        accrued_reward(Position.empty(), T0 + 1, 1200, 10_000)


def test_projected_reward_matches_accrual_over_lock() -> None:
    lock_s = 90 * SECONDS_PER_DAY
    principal = 1_000 * COIN
    expected = principal * 1800 * lock_s // (10_000 * SECONDS_PER_YEAR)
    assert projected_reward(principal, lock_s, 1200, 15_000) == expected
    assert accrued_reward(_pos(principal, tier=LockTier.DAYS_90), T0 + lock_s, 1200, 15_000) == expected
