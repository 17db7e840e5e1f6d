# src/lockstake/ledger/constants.py
from __future__ import annotations

"""Staking facility constants.

- Token precision: 1 token = 1e8 base units
- Rates and multipliers are in basis points (10000 bps = 100%)
- Accrual year is a fixed 365 days (no leap-year adjustment)
"""

# Token precision (1 token = 1e8 units)
COIN_DECIMALS: int = 8
COIN: int = 10**COIN_DECIMALS

# Supply cap of the staking token; no principal may exceed it.
MAX_SUPPLY_TOKENS: int = 21_000_000
MAX_SUPPLY: int = MAX_SUPPLY_TOKENS * COIN

BPS_DENOMINATOR: int = 10_000

SECONDS_PER_DAY: int = 24 * 60 * 60
SECONDS_PER_YEAR: int = 365 * SECONDS_PER_DAY  # 31,536,000

# Base annual rate bounds (0% .. 100%)
MIN_BASE_RATE_BPS: int = 0
MAX_BASE_RATE_BPS: int = 10_000

# Multipliers may only amplify the base rate.
MIN_TIER_MULTIPLIER_BPS: int = 10_000

DEFAULT_BASE_RATE_BPS: int = 1_200  # 12%/year
DEFAULT_MIN_STAKE_AMOUNT: int = 100 * COIN

# Default lock durations (days) per tier name.
DEFAULT_TIER_LOCK_DAYS = {
    "flex": 0,
    "days_30": 30,
    "days_90": 90,
    "days_180": 180,
}

# Default multipliers (bps) per tier name: 1.00x, 1.25x, 1.50x, 2.00x
DEFAULT_TIER_MULTIPLIERS_BPS = {
    "flex": 10_000,
    "days_30": 12_500,
    "days_90": 15_000,
    "days_180": 20_000,
}
