# src/lockstake/ledger/pool.py
from __future__ import annotations

"""Reward pool accounting.

The pool is never tracked as its own counter. It is derived on demand:

    available = custody_balance - total_staked   (floored at 0)

so deposits, direct transfers into custody and payouts are all reflected
without extra bookkeeping. Callers must read both inputs immediately before
the mutation they are guarding.
"""

from lockstake.runtime.errors import InsufficientRewards


def available_rewards(contract_token_balance: int, total_staked: int) -> int:
    surplus = int(contract_token_balance) - int(total_staked)
    return surplus if surplus > 0 else 0


def assert_sufficient(amount_requested: int, available: int) -> None:
    if int(amount_requested) > int(available):
        raise InsufficientRewards(
            "pool_cannot_cover_reward",
            {"requested": int(amount_requested), "available": int(available)},
        )


__all__ = ["available_rewards", "assert_sufficient"]
