# src/lockstake/runtime/facade.py
from __future__ import annotations

"""Staking facade: the user and administrator entry points.

Every write runs under the reentrancy guard and is atomic: ledger, rate
parameters and the pause flag are snapshotted at entry and restored if
anything raises, including the token transfer.

Ordering per operation:
  - disbursements (claim, unstake): checks, ledger effects, then transfer_out
  - inflows (stake, deposit_rewards): checks, transfer_in, then ledger effects
  - compound moves no tokens

The pause gate blocks stake/claim/compound. Unstake is never gated so users
can always exit once their lock has expired.
"""

import copy
import logging
import time
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Mapping, Optional, TypeVar

from lockstake.ledger import accrual, pool
from lockstake.ledger.constants import MAX_SUPPLY
from lockstake.ledger.governor import ConfigGovernor, RateParams
from lockstake.ledger.positions import PositionLedger
from lockstake.ledger.tiers import ALL_TIERS, parse_tier
from lockstake.ledger.types import Position
from lockstake.runtime.errors import (
    AdministratorMustBeMultiParty,
    CannotRecoverStakedAsset,
    InvalidAmount,
    Paused,
    PositionExists,
    StakingError,
    StillLocked,
    TokenTransferError,
)
from lockstake.runtime.guard import ReentrancyGuard
from lockstake.runtime.metrics import inc_counter, set_gauge
from lockstake.runtime.token import AdminIdentityCheck, TokenLedger
from lockstake.structured_logging import log_event

Json = Dict[str, Any]
T = TypeVar("T")

log = logging.getLogger("lockstake.staking")


def _wall_clock_s() -> int:
    return int(time.time())


def _positive_amount(v: Any, *, field: str) -> int:
    if isinstance(v, bool) or not isinstance(v, int) or v <= 0:
        raise InvalidAmount("amount_must_be_positive_int", {field: v})
    return int(v)


@dataclass(frozen=True)
class UnstakeResult:
    principal: int
    reward: int

    @property
    def total(self) -> int:
        return self.principal + self.reward


@dataclass(frozen=True)
class _Snapshot:
    ledger: PositionLedger
    params: RateParams
    paused: bool


class StakingFacade:
    def __init__(
        self,
        *,
        token: TokenLedger,
        governor: ConfigGovernor,
        admin_check: AdminIdentityCheck,
        ledger: Optional[PositionLedger] = None,
        foreign_assets: Optional[Mapping[str, TokenLedger]] = None,
        paused: bool = False,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        if not admin_check.is_multi_party_account(governor.admin):
            raise AdministratorMustBeMultiParty("admin_is_single_key", {"admin": governor.admin})

        self._token = token
        self._governor = governor
        self._ledger = ledger if ledger is not None else PositionLedger()
        self._foreign: Dict[str, TokenLedger] = dict(foreign_assets or {})
        self._paused = bool(paused)
        self._clock = clock or _wall_clock_s
        self._guard = ReentrancyGuard()

    # ----------------------------
    # Plumbing
    # ----------------------------

    @property
    def token(self) -> TokenLedger:
        return self._token

    @property
    def governor(self) -> ConfigGovernor:
        return self._governor

    @property
    def ledger(self) -> PositionLedger:
        return self._ledger

    @property
    def foreign_assets(self) -> Dict[str, TokenLedger]:
        return dict(self._foreign)

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def total_staked(self) -> int:
        return self._ledger.total_staked

    def now(self) -> int:
        return int(self._clock())

    def _now(self, now_s: Optional[int]) -> int:
        return int(now_s) if now_s is not None else int(self._clock())

    def _snapshot(self) -> _Snapshot:
        return _Snapshot(
            ledger=copy.deepcopy(self._ledger),
            params=copy.deepcopy(self._governor.params),
            paused=self._paused,
        )

    def _restore(self, snap: _Snapshot) -> None:
        self._ledger = snap.ledger
        self._governor.restore(snap.params)
        self._paused = snap.paused

    def _run(self, op: str, caller: str, fn: Callable[[], T], *, gated: bool = False) -> T:
        try:
            with self._guard.hold(op):
                if gated and self._paused:
                    raise Paused("facility_paused", {"op": op})
                snap = self._snapshot()
                try:
                    out = fn()
                except BaseException:
                    self._restore(snap)
                    raise
        except StakingError as e:
            inc_counter(f"rejected_{e.code}")
            log_event(log, "op_rejected", level=logging.WARNING, op=op, caller=str(caller), code=e.code, reason=e.reason)
            raise

        inc_counter(f"op_{op}")
        set_gauge("total_staked", self._ledger.total_staked)
        return out

    def _custody_balance(self) -> int:
        return int(self._token.balance_of(self._token.custody))

    def _available(self) -> int:
        return pool.available_rewards(self._custody_balance(), self._ledger.total_staked)

    def _accrued(self, pos: Position, now_s: int) -> int:
        p = self._governor.params
        return accrual.accrued_reward(pos, now_s, p.base_rate_bps, p.multiplier_bps(pos.lock_tier))

    # ----------------------------
    # User operations
    # ----------------------------

    def stake(self, caller: str, amount: Any, tier: Any, *, now_s: Optional[int] = None) -> Position:
        def _do() -> Position:
            t = parse_tier(tier)
            now = self._now(now_s)
            p = self._governor.params
            if isinstance(amount, bool) or not isinstance(amount, int) or amount < p.min_stake_amount:
                raise InvalidAmount("below_min_stake", {"amount": amount, "min_stake_amount": p.min_stake_amount})
            if amount > MAX_SUPPLY:
                raise InvalidAmount("amount_exceeds_supply", {"amount": amount, "max_supply": MAX_SUPPLY})
            if self._ledger.get(caller, t).active:
                # checked before pulling funds so a rejected stake never touches the token
                raise PositionExists("tier_slot_occupied", {"account": str(caller), "tier": t.key})

            self._token.transfer_in(caller, amount)
            pos = self._ledger.open(caller, t, amount=amount, now_s=now, lock_seconds=p.lock_seconds(t))
            log_event(
                log,
                "stake",
                account=str(caller),
                tier=t.key,
                amount=int(amount),
                unlock_time=pos.unlock_time,
                total_staked=self._ledger.total_staked,
            )
            return replace(pos)

        return self._run("stake", caller, _do, gated=True)

    def claim(self, caller: str, tier: Any, *, now_s: Optional[int] = None) -> int:
        def _do() -> int:
            t = parse_tier(tier)
            now = self._now(now_s)
            pos = self._ledger.require_active(caller, t)
            reward = self._accrued(pos, now)
            if reward == 0:
                return 0

            pool.assert_sufficient(reward, self._available())
            self._ledger.settle(caller, t, now_s=now)
            self._token.transfer_out(caller, reward)
            log_event(log, "claim", account=str(caller), tier=t.key, reward=reward)
            return reward

        return self._run("claim", caller, _do, gated=True)

    def compound(self, caller: str, tier: Any, *, now_s: Optional[int] = None) -> int:
        def _do() -> int:
            t = parse_tier(tier)
            now = self._now(now_s)
            pos = self._ledger.require_active(caller, t)
            reward = self._accrued(pos, now)
            if reward == 0:
                return 0

            pool.assert_sufficient(reward, self._available())
            pos = self._ledger.add_principal(caller, t, amount=reward, now_s=now)
            log_event(
                log,
                "compound",
                account=str(caller),
                tier=t.key,
                reward=reward,
                principal=pos.principal,
                total_staked=self._ledger.total_staked,
            )
            return reward

        return self._run("compound", caller, _do, gated=True)

    def unstake(self, caller: str, tier: Any, *, now_s: Optional[int] = None) -> UnstakeResult:
        def _do() -> UnstakeResult:
            t = parse_tier(tier)
            now = self._now(now_s)
            pos = self._ledger.require_active(caller, t)
            if not pos.is_unlocked(now):
                raise StillLocked(
                    "lock_not_expired",
                    {"tier": t.key, "unlock_time": pos.unlock_time, "now": now},
                )

            reward = self._accrued(pos, now)
            pool.assert_sufficient(reward, self._available())

            principal = self._ledger.close(caller, t)
            self._token.transfer_out(caller, principal + reward)
            log_event(
                log,
                "unstake",
                account=str(caller),
                tier=t.key,
                principal=principal,
                reward=reward,
                total_staked=self._ledger.total_staked,
            )
            return UnstakeResult(principal=principal, reward=reward)

        return self._run("unstake", caller, _do)

    # ----------------------------
    # Administrator operations
    # ----------------------------

    def deposit_rewards(self, caller: str, amount: Any) -> int:
        def _do() -> int:
            self._governor.require_admin(caller, op="deposit_rewards")
            amt = _positive_amount(amount, field="amount")
            self._token.transfer_in(caller, amt)
            available = self._available()
            log_event(log, "rewards_deposited", admin=str(caller), amount=amt, pool_available=available)
            return available

        return self._run("deposit_rewards", caller, _do)

    def pause(self, caller: str) -> None:
        def _do() -> None:
            self._governor.require_admin(caller, op="pause")
            self._paused = True
            log_event(log, "paused", admin=str(caller))

        self._run("pause", caller, _do)

    def unpause(self, caller: str) -> None:
        def _do() -> None:
            self._governor.require_admin(caller, op="unpause")
            self._paused = False
            log_event(log, "unpaused", admin=str(caller))

        self._run("unpause", caller, _do)

    def recover_foreign_asset(self, caller: str, asset: str, to: str, amount: Any) -> int:
        def _do() -> int:
            self._governor.require_admin(caller, op="recover_foreign_asset")
            a = str(asset or "").strip()
            if a == self._token.asset_id:
                raise CannotRecoverStakedAsset("asset_is_staking_token", {"asset": a})
            amt = _positive_amount(amount, field="amount")
            foreign = self._foreign.get(a)
            if foreign is None:
                raise TokenTransferError("unknown_asset", {"asset": a})
            foreign.transfer_out(str(to), amt)
            log_event(log, "foreign_asset_recovered", admin=str(caller), asset=a, to=str(to), amount=amt)
            return amt

        return self._run("recover_foreign_asset", caller, _do)

    def set_base_rate(self, caller: str, new_bps: Any) -> int:
        def _do() -> int:
            v = self._governor.set_base_rate(caller, new_bps)
            log_event(log, "param_set", admin=str(caller), param="base_rate_bps", value=v)
            return v

        return self._run("set_base_rate", caller, _do)

    def set_tier_multiplier(self, caller: str, tier: Any, new_bps: Any) -> int:
        def _do() -> int:
            v = self._governor.set_tier_multiplier(caller, tier, new_bps)
            log_event(log, "param_set", admin=str(caller), param="tier_multiplier_bps", tier=parse_tier(tier).key, value=v)
            return v

        return self._run("set_tier_multiplier", caller, _do)

    def set_min_stake(self, caller: str, new_amount: Any) -> int:
        def _do() -> int:
            v = self._governor.set_min_stake(caller, new_amount)
            log_event(log, "param_set", admin=str(caller), param="min_stake_amount", value=v)
            return v

        return self._run("set_min_stake", caller, _do)

    # ----------------------------
    # Reads (no side effects)
    # ----------------------------

    def get_position(self, account: str, tier: Any) -> Position:
        return replace(self._ledger.get(account, tier))

    def get_positions(self, account: str) -> List[Position]:
        return [replace(p) for p in self._ledger.positions_of(account)]

    def claimable(self, account: str, tier: Any, *, now_s: Optional[int] = None) -> int:
        pos = self._ledger.get(account, tier)
        if not pos.active:
            return 0
        return self._accrued(pos, self._now(now_s))

    def total_claimable(self, account: str, *, now_s: Optional[int] = None) -> int:
        now = self._now(now_s)
        return sum(self._accrued(p, now) for p in self._ledger.positions_of(account))

    def pool_available(self) -> int:
        return self._available()

    def effective_rate(self, tier: Any) -> int:
        p = self._governor.params
        return accrual.effective_rate_bps(p.base_rate_bps, p.multiplier_bps(parse_tier(tier)))

    def quote(self, amount: int, tier: Any) -> Json:
        """Preview a stake: lock duration, effective rate and reward held to unlock."""
        t = parse_tier(tier)
        p = self._governor.params
        lock_s = p.lock_seconds(t)
        rate = self.effective_rate(t)
        return {
            "tier": t.key,
            "amount": int(amount),
            "lock_seconds": lock_s,
            "effective_rate_bps": rate,
            "reward_at_unlock": accrual.projected_reward(int(amount), lock_s, p.base_rate_bps, p.multiplier_bps(t)),
            "meets_min_stake": int(amount) >= p.min_stake_amount,
        }

    def params(self) -> Json:
        out = self._governor.params.to_dict()
        out["effective_rates_bps"] = {t.key: self.effective_rate(t) for t in ALL_TIERS}
        out["admin"] = self._governor.admin
        out["staking_token"] = self._token.asset_id
        out["paused"] = self._paused
        return out

    def check_invariants(self) -> None:
        """Raise AssertionError if the ledger total drifted or custody is short."""
        summed = self._ledger.sum_principal()
        if summed != self._ledger.total_staked:
            raise AssertionError(f"total_staked drift: total={self._ledger.total_staked} sum={summed}")
        bal = self._custody_balance()
        if bal < self._ledger.total_staked:
            raise AssertionError(f"custody short: balance={bal} total_staked={self._ledger.total_staked}")

    # ----------------------------
    # Snapshot interop
    # ----------------------------

    def to_dict(self) -> Json:
        return {
            "ledger": self._ledger.to_dict(),
            "params": self._governor.params.to_dict(),
            "paused": bool(self._paused),
        }


__all__ = ["StakingFacade", "UnstakeResult"]
