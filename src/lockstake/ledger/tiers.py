# src/lockstake/ledger/tiers.py
from __future__ import annotations

"""Lock tiers and the tier table.

The tier set is closed: exactly four variants. Only the duration and reward
multiplier attached to each tier are tunable.
"""

import copy
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Mapping, Optional

from lockstake.ledger.constants import (
    DEFAULT_TIER_LOCK_DAYS,
    DEFAULT_TIER_MULTIPLIERS_BPS,
    MIN_TIER_MULTIPLIER_BPS,
    SECONDS_PER_DAY,
)
from lockstake.runtime.errors import InvalidAmount, InvalidRate, UnknownTier

Json = Dict[str, Any]


class LockTier(IntEnum):
    FLEX = 0
    DAYS_30 = 1
    DAYS_90 = 2
    DAYS_180 = 3

    @property
    def key(self) -> str:
        """Stable lowercase name used in persisted state and over HTTP."""
        return self.name.lower()


ALL_TIERS = tuple(LockTier)


def parse_tier(v: Any) -> LockTier:
    """Resolve a tier from an enum member, integer value or name.

    Accepts "flex", "FLEX", "days_30", 0, 1, "1", ... Raises UnknownTier
    for anything else.
    """
    if isinstance(v, LockTier):
        return v
    if isinstance(v, bool):
        raise UnknownTier("bad_tier", {"tier": v})
    if isinstance(v, int):
        try:
            return LockTier(v)
        except ValueError:
            raise UnknownTier("bad_tier", {"tier": v}) from None
    if isinstance(v, str):
        s = v.strip()
        if s.isdigit():
            return parse_tier(int(s))
        try:
            return LockTier[s.upper()]
        except KeyError:
            raise UnknownTier("bad_tier", {"tier": v}) from None
    raise UnknownTier("bad_tier", {"tier": repr(v)})


@dataclass(frozen=True, slots=True)
class TierTerms:
    lock_seconds: int
    multiplier_bps: int


def _as_int_strict(v: Any) -> Optional[int]:
    if isinstance(v, bool) or not isinstance(v, int):
        return None
    return int(v)


def validate_lock_seconds(tier: LockTier, seconds: Any) -> int:
    s = _as_int_strict(seconds)
    if s is None or s < 0:
        raise InvalidAmount("bad_lock_duration", {"tier": tier.key, "lock_seconds": seconds})
    if tier is LockTier.FLEX and s != 0:
        raise InvalidAmount("flex_must_not_lock", {"lock_seconds": s})
    if tier is not LockTier.FLEX and s == 0:
        raise InvalidAmount("fixed_tier_needs_lock", {"tier": tier.key})
    return s


def validate_multiplier_bps(tier: LockTier, bps: Any) -> int:
    m = _as_int_strict(bps)
    if m is None or m < MIN_TIER_MULTIPLIER_BPS:
        raise InvalidRate(
            "multiplier_below_floor",
            {"tier": tier.key, "multiplier_bps": bps, "min": MIN_TIER_MULTIPLIER_BPS},
        )
    return m


@dataclass
class LockTierTable:
    """Per-tier lock duration and multiplier.

    Every tier is always present. Durations must increase strictly from FLEX
    upward so that a longer lock never earns a shorter wait.
    """

    terms: Dict[LockTier, TierTerms] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.terms:
            self.terms = {
                t: TierTerms(
                    lock_seconds=int(DEFAULT_TIER_LOCK_DAYS[t.key]) * SECONDS_PER_DAY,
                    multiplier_bps=int(DEFAULT_TIER_MULTIPLIERS_BPS[t.key]),
                )
                for t in ALL_TIERS
            }
        self.validate()

    @classmethod
    def from_days(
        cls,
        *,
        lock_days: Optional[Mapping[str, int]] = None,
        multipliers_bps: Optional[Mapping[str, int]] = None,
    ) -> "LockTierTable":
        days = dict(DEFAULT_TIER_LOCK_DAYS)
        days.update(dict(lock_days or {}))
        mults = dict(DEFAULT_TIER_MULTIPLIERS_BPS)
        mults.update(dict(multipliers_bps or {}))

        unknown = (set(days) | set(mults)) - {t.key for t in ALL_TIERS}
        if unknown:
            raise UnknownTier("unknown_tier_keys", {"keys": sorted(unknown)})

        terms: Dict[LockTier, TierTerms] = {}
        for t in ALL_TIERS:
            d = _as_int_strict(days[t.key])
            if d is None:
                raise InvalidAmount("bad_lock_days", {"tier": t.key, "lock_days": days[t.key]})
            terms[t] = TierTerms(lock_seconds=d * SECONDS_PER_DAY, multiplier_bps=mults[t.key])
        return cls(terms=terms)

    def validate(self) -> None:
        missing = [t.key for t in ALL_TIERS if t not in self.terms]
        if missing:
            raise UnknownTier("tier_table_incomplete", {"missing": missing})

        prev = -1
        for t in ALL_TIERS:
            terms = self.terms[t]
            secs = validate_lock_seconds(t, terms.lock_seconds)
            validate_multiplier_bps(t, terms.multiplier_bps)
            if secs <= prev:
                raise InvalidAmount("lock_durations_not_increasing", {"tier": t.key, "lock_seconds": secs})
            prev = secs

    def lock_seconds(self, tier: LockTier) -> int:
        return int(self.terms[parse_tier(tier)].lock_seconds)

    def multiplier_bps(self, tier: LockTier) -> int:
        return int(self.terms[parse_tier(tier)].multiplier_bps)

    def with_multiplier(self, tier: LockTier, new_bps: Any) -> "LockTierTable":
        t = parse_tier(tier)
        m = validate_multiplier_bps(t, new_bps)
        terms = copy.copy(self.terms)
        terms[t] = TierTerms(lock_seconds=terms[t].lock_seconds, multiplier_bps=m)
        return LockTierTable(terms=terms)

    def to_dict(self) -> Json:
        return {
            t.key: {"lock_seconds": int(v.lock_seconds), "multiplier_bps": int(v.multiplier_bps)}
            for t, v in sorted(self.terms.items())
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "LockTierTable":
        terms: Dict[LockTier, TierTerms] = {}
        for k, rec in dict(raw).items():
            t = parse_tier(k)
            if not isinstance(rec, Mapping):
                raise UnknownTier("bad_tier_record", {"tier": k})
            terms[t] = TierTerms(
                lock_seconds=rec.get("lock_seconds"),  # type: ignore[arg-type]
                multiplier_bps=rec.get("multiplier_bps"),  # type: ignore[arg-type]
            )
        return cls(terms=terms)
