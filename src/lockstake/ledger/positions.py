# src/lockstake/ledger/positions.py
from __future__ import annotations

"""Position ledger: one slot per (account, tier) plus the running total.

Every change to a position's principal is paired with an equal change to
total_staked inside the same method, so the total is maintained by
construction rather than recomputed.
"""

from typing import Any, Dict, Iterator, List, Mapping, Tuple

from lockstake.ledger.constants import MAX_SUPPLY
from lockstake.ledger.tiers import ALL_TIERS, LockTier, parse_tier
from lockstake.ledger.types import Position
from lockstake.runtime.errors import InvalidAmount, NoActivePosition, PositionExists

Json = Dict[str, Any]


def _norm_account(account: str) -> str:
    a = str(account or "").strip()
    if not a:
        raise InvalidAmount("missing_account")
    return a


class PositionLedger:
    def __init__(self) -> None:
        self._slots: Dict[str, Dict[LockTier, Position]] = {}
        self._total_staked: int = 0

    @property
    def total_staked(self) -> int:
        return self._total_staked

    # ----------------------------
    # Reads
    # ----------------------------

    def get(self, account: str, tier: Any) -> Position:
        """Return the slot for (account, tier); an inactive Position if empty."""
        t = parse_tier(tier)
        slots = self._slots.get(str(account or "").strip(), {})
        pos = slots.get(t)
        return pos if pos is not None else Position.empty()

    def require_active(self, account: str, tier: Any) -> Position:
        t = parse_tier(tier)
        pos = self._slots.get(str(account or "").strip(), {}).get(t)
        if pos is None or not pos.active:
            raise NoActivePosition("no_position_in_tier", {"account": str(account), "tier": t.key})
        return pos

    def positions_of(self, account: str) -> List[Position]:
        slots = self._slots.get(str(account or "").strip(), {})
        return [slots[t] for t in ALL_TIERS if t in slots and slots[t].active]

    def iter_active(self) -> Iterator[Tuple[str, Position]]:
        for account in sorted(self._slots):
            for t in ALL_TIERS:
                pos = self._slots[account].get(t)
                if pos is not None and pos.active:
                    yield account, pos

    def sum_principal(self) -> int:
        return sum(p.principal for _, p in self.iter_active())

    # ----------------------------
    # Mutations
    # ----------------------------

    def open(self, account: str, tier: Any, *, amount: int, now_s: int, lock_seconds: int) -> Position:
        a = _norm_account(account)
        t = parse_tier(tier)
        amt = int(amount)
        if amt <= 0:
            raise InvalidAmount("amount_must_be_positive", {"amount": amt})
        if amt > MAX_SUPPLY:
            raise InvalidAmount("amount_exceeds_supply", {"amount": amt, "max_supply": MAX_SUPPLY})

        slots = self._slots.setdefault(a, {})
        existing = slots.get(t)
        if existing is not None and existing.active:
            raise PositionExists("tier_slot_occupied", {"account": a, "tier": t.key})

        pos = Position(
            principal=amt,
            unlock_time=int(now_s) + int(lock_seconds),
            last_settlement_time=int(now_s),
            lock_tier=t,
            active=True,
        )
        slots[t] = pos
        self._total_staked += amt
        return pos

    def settle(self, account: str, tier: Any, *, now_s: int) -> Position:
        pos = self.require_active(account, tier)
        pos.last_settlement_time = int(now_s)
        return pos

    def add_principal(self, account: str, tier: Any, *, amount: int, now_s: int) -> Position:
        pos = self.require_active(account, tier)
        amt = int(amount)
        if amt < 0:
            raise InvalidAmount("negative_principal_delta", {"amount": amt})
        if pos.principal + amt > MAX_SUPPLY:
            raise InvalidAmount("principal_exceeds_supply", {"principal": pos.principal + amt})
        pos.principal += amt
        self._total_staked += amt
        pos.last_settlement_time = int(now_s)
        return pos

    def close(self, account: str, tier: Any) -> int:
        """Clear the slot and return the principal it held."""
        a = str(account or "").strip()
        t = parse_tier(tier)
        pos = self.require_active(a, t)
        principal = int(pos.principal)
        self._total_staked -= principal
        pos.clear()
        del self._slots[a][t]
        if not self._slots[a]:
            del self._slots[a]
        return principal

    # ----------------------------
    # Snapshot interop
    # ----------------------------

    def to_dict(self) -> Json:
        out: Json = {}
        for account, pos in self.iter_active():
            out.setdefault(account, {})[pos.lock_tier.key] = pos.to_dict()
        return {"positions": out, "total_staked": int(self._total_staked)}

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "PositionLedger":
        led = cls()
        positions = raw.get("positions") or {}
        if not isinstance(positions, Mapping):
            raise ValueError("positions must be an object")

        for account, slots in positions.items():
            if not isinstance(slots, Mapping):
                raise ValueError(f"positions[{account!r}] must be an object")
            for tier_key, rec in slots.items():
                if not isinstance(rec, Mapping):
                    raise ValueError(f"positions[{account!r}][{tier_key!r}] must be an object")
                t = parse_tier(tier_key)
                pos = Position.from_dict(rec)
                if not pos.active:
                    continue
                if pos.lock_tier is not t:
                    raise ValueError(f"positions[{account!r}][{tier_key!r}] tier mismatch")
                led._slots.setdefault(_norm_account(account), {})[t] = pos
                led._total_staked += pos.principal

        declared = raw.get("total_staked")
        if declared is not None and int(declared) != led._total_staked:
            raise ValueError(
                f"total_staked mismatch: declared={int(declared)} sum_of_positions={led._total_staked}"
            )
        return led
