"""lockstake.ledger.types

Position record + JSON interop.

A Position with active=False is semantically absent; deactivation always
resets every field to its default.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping

from lockstake.ledger.tiers import LockTier, parse_tier

Json = Dict[str, Any]


def _coerce_int(v: Any, *, field: str) -> int:
    try:
        # bool is an int subclass; disallow it explicitly
        if isinstance(v, bool):
            raise ValueError("bool is not a valid int")
        return int(v)
    except Exception as e:
        raise ValueError(f"Position schema error: field '{field}' must be int-coercible (got {type(v).__name__})") from e


@dataclass
class Position:
    principal: int = 0
    unlock_time: int = 0
    last_settlement_time: int = 0
    lock_tier: LockTier = LockTier.FLEX
    active: bool = False

    @classmethod
    def empty(cls) -> "Position":
        return cls()

    def clear(self) -> None:
        self.principal = 0
        self.unlock_time = 0
        self.last_settlement_time = 0
        self.lock_tier = LockTier.FLEX
        self.active = False

    def is_unlocked(self, now_s: int) -> bool:
        return self.active and int(now_s) >= int(self.unlock_time)

    def to_dict(self) -> Json:
        return {
            "principal": int(self.principal),
            "unlock_time": int(self.unlock_time),
            "last_settlement_time": int(self.last_settlement_time),
            "lock_tier": self.lock_tier.key,
            "active": bool(self.active),
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Position":
        if not bool(raw.get("active", False)):
            return cls.empty()
        principal = _coerce_int(raw.get("principal", 0), field="principal")
        if principal <= 0:
            raise ValueError("Position schema error: active position must have positive principal")
        return cls(
            principal=principal,
            unlock_time=_coerce_int(raw.get("unlock_time", 0), field="unlock_time"),
            last_settlement_time=_coerce_int(raw.get("last_settlement_time", 0), field="last_settlement_time"),
            lock_tier=parse_tier(raw.get("lock_tier", LockTier.FLEX.key)),
            active=True,
        )
