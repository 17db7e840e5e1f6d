# src/lockstake/ledger/migrations.py
from __future__ import annotations

from typing import Any, Callable, Dict

Json = Dict[str, Any]

# Increment this when you add a new migration step.
CURRENT_STATE_VERSION = 1

# state_version -> step that upgrades it to state_version + 1.
# Version 1 is the first persisted layout, so there is nothing to upgrade yet.
_MIGRATIONS: Dict[int, Callable[[Json], Json]] = {}


def _state_version(st: Json) -> int:
    v = st.get("state_version")
    if isinstance(v, bool) or not isinstance(v, int) or v < 1:
        raise ValueError(f"Staking state has no valid state_version (got {v!r}).")
    return v


def migrate_state_dict(raw: Any) -> Json:
    """
    Upgrade a raw persisted JSON dict to CURRENT_STATE_VERSION.

    - Raises ValueError for anything that is not a versioned state dict:
      a stored row without a version is unreadable, never an empty facility.
    - Raises ValueError for versions newer than this binary.
    - Semantic validation (bounds, total_staked consistency) happens when the
      facade is rebuilt from the migrated dict.
    """
    if not isinstance(raw, dict):
        raise ValueError(f"Staking state must be a JSON object, got {type(raw).__name__}.")
    st: Json = raw

    v = _state_version(st)
    if v > CURRENT_STATE_VERSION:
        # Future state created by a newer binary; refuse to downgrade silently.
        raise ValueError(
            f"Staking state version {v} is newer than this binary supports (max {CURRENT_STATE_VERSION})."
        )

    while v < CURRENT_STATE_VERSION:
        step = _MIGRATIONS.get(v)
        if step is None:
            raise ValueError(f"No migration path from state_version={v} to {CURRENT_STATE_VERSION}.")
        st = step(st)
        v = _state_version(st)

    return st
