# src/lockstake/runtime/staking_config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from lockstake.crypto.sig import is_ed25519_pubkey
from lockstake.ledger.constants import (
    DEFAULT_BASE_RATE_BPS,
    DEFAULT_MIN_STAKE_AMOUNT,
    DEFAULT_TIER_LOCK_DAYS,
    DEFAULT_TIER_MULTIPLIERS_BPS,
    MAX_BASE_RATE_BPS,
    MIN_TIER_MULTIPLIER_BPS,
)

Json = Dict[str, Any]


def _as_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


def _as_int_map(v: Any, default: Dict[str, int]) -> Dict[str, int]:
    out = dict(default)
    if isinstance(v, dict):
        for k, x in v.items():
            out[str(k).strip().lower()] = _as_int(x, out.get(str(k).strip().lower(), 0))
    return out


def _as_str_tuple(v: Any, default: Tuple[str, ...]) -> Tuple[str, ...]:
    if isinstance(v, str):
        items = [s.strip() for s in v.split(",")]
    elif isinstance(v, (list, tuple)):
        items = [str(s).strip() for s in v]
    else:
        return tuple(default)
    return tuple(s for s in items if s)


def _as_key_map(v: Any) -> Dict[str, Tuple[str, ...]]:
    out: Dict[str, Tuple[str, ...]] = {}
    if isinstance(v, dict):
        for k, keys in v.items():
            name = str(k).strip()
            if name:
                out[name] = _as_str_tuple(keys, ())
    return out


@dataclass(frozen=True)
class StakingConfig:
    facility_id: str
    mode: str  # "dev" | "testnet" | "prod"

    # Single SQLite DB file path for the facility snapshot.
    db_path: str

    # Administrator identity and its k-of-n membership.
    admin_account: str
    admin_signers: Tuple[str, ...]
    admin_threshold: int

    staking_token: str

    base_rate_bps: int
    min_stake_amount: int
    tier_lock_days: Dict[str, int] = field(default_factory=dict)
    tier_multipliers_bps: Dict[str, int] = field(default_factory=dict)

    # Account or admin signer -> ed25519 public keys (hex or base64) that may
    # sign its requests.
    account_keys: Dict[str, Tuple[str, ...]] = field(default_factory=dict)

    api_host: str = "127.0.0.1"
    api_port: int = 8080

    log_level: str = "INFO"


_ALLOWED_MODES = {"dev", "testnet", "prod"}


def validate_staking_config(cfg: StakingConfig) -> None:
    """Fail-fast validation for operator config.

    Bounds mirror the governor's setters so a node can never boot with
    parameters an administrator would not be allowed to set.
    """
    if not isinstance(cfg.facility_id, str) or not cfg.facility_id.strip():
        raise ValueError("facility_id must be a non-empty string")

    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {_ALLOWED_MODES}; got: {cfg.mode!r}")

    if not isinstance(cfg.db_path, str) or not cfg.db_path.strip():
        raise ValueError("db_path must be a non-empty string")

    if not cfg.admin_account.strip():
        raise ValueError("admin_account must be a non-empty string")

    if not cfg.staking_token.strip():
        raise ValueError("staking_token must be a non-empty string")

    if int(cfg.admin_threshold) < 1 or int(cfg.admin_threshold) > len(cfg.admin_signers):
        raise ValueError(
            f"admin_threshold must be 1..{len(cfg.admin_signers)} (number of admin_signers); got: {cfg.admin_threshold}"
        )

    if int(cfg.base_rate_bps) < 0 or int(cfg.base_rate_bps) > MAX_BASE_RATE_BPS:
        raise ValueError(f"base_rate_bps must be 0..{MAX_BASE_RATE_BPS}; got: {cfg.base_rate_bps}")

    if int(cfg.min_stake_amount) <= 0:
        raise ValueError(f"min_stake_amount must be > 0; got: {cfg.min_stake_amount}")

    known = set(DEFAULT_TIER_LOCK_DAYS)
    for name, mapping in (("tier_lock_days", cfg.tier_lock_days), ("tier_multipliers_bps", cfg.tier_multipliers_bps)):
        unknown = set(mapping) - known
        if unknown:
            raise ValueError(f"{name} has unknown tiers: {sorted(unknown)}")

    for k, m in cfg.tier_multipliers_bps.items():
        if int(m) < MIN_TIER_MULTIPLIER_BPS:
            raise ValueError(f"tier_multipliers_bps[{k}] must be >= {MIN_TIER_MULTIPLIER_BPS}; got: {m}")

    for k, d in cfg.tier_lock_days.items():
        if int(d) < 0:
            raise ValueError(f"tier_lock_days[{k}] must be >= 0; got: {d}")

    for name, keys in cfg.account_keys.items():
        for pk in keys:
            if not is_ed25519_pubkey(pk):
                raise ValueError(f"account_keys[{name}] has an invalid ed25519 public key: {pk!r}")

    if int(cfg.api_port) <= 0 or int(cfg.api_port) > 65535:
        raise ValueError(f"api_port must be 1..65535; got: {cfg.api_port}")


def default_staking_config() -> StakingConfig:
    return StakingConfig(
        facility_id="lockstake-dev",
        # Production-safe default: no in-memory token ledger unless asked for.
        mode="prod",
        db_path="./data/lockstake.db",
        admin_account="ADMIN_MULTISIG",
        admin_signers=("admin-1", "admin-2", "admin-3"),
        admin_threshold=2,
        staking_token="STAKE",
        base_rate_bps=DEFAULT_BASE_RATE_BPS,
        min_stake_amount=DEFAULT_MIN_STAKE_AMOUNT,
        tier_lock_days=dict(DEFAULT_TIER_LOCK_DAYS),
        tier_multipliers_bps=dict(DEFAULT_TIER_MULTIPLIERS_BPS),
        api_host="127.0.0.1",
        api_port=8080,
        log_level="INFO",
    )


def _read_raw(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in {".yaml", ".yml"}:
        return yaml.safe_load(text)
    return json.loads(text)


def read_staking_config_file(path: str) -> StakingConfig:
    p = Path(path)
    raw = _read_raw(p)
    if not isinstance(raw, dict):
        raise ValueError("staking config must be a mapping (JSON object or YAML mapping)")

    d = default_staking_config()

    cfg = StakingConfig(
        facility_id=_as_str(raw.get("facility_id"), d.facility_id),
        mode=_as_str(raw.get("mode"), d.mode).strip().lower(),
        db_path=_as_str(raw.get("db_path"), d.db_path),
        admin_account=_as_str(raw.get("admin_account"), d.admin_account),
        admin_signers=_as_str_tuple(raw.get("admin_signers"), d.admin_signers),
        admin_threshold=_as_int(raw.get("admin_threshold"), d.admin_threshold),
        staking_token=_as_str(raw.get("staking_token"), d.staking_token),
        base_rate_bps=_as_int(raw.get("base_rate_bps"), d.base_rate_bps),
        min_stake_amount=_as_int(raw.get("min_stake_amount"), d.min_stake_amount),
        tier_lock_days=_as_int_map(raw.get("tier_lock_days"), d.tier_lock_days),
        tier_multipliers_bps=_as_int_map(raw.get("tier_multipliers_bps"), d.tier_multipliers_bps),
        account_keys=_as_key_map(raw.get("account_keys")),
        api_host=_as_str(raw.get("api_host"), d.api_host),
        api_port=_as_int(raw.get("api_port"), d.api_port),
        log_level=_as_str(raw.get("log_level"), d.log_level),
    )

    validate_staking_config(cfg)
    return cfg


def load_staking_config(*, config_path: Optional[str] = None) -> StakingConfig:
    p = config_path or os.environ.get("LOCKSTAKE_CONFIG_PATH")
    if p:
        return read_staking_config_file(p)

    cfg = default_staking_config()
    validate_staking_config(cfg)
    return cfg


def apply_staking_config_to_env(cfg: StakingConfig) -> None:
    validate_staking_config(cfg)
    os.environ["LOCKSTAKE_FACILITY_ID"] = cfg.facility_id
    os.environ["LOCKSTAKE_MODE"] = (cfg.mode or "prod").strip().lower()
    os.environ["LOCKSTAKE_DB_PATH"] = cfg.db_path
    os.environ["LOCKSTAKE_LOG_LEVEL"] = cfg.log_level
