from __future__ import annotations

import logging
import threading
import time
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from lockstake.ledger.governor import ConfigGovernor, RateParams
from lockstake.ledger.migrations import CURRENT_STATE_VERSION, migrate_state_dict
from lockstake.ledger.positions import PositionLedger
from lockstake.ledger.tiers import LockTierTable
from lockstake.runtime.errors import StakingError, Unauthenticated
from lockstake.runtime.facade import StakingFacade
from lockstake.runtime.metrics import inc_counter
from lockstake.runtime.sigverify import RequestVerifier
from lockstake.runtime.sqlite_db import SqliteDB, SqliteStakingStore
from lockstake.runtime.staking_config import StakingConfig, load_staking_config
from lockstake.runtime.token import InMemoryTokenLedger, MultiPartyRegistry, TokenLedger
from lockstake.structured_logging import log_event

Json = Dict[str, Any]

log = logging.getLogger("lockstake.executor")

# Facade methods that mutate state and must be persisted afterwards.
WRITE_OPS = frozenset(
    {
        "stake",
        "claim",
        "compound",
        "unstake",
        "deposit_rewards",
        "pause",
        "unpause",
        "recover_foreign_asset",
        "set_base_rate",
        "set_tier_multiplier",
        "set_min_stake",
    }
)


def _now_ms() -> int:
    return int(time.time() * 1000)


class ExecutorError(RuntimeError):
    pass


def initial_state(cfg: StakingConfig) -> Json:
    tiers = LockTierTable.from_days(lock_days=cfg.tier_lock_days, multipliers_bps=cfg.tier_multipliers_bps)
    params = RateParams(base_rate_bps=cfg.base_rate_bps, min_stake_amount=cfg.min_stake_amount, tiers=tiers)
    return {
        "state_version": CURRENT_STATE_VERSION,
        "facility_id": cfg.facility_id,
        "ledger": PositionLedger().to_dict(),
        "params": params.to_dict(),
        "paused": False,
        "foreign_assets": {},
        "nonces": {},
        "created_ms": _now_ms(),
    }


class StakingExecutor:
    """Staking facility backed by a SQLite snapshot.

    - loads (and migrates) the persisted snapshot, or writes an initial one
    - serializes every write op with a process-level lock so the facade's
      one-call-at-a-time model holds under a threaded server
    - persists the snapshot after each successful write; failed ops have
      already been rolled back by the facade
    - authorize() checks request signatures and per-account nonces before a
      route calls execute()

    In dev/testnet mode the staking token is an in-memory ledger whose
    balances are persisted in the same snapshot. Production needs an external
    TokenLedger passed in.
    """

    def __init__(
        self,
        *,
        cfg: StakingConfig,
        token: Optional[TokenLedger] = None,
        foreign_assets: Optional[Mapping[str, TokenLedger]] = None,
        clock=None,
    ) -> None:
        self.cfg = cfg
        self._db = SqliteDB(path=cfg.db_path)
        self._store = SqliteStakingStore(db=self._db)

        if self._store.exists():
            try:
                state = migrate_state_dict(self._store.read())
            except ValueError as e:
                raise ExecutorError(f"state_invalid: {e}. Refuse to start.") from e
        else:
            state = initial_state(cfg)

        st_facility = str(state.get("facility_id") or "").strip()
        if st_facility and st_facility != cfg.facility_id:
            raise ExecutorError(
                f"facility_id mismatch: db={st_facility!r} config={cfg.facility_id!r}. Refuse to start."
            )
        state["facility_id"] = cfg.facility_id

        self._in_memory_token = token is None
        if token is None:
            if cfg.mode == "prod":
                raise ExecutorError("prod mode requires an external token ledger. Refuse to start.")
            raw_token = state.get("token")
            if isinstance(raw_token, dict) and raw_token.get("asset_id"):
                token = InMemoryTokenLedger.from_dict(raw_token)
            else:
                token = InMemoryTokenLedger(asset_id=cfg.staking_token, custody=cfg.facility_id)

        if token.asset_id != cfg.staking_token:
            raise ExecutorError(
                f"staking_token mismatch: token={token.asset_id!r} config={cfg.staking_token!r}. Refuse to start."
            )

        foreign: Dict[str, TokenLedger] = {}
        raw_foreign = state.get("foreign_assets")
        if isinstance(raw_foreign, dict):
            for asset, rec in raw_foreign.items():
                if isinstance(rec, dict):
                    foreign[str(asset)] = InMemoryTokenLedger.from_dict(rec)
        foreign.update(dict(foreign_assets or {}))

        registry = MultiPartyRegistry()
        registry.register(cfg.admin_account, signers=cfg.admin_signers, threshold=cfg.admin_threshold)

        try:
            params = RateParams.from_dict(state.get("params") or {})
            ledger = PositionLedger.from_dict(state.get("ledger") or {})
        except (ValueError, StakingError) as e:
            raise ExecutorError(f"state_invalid: {e}. Refuse to start.") from e

        self.facade = StakingFacade(
            token=token,
            governor=ConfigGovernor(admin=cfg.admin_account, params=params),
            admin_check=registry,
            ledger=ledger,
            foreign_assets=foreign,
            paused=bool(state.get("paused", False)),
            clock=clock,
        )
        self._created_ms = int(state.get("created_ms") or _now_ms())
        self._nonces: Dict[str, int] = {}
        raw_nonces = state.get("nonces")
        if isinstance(raw_nonces, dict):
            for acct, n in raw_nonces.items():
                if isinstance(n, bool) or not isinstance(n, int) or n < 0:
                    raise ExecutorError(f"state_invalid: bad nonce for {acct!r}: {n!r}. Refuse to start.")
                self._nonces[str(acct)] = n
        self.verifier = RequestVerifier(
            facility_id=cfg.facility_id,
            mode=cfg.mode,
            admin_account=cfg.admin_account,
            admin_signers=cfg.admin_signers,
            admin_threshold=cfg.admin_threshold,
            account_keys=cfg.account_keys,
        )
        self._lock = threading.Lock()
        self._persist()

        log_event(
            log,
            "executor_started",
            facility_id=cfg.facility_id,
            mode=cfg.mode,
            total_staked=self.facade.total_staked,
            in_memory_token=self._in_memory_token,
        )

    def read_state(self) -> Json:
        st = self.facade.to_dict()
        st["state_version"] = CURRENT_STATE_VERSION
        st["facility_id"] = self.cfg.facility_id
        st["created_ms"] = self._created_ms
        st["nonces"] = dict(self._nonces)
        foreign: Json = {}
        for asset, ledger in self.facade.foreign_assets.items():
            if isinstance(ledger, InMemoryTokenLedger):
                foreign[asset] = ledger.to_dict()
        st["foreign_assets"] = foreign
        if isinstance(self.facade.token, InMemoryTokenLedger):
            st["token"] = self.facade.token.to_dict()
        return st

    def _persist(self) -> None:
        self._store.write(self.read_state())

    def execute(self, op: str, **kwargs: Any) -> Any:
        if op not in WRITE_OPS:
            raise ExecutorError(f"unknown write op: {op!r}")
        with self._lock:
            out = getattr(self.facade, op)(**kwargs)
            self._persist()
            return out

    def authorize(
        self,
        *,
        op: str,
        caller: str,
        payload: Json,
        nonce: Optional[int] = None,
        sig: Optional[str] = None,
        signatures: Optional[Sequence[Tuple[str, str]]] = None,
    ) -> None:
        """Authenticate a write request and consume its nonce.

        The nonce must be strictly greater than the last one accepted for the
        caller. It stays consumed even if the operation itself is then
        rejected, so a signed request can never be replayed.
        """
        if op not in WRITE_OPS:
            raise ExecutorError(f"unknown write op: {op!r}")
        with self._lock:
            try:
                signed = self.verifier.verify(
                    op=op, caller=caller, payload=payload, nonce=nonce, sig=sig, signatures=signatures
                )
                if not signed:
                    log_event(log, "unsigned_dev_request", op=op, account=str(caller))
                    return
                last = self._nonces.get(str(caller), 0)
                if int(nonce) <= last:
                    raise Unauthenticated("stale_nonce", {"account": str(caller), "nonce": nonce, "last_nonce": last})
            except Unauthenticated as e:
                inc_counter(f"rejected_{e.code}")
                log_event(log, "auth_rejected", level=logging.WARNING, op=op, account=str(caller), reason=e.reason)
                raise
            self._nonces[str(caller)] = int(nonce)
            self._persist()

    def last_nonce(self, account: str) -> int:
        return int(self._nonces.get(str(account), 0))

    def mint(self, holder: str, amount: int) -> int:
        """Dev/testnet faucet on the in-memory staking token."""
        if self.cfg.mode == "prod" or not isinstance(self.facade.token, InMemoryTokenLedger):
            raise ExecutorError("mint is only available with the in-memory token outside prod")
        with self._lock:
            self.facade.token.mint(holder, amount)
            self._persist()
            return self.facade.token.balance_of(holder)


def build_executor(cfg: Optional[StakingConfig] = None) -> StakingExecutor:
    """Build a StakingExecutor from an explicit config or, if omitted, from
    LOCKSTAKE_CONFIG_PATH / defaults.
    """
    return StakingExecutor(cfg=cfg or load_staking_config())
