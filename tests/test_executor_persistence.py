from __future__ import annotations

from dataclasses import replace

import pytest

from lockstake.ledger.constants import COIN, SECONDS_PER_YEAR
from lockstake.runtime.errors import AdministratorMustBeMultiParty, InsufficientRewards
from lockstake.runtime.executor import ExecutorError, StakingExecutor
from lockstake.runtime.sqlite_db import SqliteDB, SqliteStakingStore
from lockstake.runtime.staking_config import default_staking_config
from lockstake.runtime.token import InMemoryTokenLedger

T0 = 1_700_000_000


def _cfg(tmp_path, **changes):
    base = replace(
        default_staking_config(),
        facility_id="fac-test",
        mode="dev",
        db_path=str(tmp_path / "lockstake.db"),
    )
    return replace(base, **changes)


def test_store_roundtrip(tmp_path) -> None:
    store = SqliteStakingStore(db=SqliteDB(path=str(tmp_path / "nested" / "s.db")))
    assert not store.exists()
    store.write({"facility_id": "f", "n": 1})
    assert store.exists()
    assert store.read() == {"facility_id": "f", "n": 1}

    store.write({"facility_id": "f", "n": 2})
    assert store.read() == {"facility_id": "f", "n": 2}


def test_state_survives_restart(tmp_path) -> None:
    cfg = _cfg(tmp_path)
    ex = StakingExecutor(cfg=cfg)
    ex.mint("alice", 20_000 * COIN)
    ex.mint(cfg.admin_account, 5_000 * COIN)
    ex.execute("stake", caller="alice", amount=10_000 * COIN, tier="days_30", now_s=T0)
    ex.execute("deposit_rewards", caller=cfg.admin_account, amount=2_000 * COIN)
    ex.execute("set_base_rate", caller=cfg.admin_account, new_bps=900)
    ex.execute("pause", caller=cfg.admin_account)

    again = StakingExecutor(cfg=cfg)
    fac = again.facade
    pos = fac.get_position("alice", "days_30")
    assert pos.active
    assert pos.principal == 10_000 * COIN
    assert pos.last_settlement_time == T0
    assert fac.total_staked == 10_000 * COIN
    assert fac.pool_available() == 2_000 * COIN
    assert fac.token.balance_of("alice") == 10_000 * COIN
    assert fac.params()["base_rate_bps"] == 900
    assert fac.is_paused
    fac.check_invariants()


def test_failed_op_is_not_persisted(tmp_path) -> None:
    cfg = _cfg(tmp_path)
    ex = StakingExecutor(cfg=cfg)
    ex.mint("alice", 20_000 * COIN)
    ex.execute("stake", caller="alice", amount=10_000 * COIN, tier="flex", now_s=T0)

    with pytest.raises(InsufficientRewards):
        ex.execute("claim", caller="alice", tier="flex", now_s=T0 + SECONDS_PER_YEAR)

    st = ex.read_state()
    assert st["ledger"]["positions"]["alice"]["flex"]["last_settlement_time"] == T0
    again = StakingExecutor(cfg=cfg)
    assert again.facade.get_position("alice", "flex").last_settlement_time == T0


def test_unknown_op_rejected(tmp_path) -> None:
    ex = StakingExecutor(cfg=_cfg(tmp_path))
    with pytest.raises(ExecutorError):
        ex.execute("check_invariants")


def test_facility_id_mismatch_refuses_start(tmp_path) -> None:
    StakingExecutor(cfg=_cfg(tmp_path))
    with pytest.raises(ExecutorError):
        StakingExecutor(cfg=_cfg(tmp_path, facility_id="other"))


def test_prod_requires_external_token(tmp_path) -> None:
    with pytest.raises(ExecutorError):
        StakingExecutor(cfg=_cfg(tmp_path, mode="prod"))


def test_prod_with_external_token(tmp_path) -> None:
    cfg = _cfg(tmp_path, mode="prod")
    token = InMemoryTokenLedger(asset_id=cfg.staking_token, custody=cfg.facility_id, balances={"alice": 500 * COIN})
    ex = StakingExecutor(cfg=cfg, token=token)
    ex.execute("stake", caller="alice", amount=200 * COIN, tier="flex", now_s=T0)
    assert token.balance_of(cfg.facility_id) == 200 * COIN
    assert "token" not in ex.read_state()

    with pytest.raises(ExecutorError):
        ex.mint("alice", 1)


def test_token_asset_mismatch_refuses_start(tmp_path) -> None:
    cfg = _cfg(tmp_path, mode="prod")
    token = InMemoryTokenLedger(asset_id="OTHER", custody=cfg.facility_id)
    with pytest.raises(ExecutorError):
        StakingExecutor(cfg=cfg, token=token)


def test_single_key_admin_refuses_start(tmp_path) -> None:
    cfg = _cfg(tmp_path, admin_signers=("solo",), admin_threshold=1)
    with pytest.raises(AdministratorMustBeMultiParty):
        StakingExecutor(cfg=cfg)


def test_corrupt_state_refuses_start(tmp_path) -> None:
    cfg = _cfg(tmp_path)
    ex = StakingExecutor(cfg=cfg)
    store = SqliteStakingStore(db=SqliteDB(path=cfg.db_path))
    st = ex.read_state()
    st["ledger"]["total_staked"] = 123
    store.write(st)
    with pytest.raises(ExecutorError):
        StakingExecutor(cfg=cfg)

    st["ledger"]["total_staked"] = 0
    st["params"]["base_rate_bps"] = 50_000
    store.write(st)
    with pytest.raises(ExecutorError):
        StakingExecutor(cfg=cfg)


def test_versionless_snapshot_refuses_start(tmp_path) -> None:
    cfg = _cfg(tmp_path)
    ex = StakingExecutor(cfg=cfg)
    ex.mint("alice", 20_000 * COIN)
    ex.execute("stake", caller="alice", amount=10_000 * COIN, tier="flex", now_s=T0)

    store = SqliteStakingStore(db=SqliteDB(path=cfg.db_path))
    st = ex.read_state()
    del st["state_version"]
    store.write(st)
    with pytest.raises(ExecutorError):
        StakingExecutor(cfg=cfg)
    # the unreadable row is left as found, not replaced by an empty facility
    assert store.read() == st

    store.write({})
    with pytest.raises(ExecutorError):
        StakingExecutor(cfg=cfg)
    assert store.read() == {}


def test_foreign_assets_recoverable_through_executor(tmp_path) -> None:
    cfg = _cfg(tmp_path)
    usdc = InMemoryTokenLedger(asset_id="USDC", custody=cfg.facility_id, balances={cfg.facility_id: 300})
    ex = StakingExecutor(cfg=cfg, foreign_assets={"USDC": usdc})
    ex.execute("recover_foreign_asset", caller=cfg.admin_account, asset="USDC", to="treasury", amount=100)
    assert usdc.balance_of("treasury") == 100
    assert ex.read_state()["foreign_assets"]["USDC"]["balances"][cfg.facility_id] == 200
