from __future__ import annotations

from dataclasses import replace

import pytest
from fastapi.testclient import TestClient

from lockstake.ledger.constants import COIN, SECONDS_PER_YEAR
from lockstake.runtime.executor import StakingExecutor
from lockstake.runtime.staking_config import default_staking_config
from lockstake.runtime.token import InMemoryTokenLedger
from lockstake.testing.sigtools import cosigned_body, deterministic_ed25519_keypair, signed_body

T0 = 1_700_000_000
ADMIN = "ADMIN_MULTISIG"
PROD_FAC = "fac-prod"
ALICE, _ = deterministic_ed25519_keypair(label="alice")


def _client(monkeypatch, executor) -> TestClient:
    import lockstake.api.app as api_app

    monkeypatch.setattr(api_app, "build_executor", lambda: executor)
    return TestClient(api_app.create_app())


@pytest.fixture()
def dev_client(tmp_path, monkeypatch):
    monkeypatch.setenv("LOCKSTAKE_MODE", "dev")
    monkeypatch.setenv("LOCKSTAKE_UNSAFE_DEV", "1")
    cfg = replace(default_staking_config(), mode="dev", facility_id="fac-api", db_path=str(tmp_path / "api.db"))
    return _client(monkeypatch, StakingExecutor(cfg=cfg))


def _err(r):
    return r.json()["error"]["code"]


def test_health(dev_client) -> None:
    r = dev_client.get("/v1/health")
    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True
    assert body["ready"] is True
    assert body["facility_id"] == "fac-api"
    assert body["paused"] is False
    assert r.headers.get("x-request-id")


def test_health_without_runtime(monkeypatch) -> None:
    from lockstake.api.app import create_app

    monkeypatch.setenv("LOCKSTAKE_MODE", "dev")
    client = TestClient(create_app(boot_runtime=False))
    assert client.get("/v1/health").json()["ready"] is False
    r = client.get("/v1/params")
    assert r.status_code == 500
    assert _err(r) == "not_ready"


def test_full_staking_flow(dev_client) -> None:
    c = dev_client
    assert c.post("/v1/dev/mint", json={"holder": "alice", "amount": 20_000 * COIN}).status_code == 200
    assert c.post("/v1/dev/mint", json={"holder": ADMIN, "amount": 5_000 * COIN}).status_code == 200

    r = c.post("/v1/stake", json={"account": "alice", "amount": 10_000 * COIN, "tier": "flex", "now_s": T0})
    assert r.status_code == 200
    assert r.json()["position"]["principal"] == 10_000 * COIN
    assert r.json()["position"]["lock_tier"] == "flex"

    r = c.post("/v1/stake", json={"account": "alice", "amount": 10_000 * COIN, "tier": 0, "now_s": T0})
    assert r.status_code == 409
    assert _err(r) == "position_exists"

    later = T0 + SECONDS_PER_YEAR
    r = c.post("/v1/claim", json={"account": "alice", "tier": "flex", "now_s": later})
    assert r.status_code == 409
    assert _err(r) == "insufficient_rewards"
    assert r.json()["error"]["details"]["requested"] == 1_200 * COIN

    r = c.post("/v1/admin/deposit", json={"account": ADMIN, "amount": 5_000 * COIN})
    assert r.status_code == 200
    assert r.json()["pool_available"] == 5_000 * COIN

    r = c.post("/v1/claim", json={"account": "alice", "tier": "flex", "now_s": later})
    assert r.status_code == 200
    assert r.json()["reward"] == 1_200 * COIN

    r = c.get("/v1/pool")
    assert r.json()["available"] == 3_800 * COIN
    assert r.json()["total_staked"] == 10_000 * COIN

    r = c.get("/v1/accounts/alice/positions")
    body = r.json()
    assert len(body["positions"]) == 1
    assert body["balance"] == 10_000 * COIN + 1_200 * COIN

    r = c.post("/v1/compound", json={"account": "alice", "tier": "flex", "now_s": later + SECONDS_PER_YEAR})
    assert r.status_code == 200
    assert r.json()["reward"] == 1_200 * COIN
    assert r.json()["position"]["principal"] == 11_200 * COIN

    r = c.post("/v1/unstake", json={"account": "alice", "tier": "flex", "now_s": later + SECONDS_PER_YEAR})
    assert r.status_code == 200
    assert r.json() == {"ok": True, "principal": 11_200 * COIN, "reward": 0, "total": 11_200 * COIN}

    r = c.get("/v1/accounts/alice/positions/flex")
    assert r.json()["position"]["active"] is False
    assert r.json()["claimable"] == 0


def test_lock_and_pause_errors(dev_client) -> None:
    c = dev_client
    c.post("/v1/dev/mint", json={"holder": "bob", "amount": 1_000 * COIN})
    c.post("/v1/stake", json={"account": "bob", "amount": 500 * COIN, "tier": "days_90", "now_s": T0})

    r = c.post("/v1/unstake", json={"account": "bob", "tier": "days_90", "now_s": T0 + 1})
    assert r.status_code == 409
    assert _err(r) == "still_locked"

    r = c.post("/v1/admin/pause", json={"account": "bob"})
    assert r.status_code == 403
    assert _err(r) == "unauthorized"

    assert c.post("/v1/admin/pause", json={"account": ADMIN}).status_code == 200
    assert c.get("/v1/health").json()["paused"] is True

    r = c.post("/v1/stake", json={"account": "bob", "amount": 200 * COIN, "tier": "flex", "now_s": T0})
    assert r.status_code == 409
    assert _err(r) == "paused"

    assert c.post("/v1/admin/unpause", json={"account": ADMIN}).status_code == 200


def test_validation_errors(dev_client) -> None:
    c = dev_client
    r = c.post("/v1/stake", json={"account": "alice", "amount": 1, "tier": "weekly"})
    assert r.status_code == 400
    assert _err(r) == "unknown_tier"

    r = c.post("/v1/stake", json={"account": "alice", "amount": 1, "tier": "flex"})
    assert r.status_code == 400
    assert _err(r) == "invalid_amount"

    r = c.post("/v1/claim", json={"account": "nobody", "tier": "flex"})
    assert r.status_code == 404
    assert _err(r) == "no_active_position"

    r = c.post("/v1/stake", json={"account": "alice", "amount": 1, "tier": "flex", "extra": True})
    assert r.status_code == 422


def test_admin_params_routes(dev_client) -> None:
    c = dev_client
    r = c.post("/v1/admin/params/base-rate", json={"account": ADMIN, "base_rate_bps": 10_001})
    assert r.status_code == 400
    assert _err(r) == "invalid_rate"

    assert c.post("/v1/admin/params/base-rate", json={"account": ADMIN, "base_rate_bps": 1_000}).status_code == 200
    r = c.post("/v1/admin/params/multiplier", json={"account": ADMIN, "tier": "days_30", "multiplier_bps": 20_000})
    assert r.json()["multiplier_bps"] == 20_000
    r = c.post("/v1/admin/params/min-stake", json={"account": ADMIN, "min_stake_amount": 5})
    assert r.json()["min_stake_amount"] == 5

    params = c.get("/v1/params").json()["params"]
    assert params["base_rate_bps"] == 1_000
    assert params["effective_rates_bps"]["days_30"] == 2_000
    assert c.get("/v1/tiers/days_30/rate").json()["effective_rate_bps"] == 2_000

    r = c.post("/v1/admin/recover", json={"account": ADMIN, "asset": "STAKE", "to": "x", "amount": 1})
    assert r.status_code == 400
    assert _err(r) == "cannot_recover_staked_asset"


def test_quote(dev_client) -> None:
    r = dev_client.get("/v1/quote", params={"amount": 10_000 * COIN, "tier": "days_180"})
    assert r.status_code == 200
    q = r.json()["quote"]
    assert q["effective_rate_bps"] == 2_400
    assert q["meets_min_stake"] is True


def test_metrics_disabled_by_default(dev_client, monkeypatch) -> None:
    monkeypatch.delenv("LOCKSTAKE_METRICS_ENABLED", raising=False)
    assert dev_client.get("/metrics").status_code == 404


def test_metrics_counts_ops(dev_client, monkeypatch) -> None:
    monkeypatch.setenv("LOCKSTAKE_METRICS_ENABLED", "1")
    dev_client.post("/v1/admin/pause", json={"account": "alice"})
    dev_client.post("/v1/admin/pause", json={"account": ADMIN})
    text = dev_client.get("/metrics").text
    assert "lockstake_op_pause 1" in text
    assert "lockstake_rejected_unauthorized 1" in text


def _prod(tmp_path, monkeypatch, balances):
    monkeypatch.setenv("LOCKSTAKE_MODE", "prod")
    keys = {s: (deterministic_ed25519_keypair(label=s)[0],) for s in ("admin-1", "admin-2", "admin-3")}
    cfg = replace(
        default_staking_config(),
        mode="prod",
        facility_id=PROD_FAC,
        db_path=str(tmp_path / "p.db"),
        account_keys=keys,
    )
    token = InMemoryTokenLedger(asset_id=cfg.staking_token, custody=cfg.facility_id, balances=dict(balances))
    ex = StakingExecutor(cfg=cfg, token=token)
    return _client(monkeypatch, ex), ex, token


def _reason(r):
    return r.json()["error"]["message"]


def test_prod_mode_refuses_clock_override_and_faucet(tmp_path, monkeypatch) -> None:
    c, _, token = _prod(tmp_path, monkeypatch, {ALICE: 500 * COIN})

    r = c.post("/v1/stake", json={"account": ALICE, "amount": 200 * COIN, "tier": "flex", "now_s": T0})
    assert r.status_code == 403
    assert _err(r) == "clock_override_forbidden"

    assert c.post("/v1/dev/mint", json={"holder": ALICE, "amount": 1}).status_code == 404

    body = {"account": ALICE, "nonce": 1, "amount": 200 * COIN, "tier": "flex"}
    body = signed_body(body, op="stake", facility_id=PROD_FAC, label="alice")
    r = c.post("/v1/stake", json=body)
    assert r.status_code == 200
    assert token.balance_of(ALICE) == 300 * COIN

    assert c.get("/docs").status_code == 404


def test_prod_rejects_unsigned_forged_and_replayed_requests(tmp_path, monkeypatch) -> None:
    c, ex, token = _prod(tmp_path, monkeypatch, {ALICE: 500 * COIN, "alice": 500 * COIN})
    base = {"account": ALICE, "nonce": 1, "amount": 200 * COIN, "tier": "flex"}

    r = c.post("/v1/stake", json={"account": ALICE, "amount": 200 * COIN, "tier": "flex"})
    assert r.status_code == 401
    assert _err(r) == "unauthenticated"
    assert _reason(r) == "signature_required"

    named = signed_body({**base, "account": "alice"}, op="stake", facility_id=PROD_FAC, label="alice")
    r = c.post("/v1/stake", json=named)
    assert r.status_code == 401
    assert _reason(r) == "no_active_keys"

    forged = signed_body(base, op="stake", facility_id=PROD_FAC, label="mallory")
    assert _reason(c.post("/v1/stake", json=forged)) == "invalid_signature"

    tampered = {**signed_body(base, op="stake", facility_id=PROD_FAC, label="alice"), "amount": 400 * COIN}
    assert _reason(c.post("/v1/stake", json=tampered)) == "invalid_signature"

    other_facility = signed_body(base, op="stake", facility_id="fac-other", label="alice")
    assert _reason(c.post("/v1/stake", json=other_facility)) == "invalid_signature"

    assert token.balance_of(ALICE) == 500 * COIN
    assert ex.last_nonce(ALICE) == 0

    good = signed_body(base, op="stake", facility_id=PROD_FAC, label="alice")
    assert c.post("/v1/stake", json=good).status_code == 200
    assert ex.last_nonce(ALICE) == 1

    r = c.post("/v1/stake", json=good)
    assert r.status_code == 401
    assert _reason(r) == "stale_nonce"
    assert token.balance_of(ALICE) == 300 * COIN

    # a rejected op still burns its nonce
    claim = {"account": ALICE, "nonce": 2, "tier": "days_30"}
    claim = signed_body(claim, op="claim", facility_id=PROD_FAC, label="alice")
    assert _err(c.post("/v1/claim", json=claim)) == "no_active_position"
    assert _reason(c.post("/v1/claim", json=claim)) == "stale_nonce"
    assert ex.last_nonce(ALICE) == 2


def test_prod_admin_ops_need_threshold_cosignatures(tmp_path, monkeypatch) -> None:
    c, ex, token = _prod(tmp_path, monkeypatch, {ADMIN: 1_000 * COIN})
    pause = {"account": ADMIN, "nonce": 1}

    r = c.post("/v1/admin/pause", json=pause)
    assert r.status_code == 401

    for signers in (["admin-1"], ["admin-1", "admin-1"], ["admin-2", "mallory"]):
        r = c.post("/v1/admin/pause", json=cosigned_body(pause, op="pause", facility_id=PROD_FAC, signers=signers))
        assert r.status_code == 401
        assert _reason(r) == "admin_threshold_not_met"
    assert ex.facade.is_paused is False

    body = cosigned_body(pause, op="pause", facility_id=PROD_FAC, signers=["admin-1", "admin-3"])
    assert c.post("/v1/admin/pause", json=body).status_code == 200
    assert ex.facade.is_paused is True

    deposit = cosigned_body(
        {"account": ADMIN, "nonce": 2, "amount": 400 * COIN},
        op="deposit_rewards",
        facility_id=PROD_FAC,
        signers=["admin-2", "admin-3"],
    )
    r = c.post("/v1/admin/deposit", json=deposit)
    assert r.status_code == 200
    assert r.json()["pool_available"] == 400 * COIN
    assert token.balance_of(ADMIN) == 600 * COIN

    # a user key cannot stand in for the admin quorum
    r = c.post(
        "/v1/admin/unpause",
        json=signed_body({"account": ADMIN, "nonce": 3}, op="unpause", facility_id=PROD_FAC, label="admin-1"),
    )
    assert r.status_code == 401
    assert ex.facade.is_paused is True


def test_dev_mode_still_requires_signatures_without_unsafe_flag(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("LOCKSTAKE_MODE", "dev")
    cfg = replace(default_staking_config(), mode="dev", facility_id="fac-dev", db_path=str(tmp_path / "d.db"))
    c = _client(monkeypatch, StakingExecutor(cfg=cfg))
    c.post("/v1/dev/mint", json={"holder": "alice", "amount": 1_000 * COIN})

    r = c.post("/v1/stake", json={"account": "alice", "amount": 500 * COIN, "tier": "flex"})
    assert r.status_code == 401
    assert _err(r) == "unauthenticated"
