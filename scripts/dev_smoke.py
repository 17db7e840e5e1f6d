#!/usr/bin/env python3

"""Dev-mode smoke test for lockstake.

It verifies:
  - executor boots on a fresh SQLite db with the in-memory staking token
  - FastAPI app boots and serves /v1/health
  - signed user requests and 2-of-3 co-signed admin requests are accepted
  - a claim is refused while the reward pool is short and paid once it is topped up

Usage:
  python3 scripts/dev_smoke.py
"""

from __future__ import annotations

import json
import os
import tempfile

from fastapi.testclient import TestClient

from lockstake.api.app import create_app
from lockstake.ledger.constants import COIN, SECONDS_PER_YEAR
from lockstake.testing.sigtools import cosigned_body, deterministic_ed25519_keypair, signed_body

T0 = 1_700_000_000
FACILITY = "smoke-facility"
SIGNERS = ["admin-1", "admin-2", "admin-3"]


def main() -> int:
    with tempfile.TemporaryDirectory(prefix="lockstake-smoke-") as td:
        cfg_path = os.path.join(td, "lockstake.json")
        with open(cfg_path, "w", encoding="utf-8") as f:
            json.dump(
                {
                    "facility_id": FACILITY,
                    "mode": "dev",
                    "db_path": os.path.join(td, "smoke.db"),
                    "admin_signers": SIGNERS,
                    "account_keys": {s: [deterministic_ed25519_keypair(label=s)[0]] for s in SIGNERS},
                },
                f,
            )

        os.environ["LOCKSTAKE_CONFIG_PATH"] = cfg_path
        os.environ["LOCKSTAKE_MODE"] = "dev"
        os.environ.pop("LOCKSTAKE_UNSAFE_DEV", None)

        app = create_app(boot_runtime=True)
        admin = app.state.executor.cfg.admin_account
        user, _ = deterministic_ed25519_keypair(label="smoke-user")
        c = TestClient(app)

        def user_req(op, nonce, **fields):
            body = dict(fields, account=user, nonce=nonce)
            return signed_body(body, op=op, facility_id=FACILITY, label="smoke-user")

        def admin_req(op, nonce, **fields):
            body = dict(fields, account=admin, nonce=nonce)
            return cosigned_body(body, op=op, facility_id=FACILITY, signers=SIGNERS[:2])

        r = c.get("/v1/health")
        assert r.status_code == 200, r.text
        assert r.json().get("ready") is True

        c.post("/v1/dev/mint", json={"holder": user, "amount": 10_000 * COIN})
        c.post("/v1/dev/mint", json={"holder": admin, "amount": 2_000 * COIN})

        r = c.post("/v1/stake", json={"account": user, "amount": 10_000 * COIN, "tier": "flex", "now_s": T0})
        assert r.status_code == 401, r.text

        r = c.post("/v1/stake", json=user_req("stake", 1, amount=10_000 * COIN, tier="flex", now_s=T0))
        assert r.status_code == 200, r.text

        later = T0 + SECONDS_PER_YEAR
        r = c.post("/v1/claim", json=user_req("claim", 2, tier="flex", now_s=later))
        assert r.status_code == 409, r.text

        r = c.post("/v1/admin/deposit", json=admin_req("deposit_rewards", 1, amount=2_000 * COIN))
        assert r.status_code == 200, r.text

        r = c.post("/v1/claim", json=user_req("claim", 3, tier="flex", now_s=later))
        assert r.status_code == 200, r.text
        reward = int(r.json()["reward"])

        r = c.post("/v1/unstake", json=user_req("unstake", 4, tier="flex", now_s=later))
        assert r.status_code == 200, r.text

        app.state.executor.facade.check_invariants()
        print("OK: health + signed stake/claim/unstake", {"reward": reward, "principal": r.json()["principal"]})
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
