from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request, Response

from lockstake.api.errors import ApiError
from lockstake.api.routes_public_parts.common import _executor, _mode
from lockstake.api.schemas import MintRequest
from lockstake.runtime.metrics import format_prometheus, metrics_enabled

router = APIRouter()

Json = Dict[str, Any]


@router.get("/metrics")
def metrics() -> Response:
    """Prometheus-style metrics.

    Disabled by default. Enable with:
      LOCKSTAKE_METRICS_ENABLED=1
    """
    if not metrics_enabled():
        return Response(status_code=404, content="not_found\n", media_type="text/plain")
    return Response(content=format_prometheus(), media_type="text/plain")


@router.post("/v1/dev/mint")
def dev_mint(body: MintRequest, request: Request) -> Json:
    """Faucet for the in-memory staking token. Never available in prod."""
    if _mode(request) == "prod":
        raise ApiError.not_found("not_found", "dev routes are disabled in prod", {})
    balance = _executor(request).mint(body.holder, body.amount)
    return {"ok": True, "holder": body.holder, "balance": int(balance)}
