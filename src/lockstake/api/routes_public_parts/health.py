from __future__ import annotations

import time
from typing import Any, Dict

from fastapi import APIRouter, Request

router = APIRouter()

Json = Dict[str, Any]


@router.get("/health")
def health(request: Request) -> Json:
    """Liveness + a small readiness summary."""
    ex = getattr(request.app.state, "executor", None)
    out: Json = {"ok": True, "ts_ms": int(time.time() * 1000), "ready": ex is not None}
    if ex is not None:
        fac = ex.facade
        out["facility_id"] = ex.cfg.facility_id
        out["mode"] = ex.cfg.mode
        out["paused"] = fac.is_paused
        out["total_staked"] = fac.total_staked
    return out
