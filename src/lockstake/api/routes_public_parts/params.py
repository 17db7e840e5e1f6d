from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Query, Request

from lockstake.api.routes_public_parts.common import _facade

router = APIRouter()

Json = Dict[str, Any]


@router.get("/params")
def params_get(request: Request) -> Json:
    return {"ok": True, "params": _facade(request).params()}


@router.get("/pool")
def pool_get(request: Request) -> Json:
    fac = _facade(request)
    return {
        "ok": True,
        "available": fac.pool_available(),
        "total_staked": fac.total_staked,
        "custody_balance": fac.token.balance_of(fac.token.custody),
    }


@router.get("/tiers/{tier}/rate")
def tier_rate_get(tier: str, request: Request) -> Json:
    fac = _facade(request)
    return {"ok": True, "tier": tier, "effective_rate_bps": fac.effective_rate(tier)}


@router.get("/quote")
def quote_get(request: Request, amount: int = Query(..., ge=0), tier: str = Query(...)) -> Json:
    """Preview lock duration and reward-at-unlock for a hypothetical stake."""
    return {"ok": True, "quote": _facade(request).quote(amount, tier)}
