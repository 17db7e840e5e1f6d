from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from lockstake.api.routes_public_parts.common import _facade, _position_json

router = APIRouter()

Json = Dict[str, Any]


@router.get("/accounts/{account}/positions")
def positions_list(account: str, request: Request) -> Json:
    fac = _facade(request)
    positions = fac.get_positions(account)
    return {
        "ok": True,
        "account": account,
        "positions": [_position_json(account, p) for p in positions],
        "balance": fac.token.balance_of(account),
    }


@router.get("/accounts/{account}/positions/{tier}")
def position_get(account: str, tier: str, request: Request) -> Json:
    """Empty slots are returned with active=false rather than 404."""
    fac = _facade(request)
    pos = fac.get_position(account, tier)
    return {
        "ok": True,
        "position": _position_json(account, pos),
        "claimable": fac.claimable(account, tier),
    }


@router.get("/accounts/{account}/claimable")
def claimable_get(account: str, request: Request) -> Json:
    fac = _facade(request)
    now = fac.now()
    per_tier = {p.lock_tier.key: fac.claimable(account, p.lock_tier, now_s=now) for p in fac.get_positions(account)}
    return {
        "ok": True,
        "account": account,
        "now_s": now,
        "total": fac.total_claimable(account, now_s=now),
        "by_tier": per_tier,
    }
