from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from lockstake.api.routes_public_parts.common import _authorize, _clock_override, _executor, _position_json
from lockstake.api.schemas import StakeRequest, TierRequest

router = APIRouter()

Json = Dict[str, Any]


@router.post("/stake")
def stake_post(body: StakeRequest, request: Request) -> Json:
    ex = _executor(request)
    now_s = _clock_override(request, body.now_s)
    _authorize(request, "stake", body)
    pos = ex.execute("stake", caller=body.account, amount=body.amount, tier=body.tier, now_s=now_s)
    return {"ok": True, "position": _position_json(body.account, pos)}


@router.post("/claim")
def claim_post(body: TierRequest, request: Request) -> Json:
    ex = _executor(request)
    now_s = _clock_override(request, body.now_s)
    _authorize(request, "claim", body)
    reward = ex.execute("claim", caller=body.account, tier=body.tier, now_s=now_s)
    return {"ok": True, "reward": int(reward)}


@router.post("/compound")
def compound_post(body: TierRequest, request: Request) -> Json:
    ex = _executor(request)
    now_s = _clock_override(request, body.now_s)
    _authorize(request, "compound", body)
    reward = ex.execute("compound", caller=body.account, tier=body.tier, now_s=now_s)
    pos = ex.facade.get_position(body.account, body.tier)
    return {"ok": True, "reward": int(reward), "position": _position_json(body.account, pos)}


@router.post("/unstake")
def unstake_post(body: TierRequest, request: Request) -> Json:
    ex = _executor(request)
    now_s = _clock_override(request, body.now_s)
    _authorize(request, "unstake", body)
    res = ex.execute("unstake", caller=body.account, tier=body.tier, now_s=now_s)
    return {"ok": True, "principal": res.principal, "reward": res.reward, "total": res.total}
