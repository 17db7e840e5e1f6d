from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from lockstake.api.routes_public_parts.common import _authorize, _executor
from lockstake.api.schemas import (
    AccountRequest,
    BaseRateRequest,
    DepositRequest,
    MinStakeRequest,
    MultiplierRequest,
    RecoverRequest,
)

router = APIRouter()

Json = Dict[str, Any]


@router.post("/deposit")
def deposit_post(body: DepositRequest, request: Request) -> Json:
    _authorize(request, "deposit_rewards", body)
    available = _executor(request).execute("deposit_rewards", caller=body.account, amount=body.amount)
    return {"ok": True, "pool_available": int(available)}


@router.post("/pause")
def pause_post(body: AccountRequest, request: Request) -> Json:
    _authorize(request, "pause", body)
    _executor(request).execute("pause", caller=body.account)
    return {"ok": True, "paused": True}


@router.post("/unpause")
def unpause_post(body: AccountRequest, request: Request) -> Json:
    _authorize(request, "unpause", body)
    _executor(request).execute("unpause", caller=body.account)
    return {"ok": True, "paused": False}


@router.post("/recover")
def recover_post(body: RecoverRequest, request: Request) -> Json:
    _authorize(request, "recover_foreign_asset", body)
    amt = _executor(request).execute(
        "recover_foreign_asset", caller=body.account, asset=body.asset, to=body.to, amount=body.amount
    )
    return {"ok": True, "asset": body.asset, "to": body.to, "amount": int(amt)}


@router.post("/params/base-rate")
def base_rate_post(body: BaseRateRequest, request: Request) -> Json:
    _authorize(request, "set_base_rate", body)
    v = _executor(request).execute("set_base_rate", caller=body.account, new_bps=body.base_rate_bps)
    return {"ok": True, "base_rate_bps": int(v)}


@router.post("/params/multiplier")
def multiplier_post(body: MultiplierRequest, request: Request) -> Json:
    _authorize(request, "set_tier_multiplier", body)
    v = _executor(request).execute(
        "set_tier_multiplier", caller=body.account, tier=body.tier, new_bps=body.multiplier_bps
    )
    return {"ok": True, "tier": body.tier, "multiplier_bps": int(v)}


@router.post("/params/min-stake")
def min_stake_post(body: MinStakeRequest, request: Request) -> Json:
    _authorize(request, "set_min_stake", body)
    v = _executor(request).execute("set_min_stake", caller=body.account, new_amount=body.min_stake_amount)
    return {"ok": True, "min_stake_amount": int(v)}
