from __future__ import annotations

import os
from typing import Any, Dict, Optional

from fastapi import Request

from lockstake.api.errors import ApiError
from lockstake.crypto.sig import request_payload
from lockstake.ledger.types import Position

Json = Dict[str, Any]


def _executor(request: Request):
    ex = getattr(request.app.state, "executor", None)
    if ex is None:
        raise ApiError.internal("not_ready", "executor not attached to app.state", {})
    return ex


def _facade(request: Request):
    return _executor(request).facade


def _mode(request: Request) -> str:
    ex = getattr(request.app.state, "executor", None)
    cfg = getattr(ex, "cfg", None)
    mode = getattr(cfg, "mode", None) or os.environ.get("LOCKSTAKE_MODE", "prod")
    return str(mode).strip().lower()


def _clock_override(request: Request, now_s: Optional[int]) -> Optional[int]:
    """Caller-supplied timestamps are honored only outside prod."""
    if now_s is None:
        return None
    if _mode(request) == "prod":
        raise ApiError.forbidden("clock_override_forbidden", "now_s is not accepted in prod mode", {})
    return int(now_s)


def _authorize(request: Request, op: str, body: Any) -> None:
    """Verify the request's signature(s) and nonce before the op runs."""
    signatures = [(s.signer, s.sig) for s in (body.signatures or [])]
    _executor(request).authorize(
        op=op,
        caller=body.account,
        payload=request_payload(body.model_dump(mode="json")),
        nonce=body.nonce,
        sig=body.sig,
        signatures=signatures,
    )


def _position_json(account: str, pos: Position) -> Json:
    out = pos.to_dict()
    out["account"] = account
    return out
