from __future__ import annotations

from fastapi import APIRouter

from lockstake.api.routes_public_parts.accounts import router as accounts_router
from lockstake.api.routes_public_parts.admin import router as admin_router
from lockstake.api.routes_public_parts.health import router as health_router
from lockstake.api.routes_public_parts.ops import router as ops_router
from lockstake.api.routes_public_parts.params import router as params_router
from lockstake.api.routes_public_parts.staking import router as staking_router

public_router = APIRouter()

# Versioned API surface
public_router.include_router(health_router, prefix="/v1", tags=["health"])
public_router.include_router(params_router, prefix="/v1", tags=["params"])
public_router.include_router(accounts_router, prefix="/v1", tags=["accounts"])
public_router.include_router(staking_router, prefix="/v1", tags=["staking"])
public_router.include_router(admin_router, prefix="/v1/admin", tags=["admin"])

# Ops
public_router.include_router(ops_router, prefix="", tags=["ops"])
