from __future__ import annotations

import os

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from lockstake.api.errors import ApiError, from_staking_error
from lockstake.api.routes_public import public_router
from lockstake.api.structured_logging import RequestLogMiddleware
from lockstake.runtime.errors import StakingError
from lockstake.runtime.executor import ExecutorError
from lockstake.runtime.executor import build_executor as _build_executor
from lockstake.structured_logging import configure_structured_logging


def build_executor():
    """Build a StakingExecutor for API runtime.

    This wrapper exists so tests can monkeypatch `lockstake.api.app.build_executor`
    without reaching into runtime modules.
    """
    return _build_executor()


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiError)
    async def _api_error(_request: Request, exc: ApiError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    @app.exception_handler(StakingError)
    async def _staking_error(_request: Request, exc: StakingError) -> JSONResponse:
        err = from_staking_error(exc)
        return JSONResponse(status_code=err.status_code, content=err.to_body())

    @app.exception_handler(ExecutorError)
    async def _executor_error(_request: Request, exc: ExecutorError) -> JSONResponse:
        err = ApiError.bad_request("executor_error", str(exc))
        return JSONResponse(status_code=err.status_code, content=err.to_body())


def create_app(*, boot_runtime: bool = True) -> FastAPI:
    """Create the FastAPI application.

    boot_runtime:
      - True (default): load staking config + attach executor
      - False: keep lightweight for unit tests / import-time validation
    """
    configure_structured_logging()
    mode = os.environ.get("LOCKSTAKE_MODE", "prod").strip().lower()

    # Disable docs in production.
    if mode == "prod":
        app = FastAPI(title="lockstake API", docs_url=None, redoc_url=None, openapi_url=None)
    else:
        app = FastAPI(title="lockstake API")

    app.state.executor = build_executor() if boot_runtime else None

    app.add_middleware(RequestLogMiddleware)
    _install_error_handlers(app)
    app.include_router(public_router)

    return app
