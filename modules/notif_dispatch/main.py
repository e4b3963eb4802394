"""Notification dispatch: FastAPI service."""

from __future__ import annotations

import asyncio

import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from modules.notif_dispatch.errors import ClaimError, ConfigError
from modules.notif_dispatch.worker import dispatch_loop, require_store_config, run_once
from shared.auth import AuthError, require_dispatch_secret
from shared.config import Settings, get_settings
from shared.log import configure_logging
from shared.schemas.common import ErrorResponse, HealthResponse

configure_logging()

logger = structlog.get_logger()
app = FastAPI(title="Notification Dispatch", version="1.0.0")

CORS_HEADERS = {
    "access-control-allow-origin": "*",
    "access-control-allow-headers": "authorization, x-client-info, apikey, content-type, x-dispatch-secret",
    "access-control-allow-methods": "POST, OPTIONS",
}

_worker_task: asyncio.Task | None = None


def _json(data: dict, status: int = 200) -> JSONResponse:
    return JSONResponse(data, status_code=status, headers=CORS_HEADERS)


def _error(error: str, status: int) -> JSONResponse:
    return _json(ErrorResponse(error=error).model_dump(), status)


@app.on_event("startup")
async def startup():
    global _worker_task
    settings = get_settings()
    if settings.dispatch_interval_seconds > 0 and settings.has_store_config:
        _worker_task = asyncio.create_task(dispatch_loop(settings))
    logger.info("notif_dispatch_ready", worker=_worker_task is not None)


@app.on_event("shutdown")
async def shutdown():
    global _worker_task
    if _worker_task and not _worker_task.done():
        _worker_task.cancel()
        try:
            await _worker_task
        except asyncio.CancelledError:
            pass
    _worker_task = None
    logger.info("notif_dispatch_shutdown")


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError):
    return _error(str(exc.detail), exc.status_code)


@app.exception_handler(ConfigError)
async def config_error_handler(request: Request, exc: ConfigError):
    logger.error("dispatch_missing_config")
    return _error(ConfigError.code, 500)


@app.exception_handler(ClaimError)
async def claim_error_handler(request: Request, exc: ClaimError):
    logger.error("dispatch_claim_failed", error=str(exc))
    return _error(f"CLAIM_FAILED: {exc}", 500)


@app.options("/")
async def preflight():
    return _json({"ok": True})


@app.post("/")
async def dispatch(
    request: Request,
    _=Depends(require_dispatch_secret),
    settings: Settings = Depends(get_settings),
):
    """Drain one batch of the notification outbox.

    Body: ``{"limit": <number>}``, optional. Per-row failures are reported in
    ``errors`` and never change the status code.
    """
    require_store_config(settings)

    try:
        body = await request.json()
    except ValueError:
        body = {}
    limit = body.get("limit") if isinstance(body, dict) else None

    result = await run_once(settings, limit)
    return _json({"ok": True, **result.model_dump()})


@app.api_route("/", methods=["GET", "HEAD", "PUT", "PATCH", "DELETE"])
async def method_not_allowed():
    return _error("METHOD_NOT_ALLOWED", 405)


@app.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse(status="ok")
