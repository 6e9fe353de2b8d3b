"""FastAPI application entry point.

Run with: uvicorn src.main:app --reload --port 8000
"""

# ruff: noqa: E402  -- uvloop.install() must run before other imports

import uvloop

uvloop.install()

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from config.settings import settings
from src.fc_admin.api.router import router as admin_router
from src.fc_auction.api.router import router as auction_router
from src.fc_auction.application.service import get_auction_engine
from src.fc_auction.engine.sweeper import start_sweeper, stop_sweeper
from src.fc_common.database import async_session_factory, engine, ping
from src.fc_common.datetime_utils import epoch_ms, utc_now
from src.fc_common.errors import AppError
from src.fc_common.redis_client import close_redis, get_redis
from src.fc_common.response import ApiResponse, error_response, respond
from src.fc_gateway.api.router import router as auth_router
from src.fc_gateway.middleware.request_log import RequestLogMiddleware
from src.fc_realtime.api.router import router as realtime_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: verify DB + Redis, start the expiry sweeper. Shutdown: reverse."""
    await ping()
    await get_redis()
    start_sweeper(get_auction_engine(), async_session_factory)
    yield
    await stop_sweeper()
    await engine.dispose()
    await close_redis()


app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    lifespan=lifespan,
)


app.add_middleware(RequestLogMiddleware)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.is_fatal:
        logger.error("%s %s -> fatal %d: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(
        status_code=exc.http_status, content=error_response(request, exc).model_dump()
    )


app.include_router(auth_router, prefix="/api/v1")
app.include_router(auction_router, prefix="/api/v1")
app.include_router(admin_router, prefix="/api/v1")
app.include_router(realtime_router, prefix="/api/v1")


@app.get("/api/v1/time")
async def server_time(request: Request) -> ApiResponse:
    """Server clock for client-side skew correction."""
    now = utc_now()
    data: dict[str, Any] = {"server_time": now.isoformat(), "epoch_ms": epoch_ms(now)}
    return respond(request, data)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "version": "0.1.0"}
