"""FastAPI application entry point.

Run with: uvicorn src.main:app --reload --port 8000
"""

# ruff: noqa: E402  -- uvloop.install() must run before other imports

import uvloop

uvloop.install()

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text

from config.settings import settings
from src.co_booking.api.router import router as booking_router
from src.co_cancellation.api.router import drain_reconciler
from src.co_cancellation.api.router import router as cancellation_router
from src.co_common.database import engine
from src.co_common.errors import AppError, InternalError, ValidationError
from src.co_common.middleware.request_log import RequestLogMiddleware
from src.co_common.redis_client import close_redis, get_redis
from src.co_common.response import ApiResponse, error_response
from src.co_membership.api.router import router as membership_router
from src.co_refund.api.router import router as refund_router
from src.co_registration.api.router import router as registration_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: verify DB + Redis connections. Shutdown: drain audit exports, dispose."""
    # Startup
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    redis = await get_redis()
    await redis.ping()
    yield
    # Shutdown
    await drain_reconciler()
    await engine.dispose()
    await close_redis()


app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    lifespan=lifespan,
)


app.add_middleware(RequestLogMiddleware)


def _envelope(request: Request, resp: ApiResponse, status_code: int) -> JSONResponse:
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return JSONResponse(status_code=status_code, content=resp.model_dump())


def _validation_details(exc: RequestValidationError) -> list[dict[str, object]]:
    return [
        {"loc": list(e.get("loc", ())), "msg": str(e.get("msg", "")), "type": e.get("type", "")}
        for e in exc.errors()
    ]


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    resp = error_response(exc.code, exc.message, exc.http_status, exc.details)
    return _envelope(request, resp, exc.http_status)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    err = ValidationError("Invalid request", details=_validation_details(exc))
    resp = error_response(err.code, err.message, err.http_status, err.details)
    return _envelope(request, resp, err.http_status)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error: %s %s", request.method, request.url.path)
    err = InternalError()
    resp = error_response(err.code, err.message, err.http_status)
    return _envelope(request, resp, err.http_status)


app.include_router(booking_router, prefix="/api/v1")
app.include_router(cancellation_router, prefix="/api/v1")
app.include_router(registration_router, prefix="/api/v1")
app.include_router(refund_router, prefix="/api/v1")
app.include_router(membership_router, prefix="/api/v1")


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "version": "0.1.0"}
