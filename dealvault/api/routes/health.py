from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from sqlalchemy import text

from dealvault.core.config import get_settings
from dealvault.db.session import SessionLocal
from dealvault.workers.celery_app import celery_app

router = APIRouter(tags=["health"])

CELERY_PING_TIMEOUT_SECONDS = 1.0


def _passed(**extra: Any) -> dict[str, Any]:
    return {"status": "ok", **extra}


def _failed(error: BaseException | str) -> dict[str, Any]:
    return {"status": "failed", "error": str(error)}


async def _probe_database() -> dict[str, Any]:
    async with SessionLocal() as session:
        await session.execute(text("SELECT 1"))
    return _passed()


async def _probe_redis() -> dict[str, Any]:
    client = Redis.from_url(get_settings().redis_url)
    try:
        pong = await client.ping()
    finally:
        await client.aclose()
    if pong is not True:
        return _failed(f"unexpected redis ping response: {pong!r}")
    return _passed()


def _ping_celery_workers() -> dict[str, Any]:
    inspector = celery_app.control.inspect(timeout=CELERY_PING_TIMEOUT_SECONDS)
    if inspector is None:
        return _failed("celery inspector is unavailable")
    replies = inspector.ping() or {}
    if not replies:
        return _failed("no celery workers responded to ping")
    return _passed(workers=len(replies))


async def _probe_celery() -> dict[str, Any]:
    return await asyncio.to_thread(_ping_celery_workers)


async def _guarded(probe: Callable[[], Awaitable[dict[str, Any]]]) -> dict[str, Any]:
    try:
        return await probe()
    except Exception as exc:
        return _failed(exc)


async def _collect_checks() -> dict[str, dict[str, Any]]:
    database, redis, celery = await asyncio.gather(
        _guarded(_probe_database),
        _guarded(_probe_redis),
        _guarded(_probe_celery),
    )
    return {"database": database, "redis": redis, "celery": celery}


def _checks_response(checks: dict[str, dict[str, Any]], *, ok_label: str, failed_label: str) -> JSONResponse:
    healthy = all(check.get("status") == "ok" for check in checks.values())
    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": ok_label if healthy else failed_label, "checks": checks},
    )


@router.get("/live")
async def live() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/health")
async def health() -> JSONResponse:
    return _checks_response(await _collect_checks(), ok_label="ok", failed_label="degraded")


@router.get("/ready")
async def ready() -> JSONResponse:
    return _checks_response(await _collect_checks(), ok_label="ready", failed_label="not_ready")
