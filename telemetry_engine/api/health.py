"""
Health check endpoint that probes DB and Redis connectivity.

Returns HTTP 200 when both dependencies answer, HTTP 503 otherwise. A
Redis outage only degrades status reads (the cache is best-effort); a
database outage stops ingestion.

CHANGELOG:
- 2026-10-15: Initial creation (STORY-109)

TODO:
- None
"""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from telemetry_engine.cache.redis_client import get_redis
from telemetry_engine.db.session import get_async_session

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


async def _check_db() -> str:
    """Probe the database with SELECT 1; return "ok" or "error"."""
    try:
        async for session in get_async_session():
            await session.execute(text("SELECT 1"))
            return "ok"
    except Exception:
        logger.warning("Health check: DB probe failed", exc_info=True)
        return "error"
    return "error"  # pragma: no cover


async def _check_redis() -> str:
    """Probe Redis with PING; return "ok" or "error"."""
    try:
        client = await get_redis()
        try:
            await client.ping()
            return "ok"
        finally:
            await client.aclose()
    except Exception:
        logger.warning("Health check: Redis probe failed", exc_info=True)
        return "error"


@router.get("/health")
async def health_check() -> JSONResponse:
    """Report overall status plus db and redis probe results."""
    checks = {"db": await _check_db(), "redis": await _check_redis()}
    healthy = all(value == "ok" for value in checks.values())
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={"status": "ok" if healthy else "degraded", **checks},
    )
