"""
Health check endpoints.
/health always returns 200 so platform healthchecks pass; database and
Redis connectivity are reported but do not fail the response.
"""

from typing import Optional

from fastapi import APIRouter
from fastapi.concurrency import run_in_threadpool
from redis import Redis
from redis.exceptions import RedisError
from sqlalchemy import text

from docfiling.config import settings

router = APIRouter(tags=["health"])


async def _database_ok() -> tuple[bool, Optional[str]]:
    from docfiling.models.database import async_session_factory

    try:
        async with async_session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            return result.scalar() == 1, None
    except Exception as e:
        return False, str(e)[:200]


def _redis_ping() -> bool:
    try:
        return bool(Redis.from_url(settings.REDIS_URL, socket_connect_timeout=2).ping())
    except (RedisError, OSError, ValueError):
        return False


async def _redis_ok() -> bool:
    # redis-py is blocking; keep the ping off the event loop
    return await run_in_threadpool(_redis_ping)


@router.get("/health")
async def health_check():
    """
    Verifies the API is running and tests DB connectivity.
    ALWAYS returns 200.
    """
    db_ok, db_error = await _database_ok()

    response = {
        "status": "healthy" if db_ok else "degraded",
        "version": settings.APP_VERSION,
        "database": "connected" if db_ok else "unreachable",
    }
    if db_error:
        response["database_error"] = db_error

    return response


@router.get("/health/ready")
async def readiness_check():
    """
    Readiness probe: ready only when the database and Redis both answer.
    """
    db_ok, _ = await _database_ok()
    redis_ok = await _redis_ok()
    return {"ready": db_ok and redis_ok, "database": db_ok, "redis": redis_ok}
