"""Health check endpoints."""

import logging

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.deps import get_db, get_redis
from app.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


async def _probe_database(db: AsyncSession) -> str:
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:  # noqa: BLE001
        logger.warning("Database health probe failed: %s", e)
        return f"unhealthy: {e}"
    return "healthy"


async def _probe_redis(redis: aioredis.Redis) -> str:
    try:
        await redis.ping()
    except Exception as e:  # noqa: BLE001
        logger.warning("Redis health probe failed: %s", e)
        return f"unhealthy: {e}"
    return "healthy"


@router.get("/health", response_model=HealthResponse)
async def health_check(
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
) -> HealthResponse:
    """
    Report database and settings-cache connectivity.

    Always answers 200; a failing dependency flips ``status`` to unhealthy.
    """
    checks = {"database": await _probe_database(db), "redis": await _probe_redis(redis)}
    ok = all(value == "healthy" for value in checks.values())
    return HealthResponse(
        status="healthy" if ok else "unhealthy",
        version=settings.version,
        environment=settings.environment,
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """Liveness probe for container orchestration."""
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(db: AsyncSession = Depends(get_db)) -> dict[str, str]:
    """Readiness probe: the database must answer before traffic is routed."""
    await db.execute(text("SELECT 1"))
    return {"status": "ready"}
