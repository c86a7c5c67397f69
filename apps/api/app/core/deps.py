"""Dependency injection for FastAPI routes."""

from collections.abc import AsyncGenerator
from typing import Annotated

import redis.asyncio as aioredis
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import CurrentAdmin
from app.core.config import settings
from app.core.database import get_async_session
from app.integrations.redemption.client import RedemptionClient, RedemptionExecutor
from app.schemas.account_recovery import AccountRecoverySettings
from app.services.account_recovery.orchestrator import AccountRecoveryService
from app.services.account_recovery.selector import CandidateClaims, RecoveryCandidateSelector
from app.services.account_recovery.settings import RecoverySettingsService
from app.services.account_recovery.warranty import OrderDeadlineResolver
from app.services.keyed_lock import KeyedLockRegistry
from app.services.settings_cache import SettingsCache

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped database session."""
    async for session in get_async_session():
        yield session


# Shared Redis connection pool
_redis_pool: aioredis.ConnectionPool | None = None


def _get_redis_pool() -> aioredis.ConnectionPool:
    global _redis_pool  # noqa: PLW0603
    if _redis_pool is None:
        _redis_pool = aioredis.ConnectionPool.from_url(
            str(settings.redis_url), decode_responses=True
        )
    return _redis_pool


async def close_redis_pool() -> None:
    """Disconnect the shared Redis pool (application shutdown)."""
    global _redis_pool  # noqa: PLW0603
    if _redis_pool is not None:
        await _redis_pool.aclose()
        _redis_pool = None


async def get_redis() -> AsyncGenerator[aioredis.Redis, None]:
    """Yield a Redis client from the shared connection pool."""
    pool = _get_redis_pool()
    r = aioredis.Redis(connection_pool=pool)
    try:
        yield r
    finally:
        await r.aclose()


# Process-wide recovery coordination state
_lock_registry = KeyedLockRegistry()
_candidate_claims = CandidateClaims()


def get_lock_registry() -> KeyedLockRegistry:
    """Keyed lock registry shared by every request in this process."""
    return _lock_registry


def get_candidate_claims() -> CandidateClaims:
    """In-flight substitute claims shared by every request in this process."""
    return _candidate_claims


def get_redemption_executor() -> RedemptionExecutor:
    return RedemptionClient()


def get_settings_cache(redis: aioredis.Redis = Depends(get_redis)) -> SettingsCache:
    return SettingsCache(redis, ttl_seconds=settings.settings_cache_ttl_seconds)


def get_recovery_settings_service(
    db: AsyncSession = Depends(get_db),
    cache: SettingsCache = Depends(get_settings_cache),
) -> RecoverySettingsService:
    return RecoverySettingsService(db, cache, settings)


async def get_recovery_settings(
    service: RecoverySettingsService = Depends(get_recovery_settings_service),
) -> AccountRecoverySettings:
    """Current recovery settings (cached)."""
    return await service.get()


def get_candidate_selector(
    db: AsyncSession = Depends(get_db),
    recovery_settings: AccountRecoverySettings = Depends(get_recovery_settings),
    claims: CandidateClaims = Depends(get_candidate_claims),
) -> RecoveryCandidateSelector:
    return RecoveryCandidateSelector(
        db,
        capacity_limit=recovery_settings.capacity_limit,
        timezone=settings.business_timezone,
        prefer_non_today=recovery_settings.prefer_non_today,
        scan_limit=settings.recovery_selector_scan_limit,
        claims=claims,
    )


def get_account_recovery_service(
    db: AsyncSession = Depends(get_db),
    recovery_settings: AccountRecoverySettings = Depends(get_recovery_settings),
    selector: RecoveryCandidateSelector = Depends(get_candidate_selector),
    locks: KeyedLockRegistry = Depends(get_lock_registry),
    executor: RedemptionExecutor = Depends(get_redemption_executor),
) -> AccountRecoveryService:
    """Orchestrator wired with this process's lock registry and candidate claims."""
    return AccountRecoveryService(
        db,
        locks=locks,
        selector=selector,
        executor=executor,
        deadlines=OrderDeadlineResolver(
            db,
            service_days=settings.purchase_service_days,
            no_warranty_service_days=settings.no_warranty_service_days,
        ),
        window_days=recovery_settings.window_days,
    )


RecoverySettingsDep = Annotated[AccountRecoverySettings, Depends(get_recovery_settings)]
AccountRecoveryServiceDep = Annotated[
    AccountRecoveryService, Depends(get_account_recovery_service)
]


__all__ = [
    "AccountRecoveryServiceDep",
    "close_redis_pool",
    "CurrentAdmin",
    "RecoverySettingsDep",
    "get_account_recovery_service",
    "get_candidate_claims",
    "get_candidate_selector",
    "get_db",
    "get_lock_registry",
    "get_recovery_settings",
    "get_recovery_settings_service",
    "get_redemption_executor",
    "get_redis",
    "get_settings_cache",
]
