"""Tests for the settings cache and persisted recovery settings."""

import json

import fakeredis.aioredis
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings
from app.models.system_config import SystemConfig
from app.schemas.account_recovery import AccountRecoverySettingsUpdate
from app.services.account_recovery.settings import CONFIG_KEY, RecoverySettingsService
from app.services.settings_cache import SettingsCache


class TestSettingsCache:
    async def test_round_trip_with_ttl(self, fake_redis: fakeredis.aioredis.FakeRedis) -> None:
        cache = SettingsCache(fake_redis, ttl_seconds=30)

        assert await cache.get_json("demo") is None
        await cache.set_json("demo", {"a": 1})

        assert await cache.get_json("demo") == {"a": 1}
        ttl = await fake_redis.ttl("settings:demo")
        assert 0 < ttl <= 30

    async def test_invalidate(self, fake_redis: fakeredis.aioredis.FakeRedis) -> None:
        cache = SettingsCache(fake_redis, ttl_seconds=30)
        await cache.set_json("demo", {"a": 1})

        await cache.invalidate("demo")

        assert await cache.get_json("demo") is None

    async def test_corrupt_entry_is_discarded(
        self, fake_redis: fakeredis.aioredis.FakeRedis
    ) -> None:
        await fake_redis.set("settings:demo", "{not json")
        cache = SettingsCache(fake_redis, ttl_seconds=30)

        assert await cache.get_json("demo") is None
        assert await fake_redis.get("settings:demo") is None


class TestRecoverySettingsService:
    def _service(
        self,
        db_session: AsyncSession,
        fake_redis: fakeredis.aioredis.FakeRedis,
        **config: object,
    ) -> RecoverySettingsService:
        return RecoverySettingsService(
            db_session, SettingsCache(fake_redis, ttl_seconds=30), Settings(**config)
        )

    async def test_defaults_come_from_environment(
        self, db_session: AsyncSession, fake_redis: fakeredis.aioredis.FakeRedis
    ) -> None:
        service = self._service(
            db_session,
            fake_redis,
            account_recovery_window_days=120,
            recovery_capacity_limit=4,
        )

        current = await service.get()

        assert current.window_days == 90
        assert current.capacity_limit == 4
        assert current.prefer_non_today is True
        assert json.loads(await fake_redis.get(f"settings:{CONFIG_KEY}"))["capacity_limit"] == 4

    async def test_update_persists_and_invalidates(
        self, db_session: AsyncSession, fake_redis: fakeredis.aioredis.FakeRedis
    ) -> None:
        service = self._service(db_session, fake_redis)
        await service.get()

        updated = await service.update(AccountRecoverySettingsUpdate(prefer_non_today=False))

        assert updated.prefer_non_today is False
        assert updated.window_days == 30
        assert await fake_redis.get(f"settings:{CONFIG_KEY}") is None
        row = (
            await db_session.execute(select(SystemConfig).where(SystemConfig.key == CONFIG_KEY))
        ).scalar_one()
        assert row.value == {"window_days": 30, "capacity_limit": 6, "prefer_non_today": False}
        assert (await service.get()).prefer_non_today is False

    async def test_second_update_merges_over_stored_value(
        self, db_session: AsyncSession, fake_redis: fakeredis.aioredis.FakeRedis
    ) -> None:
        service = self._service(db_session, fake_redis)
        await service.update(AccountRecoverySettingsUpdate(window_days=10))
        updated = await service.update(AccountRecoverySettingsUpdate(capacity_limit=3))

        assert updated.window_days == 10
        assert updated.capacity_limit == 3

    async def test_invalid_stored_document_falls_back_to_defaults(
        self, db_session: AsyncSession, fake_redis: fakeredis.aioredis.FakeRedis
    ) -> None:
        db_session.add(SystemConfig(key=CONFIG_KEY, value={"window_days": 0}))
        await db_session.commit()

        current = await self._service(db_session, fake_redis).get()

        assert current.window_days == 30
