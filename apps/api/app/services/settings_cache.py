"""Redis-backed cache for persisted settings documents."""

import json
import logging
from typing import Any

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

SETTINGS_CACHE_PREFIX = "settings"


class SettingsCache:
    """TTL cache for JSON settings documents keyed by config name.

    The TTL is fixed at construction. Writers must call ``invalidate`` after
    persisting a new value so readers in every process see it on their next
    lookup instead of after expiry.
    """

    def __init__(self, redis: aioredis.Redis, ttl_seconds: int) -> None:
        self.redis = redis
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def _key(name: str) -> str:
        return f"{SETTINGS_CACHE_PREFIX}:{name}"

    async def get_json(self, name: str) -> dict[str, Any] | None:
        cached = await self.redis.get(self._key(name))
        if cached is None:
            return None
        try:
            value = json.loads(cached)
        except json.JSONDecodeError:
            logger.warning("Discarding corrupt settings cache entry %s", name)
            await self.invalidate(name)
            return None
        return value if isinstance(value, dict) else None

    async def set_json(self, name: str, value: dict[str, Any]) -> None:
        await self.redis.set(self._key(name), json.dumps(value), ex=self.ttl_seconds)

    async def invalidate(self, name: str) -> None:
        await self.redis.delete(self._key(name))
