"""Persisted account recovery settings with a shared cache."""

import logging
from typing import Any

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings
from app.models.system_config import SystemConfig
from app.schemas.account_recovery import AccountRecoverySettings, AccountRecoverySettingsUpdate
from app.services.settings_cache import SettingsCache

logger = logging.getLogger(__name__)

CONFIG_KEY = "account_recovery"


def default_recovery_settings(config: Settings) -> AccountRecoverySettings:
    """Environment-derived defaults used until an admin saves settings."""
    return AccountRecoverySettings(
        window_days=min(90, config.account_recovery_window_days),
        capacity_limit=config.recovery_capacity_limit,
        prefer_non_today=True,
    )


class RecoverySettingsService:
    """Reads and writes the ``account_recovery`` system config document."""

    def __init__(self, db: AsyncSession, cache: SettingsCache, config: Settings) -> None:
        self.db = db
        self.cache = cache
        self.config = config

    def _merge(self, stored: dict[str, Any] | None) -> AccountRecoverySettings:
        defaults = default_recovery_settings(self.config).model_dump()
        try:
            return AccountRecoverySettings.model_validate({**defaults, **(stored or {})})
        except ValidationError:
            logger.warning("Stored %s settings are invalid; using defaults", CONFIG_KEY)
            return AccountRecoverySettings.model_validate(defaults)

    async def _load_row(self) -> SystemConfig | None:
        stmt = select(SystemConfig).where(SystemConfig.key == CONFIG_KEY)
        return (await self.db.execute(stmt)).scalar_one_or_none()

    async def get(self) -> AccountRecoverySettings:
        cached = await self.cache.get_json(CONFIG_KEY)
        if cached is not None:
            return self._merge(cached)

        row = await self._load_row()
        current = self._merge(row.value if row is not None else None)
        await self.cache.set_json(CONFIG_KEY, current.model_dump())
        return current

    async def update(self, changes: AccountRecoverySettingsUpdate) -> AccountRecoverySettings:
        row = await self._load_row()
        current = self._merge(row.value if row is not None else None)
        updated = current.model_copy(update=changes.model_dump(exclude_none=True))
        # Re-validate so bounds hold for the merged document
        updated = AccountRecoverySettings.model_validate(updated.model_dump())

        if row is None:
            self.db.add(SystemConfig(key=CONFIG_KEY, value=updated.model_dump()))
        else:
            row.value = updated.model_dump()
        await self.db.commit()
        await self.cache.invalidate(CONFIG_KEY)
        logger.info("Updated %s settings: %s", CONFIG_KEY, updated.model_dump())
        return updated
