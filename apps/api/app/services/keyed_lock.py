"""Keyed mutual exclusion for per-entity critical sections."""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from app.core.logging_config import bound, recovery_key_var

logger = logging.getLogger(__name__)


class _Entry:
    __slots__ = ("lock", "refs")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.refs = 0


class KeyedLockRegistry:
    """Map of key -> asyncio.Lock with reference counting.

    Waiters on the same key are served in arrival order (asyncio.Lock is FIFO).
    An entry is dropped once nobody holds or waits on it, so the registry
    does not grow with the number of keys ever used.
    """

    def __init__(self) -> None:
        self._entries: dict[str, _Entry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def is_locked(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.lock.locked()

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Hold the lock for ``key`` for the duration of the block.

        The lock is released when the block exits, whether it returns,
        raises, or is cancelled while waiting.
        """
        entry = self._entries.get(key)
        if entry is None:
            entry = _Entry()
            self._entries[key] = entry
        entry.refs += 1
        try:
            await entry.lock.acquire()
            try:
                with bound(recovery_key_var, key):
                    logger.debug("Acquired lock %s", key)
                    yield
            finally:
                entry.lock.release()
                logger.debug("Released lock %s", key)
        finally:
            entry.refs -= 1
            if entry.refs == 0 and self._entries.get(key) is entry:
                del self._entries[key]


def recovery_lock_key(original_code_id: int) -> str:
    """Lock key guarding recovery of one original redemption."""
    return f"account-recovery:{original_code_id}"
