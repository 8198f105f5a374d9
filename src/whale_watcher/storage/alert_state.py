"""Set of transaction hashes that already triggered an alert.

The set only grows during normal operation. ``mark_alerted`` is the single
atomic claim step: it reports whether the hash was newly added, so two
overlapping poll cycles can never both alert on the same transfer.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from redis.asyncio import Redis
from redis.exceptions import RedisError

from whale_watcher.storage.errors import StorageError

logger = logging.getLogger(__name__)

ALERTED_HASHES_KEY = "whale_watcher_alerted_hashes"


class AlertStateStore(ABC):
    """Persistence for already-alerted transaction hashes."""

    @abstractmethod
    async def load(self) -> set[str]:
        """Return every hash alerted so far."""

    @abstractmethod
    async def mark_alerted(self, tx_hash: str) -> bool:
        """Record a hash. Returns True only if it was not already present."""

    @abstractmethod
    async def reset(self) -> None:
        """Forget every alerted hash."""


class InMemoryAlertStateStore(AlertStateStore):
    def __init__(self, initial: set[str] | None = None) -> None:
        self._hashes: set[str] = set(initial or ())

    async def load(self) -> set[str]:
        return set(self._hashes)

    async def mark_alerted(self, tx_hash: str) -> bool:
        # no await between the check and the add
        if tx_hash in self._hashes:
            return False
        self._hashes.add(tx_hash)
        return True

    async def reset(self) -> None:
        self._hashes.clear()


class RedisAlertStateStore(AlertStateStore):
    """Hashes kept in a Redis set; ``SADD`` doubles as the atomic claim."""

    def __init__(self, redis: Redis, *, key: str = ALERTED_HASHES_KEY) -> None:
        self._redis = redis
        self._key = key

    async def load(self) -> set[str]:
        try:
            members = await self._redis.smembers(self._key)
        except RedisError as e:
            raise StorageError(f"Failed to read alert state: {e}") from e
        return {m.decode() if isinstance(m, bytes) else str(m) for m in members}

    async def mark_alerted(self, tx_hash: str) -> bool:
        try:
            added = await self._redis.sadd(self._key, tx_hash)
        except RedisError as e:
            raise StorageError(f"Failed to record alerted hash {tx_hash}: {e}") from e
        return bool(added)

    async def reset(self) -> None:
        try:
            await self._redis.delete(self._key)
        except RedisError as e:
            raise StorageError(f"Failed to reset alert state: {e}") from e
        logger.info("Alert state reset")
