"""User-editable watch settings and where they persist."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

from whale_watcher.models import AdapterQuery, Asset
from whale_watcher.storage.errors import StorageError

logger = logging.getLogger(__name__)

SETTINGS_KEY = "whale_watcher_settings_v1"


class WatchSettings(BaseModel):
    """What to watch and when to alert.

    Unknown keys in a stored document are ignored so older or newer clients
    can share the same key.
    """

    model_config = ConfigDict(extra="ignore")

    enable_eth: bool = True
    enable_erc20: bool = True
    enable_btc: bool = True
    enable_sol: bool = True
    sol_stablecoin_only: bool = False
    min_usd: Decimal = Field(default=Decimal("25000"), ge=0)
    alert_enabled: bool = True
    alert_usd: Decimal = Field(default=Decimal("10000000"), ge=0)
    alert_webhook: str = ""

    def enabled_adapters(self) -> set[str]:
        """Adapter names switched on by the per-chain flags."""
        flags = {
            "eth": self.enable_eth,
            "erc20": self.enable_erc20,
            "btc": self.enable_btc,
            "sol": self.enable_sol,
        }
        return {name for name, on in flags.items() if on}

    @property
    def alerts_active(self) -> bool:
        return self.alert_enabled and bool(self.alert_webhook.strip())

    def to_query(self, prices: Mapping[Asset, Decimal]) -> AdapterQuery:
        return AdapterQuery(
            min_usd=self.min_usd,
            prices=dict(prices),
            stablecoin_only=self.sol_stablecoin_only,
        )


def parse_settings(raw: str | bytes | None) -> WatchSettings:
    """Decode a stored document, falling back to defaults when absent or corrupt."""
    if not raw:
        return WatchSettings()
    try:
        return WatchSettings.model_validate_json(raw)
    except ValidationError as e:
        logger.warning("Stored settings are invalid, using defaults: %s", e.errors()[:1])
        return WatchSettings()


class SettingsStore(ABC):
    """Persistence for WatchSettings."""

    @abstractmethod
    async def load(self) -> WatchSettings: ...

    @abstractmethod
    async def save(self, settings: WatchSettings) -> None: ...


class InMemorySettingsStore(SettingsStore):
    def __init__(self, initial: WatchSettings | None = None) -> None:
        self._settings = initial or WatchSettings()

    async def load(self) -> WatchSettings:
        return self._settings.model_copy()

    async def save(self, settings: WatchSettings) -> None:
        self._settings = settings.model_copy()


class RedisSettingsStore(SettingsStore):
    """Settings kept as one JSON document under a single Redis key."""

    def __init__(self, redis: Redis, *, key: str = SETTINGS_KEY) -> None:
        self._redis = redis
        self._key = key

    async def load(self) -> WatchSettings:
        try:
            raw = await self._redis.get(self._key)
        except RedisError as e:
            raise StorageError(f"Failed to read settings: {e}") from e
        return parse_settings(raw)

    async def save(self, settings: WatchSettings) -> None:
        try:
            await self._redis.set(self._key, settings.model_dump_json())
        except RedisError as e:
            raise StorageError(f"Failed to write settings: {e}") from e
