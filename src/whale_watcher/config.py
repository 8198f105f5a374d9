"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for Whale Watcher,
loading and validating environment variables at startup. User-editable watch
settings (thresholds, enabled chains, webhook) live in the settings store, not
here; see ``whale_watcher.storage.settings_store``.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"

DEFAULT_ETH_RPC_URLS = (
    "https://cloudflare-eth.com",
    "https://ethereum-rpc.publicnode.com",
    "https://eth.llamarpc.com",
    "https://rpc.ankr.com/eth",
)


def _validate_http_url(v: str) -> str:
    if not v.startswith(("http://", "https://")):
        raise ValueError("URL must be an HTTP(S) endpoint")
    return v.rstrip("/")


class RedisSettings(BaseSettings):
    """Redis connection settings (settings and alert-state stores)."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str | None = Field(
        default=None,
        alias="REDIS_URL",
        description="Redis connection string; unset keeps stores in memory",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Validate Redis URL format."""
        if v is None:
            return v
        if not v.startswith(("redis://", "rediss://")):
            raise ValueError("REDIS_URL must start with redis:// or rediss://")
        return v

    @property
    def enabled(self) -> bool:
        return self.url is not None


class ProviderSettings(BaseSettings):
    """Indexer keys and public endpoints."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    alchemy_eth_mainnet_key: SecretStr | None = Field(
        default=None,
        alias="ALCHEMY_ETH_MAINNET_KEY",
        description="Alchemy key for Ethereum asset-transfer indexing",
    )
    helius_api_key: SecretStr | None = Field(
        default=None,
        alias="HELIUS_API_KEY",
        description="Helius key for Solana enhanced-transaction indexing",
    )
    eth_rpc_urls: Annotated[tuple[str, ...], NoDecode] = Field(
        default=DEFAULT_ETH_RPC_URLS,
        alias="ETH_RPC_URLS",
        description="Public Ethereum RPC endpoints, tried in order (comma-separated)",
    )
    solana_rpc_url: str = Field(
        default="https://api.mainnet-beta.solana.com",
        alias="SOLANA_RPC_URL",
        description="Public Solana JSON-RPC endpoint",
    )
    mempool_api_url: str = Field(
        default="https://mempool.space/api",
        alias="MEMPOOL_API_URL",
        description="mempool.space-compatible Bitcoin explorer API",
    )
    coingecko_price_url: str = Field(
        default="https://api.coingecko.com/api/v3/simple/price",
        alias="COINGECKO_PRICE_URL",
        description="CoinGecko simple price endpoint",
    )

    @field_validator("eth_rpc_urls", mode="before")
    @classmethod
    def _parse_eth_rpc_urls(cls, v: object) -> tuple[str, ...]:
        if v is None:
            raise ValueError("ETH_RPC_URLS must be set")
        if isinstance(v, str):
            parts = tuple(p.strip() for p in v.split(",") if p.strip())
        elif isinstance(v, (list, tuple)):
            parts = tuple(str(x) for x in v)
        else:
            raise TypeError("Invalid ETH_RPC_URLS type")
        if not parts:
            raise ValueError("ETH_RPC_URLS must list at least one endpoint")
        return tuple(_validate_http_url(p) for p in parts)

    @field_validator("solana_rpc_url", "mempool_api_url", "coingecko_price_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        return _validate_http_url(v)

    @property
    def has_alchemy(self) -> bool:
        return bool(self.alchemy_eth_mainnet_key and self.alchemy_eth_mainnet_key.get_secret_value())

    @property
    def has_helius(self) -> bool:
        return bool(self.helius_api_key and self.helius_api_key.get_secret_value())


class ScanSettings(BaseSettings):
    """Provider window, pagination and chunking bounds."""

    model_config = SettingsConfigDict(env_prefix="SCAN_", extra="ignore")

    indexer_lookback_blocks: int = Field(
        default=30,
        alias="SCAN_INDEXER_LOOKBACK_BLOCKS",
        ge=1,
        le=100_000,
        description="Ethereum blocks behind head queried through the indexer",
    )
    indexer_max_pages: int = Field(
        default=3,
        alias="SCAN_INDEXER_MAX_PAGES",
        ge=1,
        le=50,
        description="Maximum indexer pages followed per query",
    )
    min_results: int = Field(
        default=1,
        alias="SCAN_MIN_RESULTS",
        ge=0,
        le=1000,
        description="Primary results below this count trigger the fallback merge",
    )
    eth_scan_blocks: int = Field(
        default=20,
        alias="SCAN_ETH_SCAN_BLOCKS",
        ge=1,
        le=5000,
        description=(
            "Blocks scanned one-by-one on a public node for native ETH; the scan must "
            "finish within POLL_ADAPTER_TIMEOUT_SECONDS"
        ),
    )
    erc20_scan_blocks: int = Field(
        default=2500,
        alias="SCAN_ERC20_SCAN_BLOCKS",
        ge=1,
        le=500_000,
        description="Block window for stablecoin Transfer log scans",
    )
    logs_chunk_size_blocks: int = Field(
        default=1000,
        alias="SCAN_LOGS_CHUNK_SIZE_BLOCKS",
        ge=1,
        le=100_000,
        description="Block chunk size for eth_getLogs scans",
    )
    btc_mempool_tx_limit: int = Field(
        default=100,
        alias="SCAN_BTC_MEMPOOL_TX_LIMIT",
        ge=1,
        le=5000,
        description="Mempool transaction ids fetched individually",
    )
    btc_recent_blocks: int = Field(
        default=3,
        alias="SCAN_BTC_RECENT_BLOCKS",
        ge=1,
        le=20,
        description="Confirmed blocks scanned by the last BTC strategy",
    )
    sol_slots_to_scan: int = Field(
        default=4,
        alias="SCAN_SOL_SLOTS_TO_SCAN",
        ge=1,
        le=200,
        description="Most recent Solana slots decoded by the raw scan",
    )


class PollSettings(BaseSettings):
    """Polling cadence and timeouts."""

    model_config = SettingsConfigDict(env_prefix="POLL_", extra="ignore")

    interval_seconds: int = Field(
        default=45,
        alias="POLL_INTERVAL_SECONDS",
        ge=5,
        le=3600,
        description="Seconds between poll cycles",
    )
    price_refresh_seconds: int = Field(
        default=30,
        alias="POLL_PRICE_REFRESH_SECONDS",
        ge=5,
        le=3600,
        description="Seconds between price oracle refreshes",
    )
    adapter_timeout_seconds: float = Field(
        default=25.0,
        alias="POLL_ADAPTER_TIMEOUT_SECONDS",
        gt=0,
        le=600,
        description="Wall-clock budget per adapter per cycle",
    )
    request_timeout_seconds: float = Field(
        default=10.0,
        alias="POLL_REQUEST_TIMEOUT_SECONDS",
        gt=0,
        le=120,
        description="Timeout for a single provider request",
    )
    webhook_timeout_seconds: float = Field(
        default=5.0,
        alias="POLL_WEBHOOK_TIMEOUT_SECONDS",
        gt=0,
        le=60,
        description="Timeout for a single webhook POST",
    )
    feed_limit: int = Field(
        default=50,
        alias="POLL_FEED_LIMIT",
        ge=1,
        le=1000,
        description="Maximum transfers kept in the merged feed",
    )


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from whale_watcher.config import get_settings

        settings = get_settings()
        print(settings.providers.eth_rpc_urls)
        print(settings.log_level)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    # NOTE: Each nested BaseSettings must be given the same env_file, otherwise it
    # will only read from the process environment (and ignore `.env`).
    redis: RedisSettings = Field(
        default_factory=lambda: RedisSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    providers: ProviderSettings = Field(
        default_factory=lambda: ProviderSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    scan: ScanSettings = Field(
        default_factory=lambda: ScanSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    poll: PollSettings = Field(
        default_factory=lambda: PollSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )
    dry_run: bool = Field(
        default=False,
        alias="DRY_RUN",
        description="Run without posting webhook alerts",
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Get a summary of settings with secrets redacted."""
        return {
            "redis_url": self._redact_url(self.redis.url) if self.redis.url else "(not set)",
            "providers": {
                "alchemy": "(set)" if self.providers.has_alchemy else "(not set)",
                "helius": "(set)" if self.providers.has_helius else "(not set)",
                "eth_rpc_urls": ", ".join(self.providers.eth_rpc_urls),
                "solana_rpc_url": self.providers.solana_rpc_url,
                "mempool_api_url": self.providers.mempool_api_url,
            },
            "poll": {
                "interval_seconds": str(self.poll.interval_seconds),
                "adapter_timeout_seconds": str(self.poll.adapter_timeout_seconds),
                "feed_limit": str(self.poll.feed_limit),
            },
            "log_level": self.log_level,
            "dry_run": str(self.dry_run),
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact password from URL if present."""
        if "@" in url and "://" in url:
            protocol_end = url.index("://") + 3
            at_pos = url.index("@")
            creds_part = url[protocol_end:at_pos]
            if ":" in creds_part:
                username = creds_part.split(":")[0]
                return f"{url[:protocol_end]}{username}:***@{url[at_pos + 1 :]}"
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Raises:
        ValidationError: If environment variables have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
