"""USD spot prices from CoinGecko's ``simple/price`` endpoint."""

from __future__ import annotations

import asyncio
import logging
import time
from decimal import Decimal

from whale_watcher.models import Asset
from whale_watcher.normalize import decimal_or_zero
from whale_watcher.providers.errors import ProviderError
from whale_watcher.providers.http import JsonHttpClient

logger = logging.getLogger(__name__)

DEFAULT_COINGECKO_PRICE_URL = "https://api.coingecko.com/api/v3/simple/price"
DEFAULT_PRICE_TTL_SECONDS = 30

COINGECKO_IDS: dict[Asset, str] = {
    Asset.ETH: "ethereum",
    Asset.BTC: "bitcoin",
    Asset.SOL: "solana",
    Asset.USDC: "usd-coin",
    Asset.USDT: "tether",
}

# Used when the oracle has never answered, or omits an asset.
FALLBACK_PRICES: dict[Asset, Decimal] = {
    Asset.ETH: Decimal(0),
    Asset.BTC: Decimal(0),
    Asset.SOL: Decimal(0),
    Asset.USDC: Decimal(1),
    Asset.USDT: Decimal(1),
}


class CoinGeckoPriceOracle:
    """Cached USD price table for every asset the feed covers.

    Prices are refreshed at most once per ``ttl_seconds``. A failed refresh
    keeps the last good table, so a flaky oracle never zeroes the feed.
    """

    def __init__(
        self,
        http: JsonHttpClient,
        *,
        url: str = DEFAULT_COINGECKO_PRICE_URL,
        ttl_seconds: float = DEFAULT_PRICE_TTL_SECONDS,
    ) -> None:
        self._http = http
        self._url = url
        self._ttl = ttl_seconds
        self._prices: dict[Asset, Decimal] = dict(FALLBACK_PRICES)
        self._fetched_at: float | None = None
        self._lock = asyncio.Lock()

    @property
    def last_updated(self) -> float | None:
        """Monotonic time of the last successful refresh."""
        return self._fetched_at

    def snapshot(self) -> dict[Asset, Decimal]:
        """Current table without touching the network."""
        return dict(self._prices)

    def _is_fresh(self) -> bool:
        return self._fetched_at is not None and time.monotonic() - self._fetched_at < self._ttl

    async def refresh(self) -> dict[Asset, Decimal]:
        """Fetch prices now, keeping the previous table on failure."""
        params = {"ids": ",".join(COINGECKO_IDS.values()), "vs_currencies": "usd"}
        try:
            data = await self._http.get_json(self._url, params=params)
        except ProviderError as e:
            logger.warning("Price refresh failed, keeping last prices: %s", e)
            return self.snapshot()

        if not isinstance(data, dict):
            logger.warning("Price refresh returned unexpected payload type %s", type(data).__name__)
            return self.snapshot()

        prices: dict[Asset, Decimal] = {}
        for asset, coin_id in COINGECKO_IDS.items():
            entry = data.get(coin_id)
            price = decimal_or_zero(entry.get("usd")) if isinstance(entry, dict) else Decimal(0)
            prices[asset] = price if price > 0 else FALLBACK_PRICES[asset]
        self._prices = prices
        self._fetched_at = time.monotonic()
        logger.debug("Prices refreshed: %s", {a.value: str(p) for a, p in prices.items()})
        return self.snapshot()

    async def get_prices(self) -> dict[Asset, Decimal]:
        """Return the price table, refreshing it when older than the TTL."""
        async with self._lock:
            if not self._is_fresh():
                await self.refresh()
            return self.snapshot()

    async def get_price(self, asset: Asset) -> Decimal:
        prices = await self.get_prices()
        return prices.get(asset, FALLBACK_PRICES.get(asset, Decimal(0)))
