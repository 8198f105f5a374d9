"""Tests for the CoinGecko price oracle."""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from whale_watcher.models import Asset
from whale_watcher.providers.errors import ProviderUnavailableError
from whale_watcher.providers.prices import CoinGeckoPriceOracle

COINGECKO_RESPONSE = {
    "ethereum": {"usd": 4000},
    "bitcoin": {"usd": 100000.5},
    "solana": {"usd": 200},
    "usd-coin": {"usd": 0.9998},
    "tether": {"usd": 1.0001},
}


@pytest.fixture
def mock_http() -> AsyncMock:
    http = AsyncMock()
    http.get_json = AsyncMock(return_value=COINGECKO_RESPONSE)
    return http


class TestCoinGeckoPriceOracle:
    @pytest.mark.asyncio
    async def test_parses_prices(self, mock_http) -> None:
        oracle = CoinGeckoPriceOracle(mock_http)
        prices = await oracle.get_prices()

        assert prices[Asset.ETH] == Decimal(4000)
        assert prices[Asset.BTC] == Decimal("100000.5")
        assert prices[Asset.USDC] == Decimal("0.9998")
        params = mock_http.get_json.await_args.kwargs["params"]
        assert params["ids"] == "ethereum,bitcoin,solana,usd-coin,tether"
        assert params["vs_currencies"] == "usd"

    @pytest.mark.asyncio
    async def test_cached_within_ttl(self, mock_http) -> None:
        oracle = CoinGeckoPriceOracle(mock_http, ttl_seconds=60)
        await oracle.get_prices()
        await oracle.get_price(Asset.SOL)
        assert mock_http.get_json.await_count == 1

    @pytest.mark.asyncio
    async def test_defaults_before_first_success(self, mock_http) -> None:
        mock_http.get_json.side_effect = ProviderUnavailableError("HTTP 429", status=429)
        prices = await CoinGeckoPriceOracle(mock_http).get_prices()

        assert prices[Asset.ETH] == Decimal(0)
        assert prices[Asset.USDC] == Decimal(1)
        assert prices[Asset.USDT] == Decimal(1)

    @pytest.mark.asyncio
    async def test_keeps_last_good_on_failure(self, mock_http) -> None:
        oracle = CoinGeckoPriceOracle(mock_http, ttl_seconds=0)
        await oracle.get_prices()
        mock_http.get_json.side_effect = ProviderUnavailableError("timeout")

        prices = await oracle.get_prices()

        assert prices[Asset.ETH] == Decimal(4000)

    @pytest.mark.asyncio
    async def test_missing_asset_falls_back(self, mock_http) -> None:
        mock_http.get_json.return_value = {"ethereum": {"usd": 3500}}
        prices = await CoinGeckoPriceOracle(mock_http).refresh()

        assert prices[Asset.ETH] == Decimal(3500)
        assert prices[Asset.BTC] == Decimal(0)
        assert prices[Asset.USDT] == Decimal(1)
