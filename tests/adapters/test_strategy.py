"""Tests for the ordered strategy chain and cursor pagination."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from whale_watcher.adapters.strategy import Strategy, StrategyChain, paginate
from whale_watcher.providers.errors import ProviderUnavailableError


class TestStrategyChain:
    @pytest.mark.asyncio
    async def test_stops_after_sufficient_primary(self, transfer_factory) -> None:
        primary = AsyncMock(return_value=[transfer_factory("a", 10)])
        fallback = AsyncMock(return_value=[transfer_factory("b", 20)])

        outcome = await StrategyChain("t", [Strategy("p", primary), Strategy("f", fallback)]).run()

        assert [t.tx_hash for t in outcome.items] == ["a"]
        fallback.assert_not_called()
        assert outcome.attempted == ["p"]

    @pytest.mark.asyncio
    async def test_thin_primary_merged_with_fallback(self, transfer_factory) -> None:
        """Fewer than min_results triggers the fallback and both are kept, first-seen wins."""
        primary = AsyncMock(return_value=[transfer_factory("a", 10)])
        fallback = AsyncMock(return_value=[transfer_factory("a", 99), transfer_factory("b", 20)])

        outcome = await StrategyChain(
            "t", [Strategy("p", primary), Strategy("f", fallback)], min_results=3
        ).run()

        assert [t.tx_hash for t in outcome.items] == ["a", "b"]
        assert outcome.items[0].usd_value == 10

    @pytest.mark.asyncio
    async def test_failure_falls_through(self, transfer_factory) -> None:
        primary = AsyncMock(side_effect=ProviderUnavailableError("HTTP 500", status=500))
        fallback = AsyncMock(return_value=[transfer_factory("b", 20)])

        outcome = await StrategyChain("t", [Strategy("p", primary), Strategy("f", fallback)]).run()

        assert [t.tx_hash for t in outcome.items] == ["b"]
        assert outcome.failed == ["p"]

    @pytest.mark.asyncio
    async def test_unexpected_error_contained(self) -> None:
        broken = AsyncMock(side_effect=KeyError("transactions"))
        outcome = await StrategyChain("t", [Strategy("p", broken)]).run()
        assert outcome.items == []
        assert outcome.failed == ["p"]

    @pytest.mark.asyncio
    async def test_all_empty(self) -> None:
        a = AsyncMock(return_value=[])
        b = AsyncMock(return_value=[])
        outcome = await StrategyChain("t", [Strategy("a", a), Strategy("b", b)]).run()
        assert outcome.items == []
        assert outcome.attempted == ["a", "b"]


class TestPaginate:
    @pytest.mark.asyncio
    async def test_follows_cursor_until_exhausted(self) -> None:
        pages = {None: ([1, 2], "k1"), "k1": ([3], None)}

        async def fetch(cursor):
            return pages[cursor]

        assert await paginate(fetch, max_pages=5) == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_caps_pages(self) -> None:
        fetch = AsyncMock(return_value=([1], "more"))
        result = await paginate(fetch, max_pages=3)
        assert result == [1, 1, 1]
        assert fetch.await_count == 3
