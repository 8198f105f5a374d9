"""Tests for the BTC adapter's three explorer strategies."""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from whale_watcher.adapters.btc import BtcAdapter, BtcAdapterConfig, gross_output_sats
from whale_watcher.models import AdapterQuery, Asset, Chain
from whale_watcher.providers.errors import ProviderUnavailableError

ONE_BTC = 100_000_000


def http_500() -> ProviderUnavailableError:
    return ProviderUnavailableError("GET https://mempool.space/api returned HTTP 500", status=500)


@pytest.fixture
def mempool() -> AsyncMock:
    client = AsyncMock()
    client.get_mempool_txids = AsyncMock(return_value=[])
    client.get_tx = AsyncMock()
    client.get_mempool_recent = AsyncMock(return_value=[])
    client.get_blocks = AsyncMock(return_value=[])
    client.get_block_txs = AsyncMock(return_value=[])
    return client


class TestGrossOutput:
    def test_sums_outputs(self) -> None:
        assert gross_output_sats({"vout": [{"value": 10}, {"value": 32}]}) == 42

    def test_no_outputs(self) -> None:
        assert gross_output_sats({}) == 0


class TestBtcStrategies:
    @pytest.mark.asyncio
    async def test_mempool_txids_first(self, mempool, sample_prices) -> None:
        mempool.get_mempool_txids.return_value = ["t1", "t2"]
        mempool.get_tx.side_effect = lambda txid: {
            "txid": txid,
            "vout": [{"value": 3 * ONE_BTC}, {"value": ONE_BTC}] if txid == "t1" else [{"value": 1000}],
            "status": {"confirmed": False},
        }
        adapter = BtcAdapter(mempool)

        result = await adapter.fetch(AdapterQuery(min_usd=Decimal(100_000), prices=sample_prices))

        assert [t.tx_hash for t in result.items] == ["t1"]
        transfer = result.items[0]
        assert transfer.chain == Chain.BITCOIN
        assert transfer.asset == Asset.BTC
        assert transfer.amount == Decimal(4)
        assert transfer.usd_value == Decimal(400_000)
        assert (transfer.from_address, transfer.to_address) == ("mempool", "multiple")
        mempool.get_mempool_recent.assert_not_called()

    @pytest.mark.asyncio
    async def test_txid_limit_and_single_failure(self, mempool, sample_prices) -> None:
        mempool.get_mempool_txids.return_value = ["a", "b", "c", "d"]

        def get_tx(txid: str) -> dict:
            if txid == "a":
                raise http_500()
            return {"txid": txid, "vout": [{"value": ONE_BTC}], "status": {"block_time": 1_700_000_000}}

        mempool.get_tx.side_effect = get_tx
        adapter = BtcAdapter(mempool, config=BtcAdapterConfig(mempool_tx_limit=3))

        result = await adapter.fetch(AdapterQuery(min_usd=Decimal(0), prices=sample_prices))

        assert sorted(t.tx_hash for t in result.items) == ["b", "c"]
        assert mempool.get_tx.await_count == 3
        assert all(t.timestamp == 1_700_000_000 for t in result.items)

    @pytest.mark.asyncio
    async def test_recent_used_when_txids_empty(self, mempool, sample_prices) -> None:
        mempool.get_mempool_recent.return_value = [{"txid": "r1", "value": 2 * ONE_BTC, "fee": 500}]
        adapter = BtcAdapter(mempool)

        result = await adapter.fetch(AdapterQuery(min_usd=Decimal(0), prices=sample_prices))

        assert [t.tx_hash for t in result.items] == ["r1"]
        mempool.get_blocks.assert_not_called()

    @pytest.mark.asyncio
    async def test_all_strategies_fail_returns_empty(self, mempool, sample_prices) -> None:
        """HTTP 500 on the first strategy falls through to the second and third, then empty."""
        mempool.get_mempool_txids.side_effect = http_500()
        mempool.get_mempool_recent.side_effect = http_500()
        mempool.get_blocks.side_effect = http_500()
        adapter = BtcAdapter(mempool)

        result = await adapter.fetch(AdapterQuery(min_usd=Decimal(0), prices=sample_prices))

        assert result.items == []
        assert result.note is None
        mempool.get_mempool_txids.assert_awaited_once()
        mempool.get_mempool_recent.assert_awaited_once()
        mempool.get_blocks.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_recent_blocks_last(self, mempool, sample_prices) -> None:
        mempool.get_mempool_txids.side_effect = http_500()
        mempool.get_mempool_recent.side_effect = http_500()
        mempool.get_blocks.return_value = [
            {"id": "blk1", "height": 3, "timestamp": 1_700_000_300},
            {"id": "blk2", "height": 2, "timestamp": 1_700_000_200},
            {"id": "blk3", "height": 1, "timestamp": 1_700_000_100},
            {"id": "blk4", "height": 0, "timestamp": 1_700_000_000},
        ]

        def block_txs(block_id: str) -> list[dict]:
            if block_id == "blk2":
                raise http_500()
            return [{"txid": f"{block_id}-tx", "vout": [{"value": 5 * ONE_BTC}]}]

        mempool.get_block_txs.side_effect = block_txs
        adapter = BtcAdapter(mempool, config=BtcAdapterConfig(recent_blocks=3))

        result = await adapter.fetch(AdapterQuery(min_usd=Decimal(0), prices=sample_prices))

        assert sorted(t.tx_hash for t in result.items) == ["blk1-tx", "blk3-tx"]
        assert mempool.get_block_txs.await_count == 3
        by_hash = {t.tx_hash: t for t in result.items}
        assert by_hash["blk1-tx"].from_address == "block"
        assert by_hash["blk1-tx"].timestamp == 1_700_000_300


class TestBtcMalformedRecords:
    """A single badly shaped record is skipped; the rest of the batch is kept."""

    @pytest.mark.asyncio
    async def test_bad_vout_entry_in_block(self, mempool, sample_prices) -> None:
        mempool.get_mempool_txids.side_effect = http_500()
        mempool.get_mempool_recent.side_effect = http_500()
        mempool.get_blocks.return_value = [{"id": "blk1", "timestamp": 1_700_000_000}]
        mempool.get_block_txs.return_value = [
            {"txid": "good", "vout": [{"value": 5 * ONE_BTC}]},
            {"txid": "bad", "vout": [None]},
        ]

        result = await BtcAdapter(mempool).fetch(AdapterQuery(min_usd=Decimal(0), prices=sample_prices))

        assert [t.tx_hash for t in result.items] == ["good"]

    @pytest.mark.asyncio
    async def test_non_dict_block_entry(self, mempool, sample_prices) -> None:
        mempool.get_mempool_txids.side_effect = http_500()
        mempool.get_mempool_recent.side_effect = http_500()
        mempool.get_blocks.return_value = ["garbage", {"id": "blk1", "timestamp": 1_700_000_000}]
        mempool.get_block_txs.return_value = [{"txid": "good", "vout": [{"value": 5 * ONE_BTC}]}]

        result = await BtcAdapter(mempool).fetch(AdapterQuery(min_usd=Decimal(0), prices=sample_prices))

        assert [t.tx_hash for t in result.items] == ["good"]
        mempool.get_block_txs.assert_awaited_once_with("blk1")

    @pytest.mark.asyncio
    async def test_bad_vout_in_mempool_tx(self, mempool, sample_prices) -> None:
        mempool.get_mempool_txids.return_value = ["good", "bad"]
        mempool.get_tx.side_effect = lambda txid: {
            "txid": txid,
            "vout": [{"value": 2 * ONE_BTC}] if txid == "good" else ["x"],
        }

        result = await BtcAdapter(mempool).fetch(AdapterQuery(min_usd=Decimal(0), prices=sample_prices))

        assert [t.tx_hash for t in result.items] == ["good"]
        mempool.get_mempool_recent.assert_not_called()
