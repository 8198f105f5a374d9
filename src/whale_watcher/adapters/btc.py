"""Native BTC transfers from a mempool.space-compatible explorer."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from whale_watcher.adapters.base import ChainAdapter
from whale_watcher.adapters.strategy import MALFORMED_RECORD_ERRORS, Strategy, StrategyChain
from whale_watcher.models import AdapterQuery, Asset, Chain, FetchResult, Transfer
from whale_watcher.normalize import build_transfer, native_amount
from whale_watcher.providers.errors import ProviderError
from whale_watcher.providers.mempool import MempoolClient

logger = logging.getLogger(__name__)

MULTIPLE_OUTPUTS = "multiple"


@dataclass(frozen=True)
class BtcAdapterConfig:
    """Bounds for the three explorer strategies."""

    mempool_tx_limit: int = 100
    recent_blocks: int = 3
    tx_fetch_concurrency: int = 8


def gross_output_sats(tx: dict[str, Any]) -> int:
    """Sum of all output values, in satoshis."""
    return sum(int(out.get("value") or 0) for out in tx.get("vout") or [])


class BtcAdapter(ChainAdapter):
    """Large BTC movements, by gross output value.

    Strategies, in order, until one yields a qualifying transaction:

    1. ``mempool-txids``: unconfirmed txids, each fetched via ``/tx/{id}``
    2. ``mempool-recent``: the explorer's recent-mempool summary
    3. ``recent-blocks``: transactions of the newest confirmed blocks
    """

    name = "btc"

    def __init__(self, mempool: MempoolClient, *, config: BtcAdapterConfig | None = None) -> None:
        self._mempool = mempool
        self._config = config or BtcAdapterConfig()

    async def _fetch(self, query: AdapterQuery) -> FetchResult:
        chain = StrategyChain(
            self.name,
            [
                Strategy("mempool-txids", lambda: self._from_mempool_txids(query)),
                Strategy("mempool-recent", lambda: self._from_mempool_recent(query)),
                Strategy("recent-blocks", lambda: self._from_recent_blocks(query)),
            ],
            min_results=1,
        )
        outcome = await chain.run()
        return FetchResult(items=outcome.items)

    def _build(
        self,
        query: AdapterQuery,
        *,
        txid: str,
        sats: int,
        from_address: str,
        timestamp: int | None,
    ) -> Transfer | None:
        return build_transfer(
            chain=Chain.BITCOIN,
            asset=Asset.BTC,
            amount=native_amount(sats, Asset.BTC),
            price=query.price(Asset.BTC),
            min_usd=query.min_usd,
            from_address=from_address,
            to_address=MULTIPLE_OUTPUTS,
            tx_hash=txid,
            timestamp=timestamp,
        )

    async def _from_mempool_txids(self, query: AdapterQuery) -> list[Transfer]:
        txids = (await self._mempool.get_mempool_txids())[: self._config.mempool_tx_limit]
        semaphore = asyncio.Semaphore(self._config.tx_fetch_concurrency)

        async def fetch_one(txid: str) -> dict[str, Any] | None:
            async with semaphore:
                try:
                    return await self._mempool.get_tx(txid)
                except ProviderError as e:
                    logger.debug("Skipping mempool tx %s: %s", txid, e)
                    return None

        txs = await asyncio.gather(*(fetch_one(txid) for txid in txids))
        items: list[Transfer] = []
        for txid, tx in zip(txids, txs):
            if tx is None:
                continue
            try:
                transfer = self._build(
                    query,
                    txid=txid,
                    sats=gross_output_sats(tx),
                    from_address="mempool",
                    timestamp=(tx.get("status") or {}).get("block_time"),
                )
            except MALFORMED_RECORD_ERRORS as e:
                logger.debug("Skipping malformed tx %s: %s", txid, e)
                continue
            if transfer is not None:
                items.append(transfer)
        return items

    async def _from_mempool_recent(self, query: AdapterQuery) -> list[Transfer]:
        items: list[Transfer] = []
        for entry in await self._mempool.get_mempool_recent():
            try:
                transfer = self._build(
                    query,
                    txid=str(entry.get("txid") or ""),
                    sats=int(entry.get("value") or 0),
                    from_address="mempool",
                    timestamp=None,
                )
            except MALFORMED_RECORD_ERRORS as e:
                logger.debug("Skipping malformed recent entry: %s", e)
                continue
            if transfer is not None:
                items.append(transfer)
        return items

    async def _from_recent_blocks(self, query: AdapterQuery) -> list[Transfer]:
        blocks = (await self._mempool.get_blocks())[: self._config.recent_blocks]
        items: list[Transfer] = []
        for block in blocks:
            try:
                block_id = block.get("id")
                block_time = block.get("timestamp")
            except MALFORMED_RECORD_ERRORS as e:
                logger.debug("Skipping malformed block entry: %s", e)
                continue
            if not block_id:
                continue
            try:
                txs = await self._mempool.get_block_txs(str(block_id))
            except ProviderError as e:
                logger.debug("Skipping block %s: %s", block_id, e)
                continue
            for tx in txs:
                try:
                    transfer = self._build(
                        query,
                        txid=str(tx.get("txid") or ""),
                        sats=gross_output_sats(tx),
                        from_address="block",
                        timestamp=block_time,
                    )
                except MALFORMED_RECORD_ERRORS as e:
                    logger.debug("Skipping malformed tx in block %s: %s", block_id, e)
                    continue
                if transfer is not None:
                    items.append(transfer)
        return items
