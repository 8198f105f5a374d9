"""Native ETH transfers: Alchemy indexer first, public-node block scan after."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from whale_watcher.adapters.base import ChainAdapter
from whale_watcher.adapters.indexer import (
    block_timestamp,
    fetch_recent_asset_transfers,
    transfer_amount,
)
from whale_watcher.adapters.strategy import MALFORMED_RECORD_ERRORS, Strategy, StrategyChain
from whale_watcher.models import AdapterQuery, Asset, Chain, FetchResult, Transfer
from whale_watcher.normalize import WEI_DECIMALS, build_transfer, native_amount
from whale_watcher.providers.alchemy import AlchemyClient
from whale_watcher.providers.errors import ProviderError
from whale_watcher.providers.evm import EthereumNodeClient

logger = logging.getLogger(__name__)

NATIVE_CATEGORIES = ["external", "internal"]


@dataclass(frozen=True)
class EthAdapterConfig:
    """Window and pagination bounds for native ETH."""

    lookback_blocks: int = 30
    max_pages: int = 3
    min_results: int = 1
    scan_blocks: int = 20


class EthAdapter(ChainAdapter):
    """Large native ETH transfers.

    Example:
        ```python
        adapter = EthAdapter(node, alchemy=alchemy)
        result = await adapter.fetch(AdapterQuery(min_usd=Decimal(25_000), prices=prices))
        ```
    """

    name = "eth"

    def __init__(
        self,
        node: EthereumNodeClient,
        *,
        alchemy: AlchemyClient | None = None,
        config: EthAdapterConfig | None = None,
    ) -> None:
        self._node = node
        self._alchemy = alchemy
        self._config = config or EthAdapterConfig()

    async def _fetch(self, query: AdapterQuery) -> FetchResult:
        strategies = []
        if self._alchemy is not None:
            strategies.append(Strategy("alchemy", lambda: self._from_indexer(query)))
        strategies.append(Strategy("node-scan", lambda: self._from_node(query)))

        outcome = await StrategyChain(self.name, strategies, min_results=self._config.min_results).run()
        return FetchResult(items=outcome.items)

    async def _from_indexer(self, query: AdapterQuery) -> list[Transfer]:
        assert self._alchemy is not None
        records = await fetch_recent_asset_transfers(
            self._alchemy,
            categories=NATIVE_CATEGORIES,
            lookback_blocks=self._config.lookback_blocks,
            max_pages=self._config.max_pages,
        )
        price = query.price(Asset.ETH)
        items: list[Transfer] = []
        for record in records:
            try:
                if record.get("asset") not in (None, "ETH"):
                    continue
                transfer = build_transfer(
                    chain=Chain.ETHEREUM,
                    asset=Asset.ETH,
                    amount=transfer_amount(record, WEI_DECIMALS),
                    price=price,
                    min_usd=query.min_usd,
                    from_address=str(record.get("from") or ""),
                    to_address=str(record.get("to") or ""),
                    tx_hash=str(record.get("hash") or ""),
                    timestamp=block_timestamp(record),
                )
            except MALFORMED_RECORD_ERRORS as e:
                logger.debug("Skipping malformed asset transfer: %s", e)
                continue
            if transfer is not None:
                items.append(transfer)
        return items

    async def _from_node(self, query: AdapterQuery) -> list[Transfer]:
        head = await self._node.block_number()
        price = query.price(Asset.ETH)
        items: list[Transfer] = []
        for number in range(head, max(head - self._config.scan_blocks, -1), -1):
            try:
                block = await self._node.get_block(number)
            except ProviderError as e:
                logger.debug("Skipping block %d: %s", number, e)
                continue
            for tx in block["transactions"]:
                try:
                    transfer = build_transfer(
                        chain=Chain.ETHEREUM,
                        asset=Asset.ETH,
                        amount=native_amount(tx["value"], Asset.ETH),
                        price=price,
                        min_usd=query.min_usd,
                        from_address=tx["from"],
                        to_address=tx["to"],
                        tx_hash=tx["hash"],
                        timestamp=block["timestamp"],
                    )
                except MALFORMED_RECORD_ERRORS as e:
                    logger.debug("Skipping malformed tx in block %d: %s", number, e)
                    continue
                if transfer is not None:
                    items.append(transfer)
        return items
