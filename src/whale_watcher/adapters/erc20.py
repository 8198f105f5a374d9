"""USDC/USDT transfers on Ethereum: Alchemy indexer first, chunked log scan after."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from web3 import Web3

from whale_watcher.adapters.base import ChainAdapter
from whale_watcher.adapters.indexer import (
    block_timestamp,
    fetch_recent_asset_transfers,
    transfer_amount,
)
from whale_watcher.adapters.strategy import MALFORMED_RECORD_ERRORS, Strategy, StrategyChain
from whale_watcher.models import AdapterQuery, Asset, Chain, FetchResult, Transfer
from whale_watcher.normalize import STABLECOIN_DECIMALS, build_transfer, to_amount
from whale_watcher.providers.alchemy import AlchemyClient
from whale_watcher.providers.errors import ProviderError
from whale_watcher.providers.evm import EthereumNodeClient
from whale_watcher.providers.prices import CoinGeckoPriceOracle

logger = logging.getLogger(__name__)

# keccak256("Transfer(address,address,uint256)")
TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"


@dataclass(frozen=True)
class TokenSpec:
    """An ERC-20 contract tracked by the adapter."""

    asset: Asset
    address: str
    decimals: int = STABLECOIN_DECIMALS


USDC = TokenSpec(Asset.USDC, "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48")
USDT = TokenSpec(Asset.USDT, "0xdac17f958d2ee523a2206206994597c13d831ec7")
DEFAULT_TOKENS = (USDC, USDT)


@dataclass(frozen=True)
class Erc20AdapterConfig:
    """Window, pagination and chunking bounds for stablecoin transfers."""

    lookback_blocks: int = 30
    max_pages: int = 3
    min_results: int = 1
    scan_blocks: int = 2500
    chunk_size_blocks: int = 1000
    tokens: tuple[TokenSpec, ...] = DEFAULT_TOKENS


def topic_to_address(topic: str) -> str:
    """Last 20 bytes of a 32-byte indexed topic, as a 0x address."""
    text = topic.lower()
    if not text.startswith("0x") or len(text) != 66:
        raise ValueError(f"not a 32-byte topic: {topic!r}")
    return "0x" + text[26:]


def decode_transfer_log(log: dict[str, Any], token: TokenSpec) -> tuple[str, str, Decimal]:
    """Decode ``(from, to, amount)`` from a Transfer event log.

    Raises:
        ValueError: If the log does not carry an indexed from/to pair.
    """
    topics = log.get("topics") or []
    if len(topics) < 3:
        raise ValueError("Transfer log without indexed from/to")
    return topic_to_address(topics[1]), topic_to_address(topics[2]), to_amount(log.get("data"), token.decimals)


def block_chunks(head: int, window: int, chunk_size: int) -> list[tuple[int, int]]:
    """Split ``(head - window, head]`` into inclusive ranges, newest first."""
    lowest = max(head - window + 1, 0)
    chunks: list[tuple[int, int]] = []
    end = head
    while end >= lowest:
        start = max(end - chunk_size + 1, lowest)
        chunks.append((start, end))
        end = start - 1
    return chunks


class Erc20Adapter(ChainAdapter):
    """Large USDC and USDT transfers on Ethereum mainnet."""

    name = "erc20"

    def __init__(
        self,
        node: EthereumNodeClient,
        *,
        alchemy: AlchemyClient | None = None,
        price_oracle: CoinGeckoPriceOracle | None = None,
        config: Erc20AdapterConfig | None = None,
    ) -> None:
        self._node = node
        self._alchemy = alchemy
        self._price_oracle = price_oracle
        self._config = config or Erc20AdapterConfig()
        self._by_address = {t.address.lower(): t for t in self._config.tokens}
        self._by_symbol = {t.asset.value: t for t in self._config.tokens}

    async def _fetch(self, query: AdapterQuery) -> FetchResult:
        prices = {token.asset: await self._token_price(query, token.asset) for token in self._config.tokens}

        strategies = []
        if self._alchemy is not None:
            strategies.append(Strategy("alchemy", lambda: self._from_indexer(query, prices)))
        strategies.append(Strategy("log-scan", lambda: self._from_logs(query, prices)))

        outcome = await StrategyChain(self.name, strategies, min_results=self._config.min_results).run()
        return FetchResult(items=outcome.items)

    async def _token_price(self, query: AdapterQuery, asset: Asset) -> Decimal:
        """Caller's price when nonzero, else the oracle's, else 1."""
        price = query.price(asset)
        if price > 0:
            return price
        if self._price_oracle is not None:
            price = await self._price_oracle.get_price(asset)
            if price > 0:
                return price
        return Decimal(1)

    def _resolve_token(self, record: dict[str, Any]) -> TokenSpec | None:
        address = ((record.get("rawContract") or {}).get("address") or "").lower()
        if address:
            return self._by_address.get(address)
        return self._by_symbol.get(str(record.get("asset") or ""))

    async def _from_indexer(self, query: AdapterQuery, prices: dict[Asset, Decimal]) -> list[Transfer]:
        assert self._alchemy is not None
        records = await fetch_recent_asset_transfers(
            self._alchemy,
            categories=["erc20"],
            contract_addresses=[t.address for t in self._config.tokens],
            lookback_blocks=self._config.lookback_blocks,
            max_pages=self._config.max_pages,
        )
        items: list[Transfer] = []
        for record in records:
            try:
                token = self._resolve_token(record)
                if token is None:
                    continue
                transfer = build_transfer(
                    chain=Chain.ETHEREUM,
                    asset=token.asset,
                    amount=transfer_amount(record, token.decimals),
                    price=prices[token.asset],
                    min_usd=query.min_usd,
                    from_address=str(record.get("from") or ""),
                    to_address=str(record.get("to") or ""),
                    tx_hash=str(record.get("hash") or ""),
                    timestamp=block_timestamp(record),
                )
            except MALFORMED_RECORD_ERRORS as e:
                logger.debug("Skipping malformed token transfer: %s", e)
                continue
            if transfer is not None:
                items.append(transfer)
        return items

    async def _from_logs(self, query: AdapterQuery, prices: dict[Asset, Decimal]) -> list[Transfer]:
        head = await self._node.block_number()
        chunks = block_chunks(head, self._config.scan_blocks, self._config.chunk_size_blocks)
        items: list[Transfer] = []
        for token in self._config.tokens:
            contract = Web3.to_checksum_address(token.address)
            for start, end in chunks:
                try:
                    logs = await self._node.get_logs(
                        {
                            "address": contract,
                            "topics": [TRANSFER_TOPIC],
                            "fromBlock": start,
                            "toBlock": end,
                        }
                    )
                except ProviderError as e:
                    logger.warning("%s logs %d-%d failed: %s", token.asset.value, start, end, e)
                    continue
                for log in logs:
                    try:
                        from_address, to_address, amount = decode_transfer_log(log, token)
                        transfer = build_transfer(
                            chain=Chain.ETHEREUM,
                            asset=token.asset,
                            amount=amount,
                            price=prices[token.asset],
                            min_usd=query.min_usd,
                            from_address=from_address,
                            to_address=to_address,
                            tx_hash=log.get("transactionHash") or "",
                        )
                    except MALFORMED_RECORD_ERRORS as e:
                        logger.debug(
                            "Skipping malformed %s log in blocks %d-%d: %s", token.asset.value, start, end, e
                        )
                        continue
                    if transfer is not None:
                        items.append(transfer)
        return items
