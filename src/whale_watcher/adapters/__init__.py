"""Chain adapters and their construction from settings."""

from __future__ import annotations

from dataclasses import dataclass, field

from whale_watcher.adapters.base import ChainAdapter
from whale_watcher.adapters.btc import BtcAdapter, BtcAdapterConfig
from whale_watcher.adapters.erc20 import Erc20Adapter, Erc20AdapterConfig
from whale_watcher.adapters.eth import EthAdapter, EthAdapterConfig
from whale_watcher.adapters.sol import SolAdapter, SolAdapterConfig
from whale_watcher.config import Settings
from whale_watcher.providers.alchemy import AlchemyClient
from whale_watcher.providers.evm import EthereumNodeClient
from whale_watcher.providers.http import JsonHttpClient
from whale_watcher.providers.mempool import MempoolClient
from whale_watcher.providers.prices import CoinGeckoPriceOracle
from whale_watcher.providers.solana import HeliusClient, SolanaRpcClient

__all__ = [
    "AdapterSet",
    "BtcAdapter",
    "BtcAdapterConfig",
    "ChainAdapter",
    "Erc20Adapter",
    "Erc20AdapterConfig",
    "EthAdapter",
    "EthAdapterConfig",
    "SolAdapter",
    "SolAdapterConfig",
    "build_adapters",
]


@dataclass
class AdapterSet:
    """Adapters keyed by name, plus the shared clients they were built on."""

    adapters: dict[str, ChainAdapter]
    price_oracle: CoinGeckoPriceOracle
    http: JsonHttpClient | None = None
    node: EthereumNodeClient | None = None
    indexers: dict[str, bool] = field(default_factory=dict)

    def __getitem__(self, name: str) -> ChainAdapter:
        return self.adapters[name]

    async def aclose(self) -> None:
        if self.node is not None:
            await self.node.aclose()
        if self.http is not None:
            await self.http.aclose()


def build_adapters(settings: Settings) -> AdapterSet:
    """Wire every adapter from environment settings.

    Indexer clients are only created when their key is configured; adapters
    without one fall back to public endpoints.
    """
    providers = settings.providers
    scan = settings.scan

    http = JsonHttpClient(timeout_seconds=settings.poll.request_timeout_seconds)
    node = EthereumNodeClient(
        providers.eth_rpc_urls,
        request_timeout=settings.poll.request_timeout_seconds,
    )
    oracle = CoinGeckoPriceOracle(
        http,
        url=providers.coingecko_price_url,
        ttl_seconds=settings.poll.price_refresh_seconds,
    )

    alchemy = None
    if providers.has_alchemy and providers.alchemy_eth_mainnet_key is not None:
        alchemy = AlchemyClient(http, providers.alchemy_eth_mainnet_key.get_secret_value())
    helius = None
    if providers.has_helius and providers.helius_api_key is not None:
        helius = HeliusClient(http, providers.helius_api_key.get_secret_value())

    adapters: dict[str, ChainAdapter] = {
        EthAdapter.name: EthAdapter(
            node,
            alchemy=alchemy,
            config=EthAdapterConfig(
                lookback_blocks=scan.indexer_lookback_blocks,
                max_pages=scan.indexer_max_pages,
                min_results=scan.min_results,
                scan_blocks=scan.eth_scan_blocks,
            ),
        ),
        Erc20Adapter.name: Erc20Adapter(
            node,
            alchemy=alchemy,
            price_oracle=oracle,
            config=Erc20AdapterConfig(
                lookback_blocks=scan.indexer_lookback_blocks,
                max_pages=scan.indexer_max_pages,
                min_results=scan.min_results,
                scan_blocks=scan.erc20_scan_blocks,
                chunk_size_blocks=scan.logs_chunk_size_blocks,
            ),
        ),
        BtcAdapter.name: BtcAdapter(
            MempoolClient(http, providers.mempool_api_url),
            config=BtcAdapterConfig(
                mempool_tx_limit=scan.btc_mempool_tx_limit,
                recent_blocks=scan.btc_recent_blocks,
            ),
        ),
        SolAdapter.name: SolAdapter(
            SolanaRpcClient(http, providers.solana_rpc_url),
            helius=helius,
            config=SolAdapterConfig(
                slots_to_scan=scan.sol_slots_to_scan,
                max_pages=scan.indexer_max_pages,
                min_results=scan.min_results,
            ),
        ),
    }
    return AdapterSet(
        adapters=adapters,
        price_oracle=oracle,
        http=http,
        node=node,
        indexers={"alchemy": alchemy is not None, "helius": helius is not None},
    )
