"""Thin async clients for the external data providers."""

from whale_watcher.providers.alchemy import AlchemyClient, AssetTransferPage
from whale_watcher.providers.errors import (
    ProviderError,
    ProviderResponseError,
    ProviderUnavailableError,
)
from whale_watcher.providers.evm import EthereumNodeClient, RPCError
from whale_watcher.providers.http import JsonHttpClient, JsonRpcClient
from whale_watcher.providers.mempool import MempoolClient
from whale_watcher.providers.prices import CoinGeckoPriceOracle
from whale_watcher.providers.solana import HeliusClient, SolanaRpcClient

__all__ = [
    "AlchemyClient",
    "AssetTransferPage",
    "CoinGeckoPriceOracle",
    "EthereumNodeClient",
    "HeliusClient",
    "JsonHttpClient",
    "JsonRpcClient",
    "MempoolClient",
    "ProviderError",
    "ProviderResponseError",
    "ProviderUnavailableError",
    "RPCError",
    "SolanaRpcClient",
]
