"""Alchemy asset-transfer indexer client (Ethereum mainnet)."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from whale_watcher.providers.errors import ProviderResponseError
from whale_watcher.providers.http import JsonHttpClient, JsonRpcClient

ALCHEMY_ETH_MAINNET_URL = "https://eth-mainnet.g.alchemy.com/v2/{key}"
MAX_COUNT_PER_PAGE = 1000


@dataclass(frozen=True)
class AssetTransferPage:
    """One page of ``alchemy_getAssetTransfers`` results."""

    transfers: list[dict[str, Any]] = field(default_factory=list)
    page_key: str | None = None


class AlchemyClient:
    """Wrapper over Alchemy's enhanced ``alchemy_getAssetTransfers`` API."""

    def __init__(self, http: JsonHttpClient, api_key: str) -> None:
        self._rpc = JsonRpcClient(http, ALCHEMY_ETH_MAINNET_URL.format(key=api_key))

    async def block_number(self) -> int:
        result = await self._rpc.call("eth_blockNumber")
        try:
            return int(str(result), 16)
        except ValueError as e:
            raise ProviderResponseError(f"eth_blockNumber returned {result!r}") from e

    async def get_asset_transfers(
        self,
        *,
        from_block: int,
        categories: list[str],
        contract_addresses: list[str] | None = None,
        page_key: str | None = None,
    ) -> AssetTransferPage:
        """Fetch one page of transfers from ``from_block`` to latest, newest first."""
        params: dict[str, Any] = {
            "fromBlock": hex(max(from_block, 0)),
            "toBlock": "latest",
            "category": categories,
            "order": "desc",
            "withMetadata": True,
            "excludeZeroValue": True,
            "maxCount": hex(MAX_COUNT_PER_PAGE),
        }
        if contract_addresses:
            params["contractAddresses"] = contract_addresses
        if page_key:
            params["pageKey"] = page_key

        result = await self._rpc.call("alchemy_getAssetTransfers", [params])
        if not isinstance(result, dict):
            raise ProviderResponseError("alchemy_getAssetTransfers returned a non-object result")
        transfers = result.get("transfers") or []
        if not isinstance(transfers, list):
            raise ProviderResponseError("alchemy_getAssetTransfers transfers is not a list")
        return AssetTransferPage(transfers=transfers, page_key=result.get("pageKey") or None)
