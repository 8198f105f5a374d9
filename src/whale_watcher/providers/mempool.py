"""mempool.space-compatible Bitcoin explorer client."""

from __future__ import annotations

from typing import Any

from whale_watcher.providers.errors import ProviderResponseError
from whale_watcher.providers.http import JsonHttpClient

DEFAULT_MEMPOOL_API_URL = "https://mempool.space/api"


def _expect_list(value: Any, what: str) -> list[Any]:
    if not isinstance(value, list):
        raise ProviderResponseError(f"{what} did not return a list")
    return value


class MempoolClient:
    """Read-only REST client for the endpoints used by the BTC adapter."""

    def __init__(self, http: JsonHttpClient, base_url: str = DEFAULT_MEMPOOL_API_URL) -> None:
        self._http = http
        self._base = base_url.rstrip("/")

    async def get_mempool_txids(self) -> list[str]:
        ids = _expect_list(await self._http.get_json(f"{self._base}/mempool/txids"), "/mempool/txids")
        return [str(i) for i in ids]

    async def get_tx(self, txid: str) -> dict[str, Any]:
        tx = await self._http.get_json(f"{self._base}/tx/{txid}")
        if not isinstance(tx, dict):
            raise ProviderResponseError(f"/tx/{txid} did not return an object")
        return tx

    async def get_mempool_recent(self) -> list[dict[str, Any]]:
        return _expect_list(await self._http.get_json(f"{self._base}/mempool/recent"), "/mempool/recent")

    async def get_blocks(self) -> list[dict[str, Any]]:
        return _expect_list(await self._http.get_json(f"{self._base}/blocks"), "/blocks")

    async def get_block_txs(self, block_id: str) -> list[dict[str, Any]]:
        return _expect_list(
            await self._http.get_json(f"{self._base}/block/{block_id}/txs"),
            f"/block/{block_id}/txs",
        )
