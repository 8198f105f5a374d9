"""Solana JSON-RPC node and Helius enhanced-transaction clients."""

from __future__ import annotations

from typing import Any

from whale_watcher.providers.errors import ProviderResponseError
from whale_watcher.providers.http import JsonHttpClient, JsonRpcClient

DEFAULT_SOLANA_RPC_URL = "https://api.mainnet-beta.solana.com"
HELIUS_API_URL = "https://api.helius.xyz/v0"

SYSTEM_PROGRAM_ID = "11111111111111111111111111111111"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"

# JSON-RPC error codes for slots the node cannot serve
SKIPPED_SLOT_ERROR_CODES = frozenset({-32004, -32007, -32009})

GET_BLOCK_OPTIONS = {
    "encoding": "json",
    "maxSupportedTransactionVersion": 0,
    "transactionDetails": "full",
    "rewards": False,
}


class SolanaRpcClient:
    """Minimal Solana node client for the raw slot scan."""

    def __init__(self, http: JsonHttpClient, url: str = DEFAULT_SOLANA_RPC_URL) -> None:
        self._http = http
        self._url = url
        self._rpc = JsonRpcClient(http, url)

    async def get_slot(self) -> int:
        result = await self._rpc.call("getSlot")
        if not isinstance(result, int):
            raise ProviderResponseError(f"getSlot returned {result!r}")
        return result

    async def get_block(self, slot: int) -> dict[str, Any] | None:
        """Fetch a full block, or ``None`` when the slot was skipped or is unavailable."""
        body = {
            "jsonrpc": "2.0",
            "id": slot,
            "method": "getBlock",
            "params": [slot, GET_BLOCK_OPTIONS],
        }
        data = await self._http.post_json(self._url, body)
        if not isinstance(data, dict):
            raise ProviderResponseError("getBlock: malformed JSON-RPC envelope")
        error = data.get("error")
        if error:
            if isinstance(error, dict) and error.get("code") in SKIPPED_SLOT_ERROR_CODES:
                return None
            message = error.get("message", error) if isinstance(error, dict) else error
            raise ProviderResponseError(f"getBlock({slot}): {message}")
        result = data.get("result")
        if result is not None and not isinstance(result, dict):
            raise ProviderResponseError(f"getBlock({slot}) returned a non-object result")
        return result


class HeliusClient:
    """Helius enhanced-transactions API (parsed transfers per address)."""

    def __init__(self, http: JsonHttpClient, api_key: str, base_url: str = HELIUS_API_URL) -> None:
        self._http = http
        self._api_key = api_key
        self._base = base_url.rstrip("/")

    async def get_address_transactions(
        self,
        address: str,
        *,
        tx_type: str | None = "TRANSFER",
        before: str | None = None,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        """Return enhanced transactions touching ``address``, newest first."""
        params: dict[str, Any] = {"api-key": self._api_key, "limit": limit}
        if tx_type:
            params["type"] = tx_type
        if before:
            params["before"] = before
        data = await self._http.get_json(f"{self._base}/addresses/{address}/transactions", params=params)
        if not isinstance(data, list):
            raise ProviderResponseError("Helius transactions did not return a list")
        return data
