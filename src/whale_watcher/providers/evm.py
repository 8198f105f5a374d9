"""Ethereum public-node client with ordered endpoint failover.

This module provides an Ethereum client for raw node scans with:
- An ordered list of public RPC endpoints; the first one answering a
  liveness probe (``eth_blockNumber``) is used
- Re-probing after a call fails on the selected endpoint
- Rate limiting to respect public provider limits
- Per-request timeouts on the underlying aiohttp transport
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import aiohttp
from web3 import AsyncWeb3, Web3
from web3.exceptions import Web3Exception
from web3.providers import AsyncHTTPProvider

from whale_watcher.providers.errors import ProviderResponseError, ProviderUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_MAX_REQUESTS_PER_SECOND = 25
DEFAULT_REQUEST_TIMEOUT = 10.0

_TRANSPORT_ERRORS = (Web3Exception, aiohttp.ClientError, asyncio.TimeoutError, ValueError, KeyError)


def to_hex(value: Any) -> str:
    """Render HexBytes/bytes/int/str as a 0x-prefixed lowercase hex string."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value.lower() if value.startswith("0x") else "0x" + value.lower()
    return Web3.to_hex(value).lower()


class RPCError(ProviderUnavailableError):
    """Raised when an RPC call on the selected endpoint fails."""


@dataclass
class RateLimiter:
    """Token bucket rate limiter."""

    max_tokens: float
    refill_rate: float  # tokens per second
    tokens: float
    last_refill: float

    @classmethod
    def create(cls, max_requests_per_second: float) -> RateLimiter:
        """Create a rate limiter with specified max requests per second."""
        return cls(
            max_tokens=max_requests_per_second,
            refill_rate=max_requests_per_second,
            tokens=max_requests_per_second,
            last_refill=time.monotonic(),
        )

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_refill
        self.tokens = min(self.max_tokens, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    async def acquire(self, tokens: float = 1.0) -> None:
        """Acquire tokens, waiting if necessary."""
        while True:
            self._refill()
            if self.tokens >= tokens:
                self.tokens -= tokens
                return
            wait_time = (tokens - self.tokens) / self.refill_rate
            await asyncio.sleep(wait_time)


class EthereumNodeClient:
    """Ethereum JSON-RPC client over a list of public endpoints.

    Example:
        ```python
        client = EthereumNodeClient(["https://cloudflare-eth.com", "https://eth.llamarpc.com"])
        head = await client.block_number()
        block = await client.get_block(head)
        await client.aclose()
        ```
    """

    def __init__(
        self,
        rpc_urls: Sequence[str],
        *,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        max_requests_per_second: float = DEFAULT_MAX_REQUESTS_PER_SECOND,
    ) -> None:
        """Initialize the client.

        Args:
            rpc_urls: Endpoints in preference order.
            request_timeout: Timeout in seconds for a single RPC request.
            max_requests_per_second: Rate limit for RPC calls.
        """
        if not rpc_urls:
            raise ValueError("at least one RPC URL is required")
        self._rpc_urls = list(rpc_urls)
        self._request_timeout = request_timeout
        self._clients: dict[str, AsyncWeb3[AsyncHTTPProvider]] = {}
        self._active_url: str | None = None
        self._rate_limiter = RateLimiter.create(max_requests_per_second)

    @property
    def active_url(self) -> str | None:
        """Endpoint currently in use, if one has been selected."""
        return self._active_url

    def _new_web3_client(self, rpc_url: str) -> AsyncWeb3[AsyncHTTPProvider]:
        return AsyncWeb3(
            AsyncHTTPProvider(
                rpc_url,
                request_kwargs={"timeout": aiohttp.ClientTimeout(total=self._request_timeout)},
            )
        )

    def _client(self, rpc_url: str) -> AsyncWeb3[AsyncHTTPProvider]:
        client = self._clients.get(rpc_url)
        if client is None:
            client = self._new_web3_client(rpc_url)
            self._clients[rpc_url] = client
        return client

    async def _probe(self, rpc_url: str) -> bool:
        try:
            await asyncio.wait_for(self._client(rpc_url).eth.block_number, timeout=self._request_timeout)
            return True
        except _TRANSPORT_ERRORS as e:
            logger.warning("ETH endpoint %s failed liveness probe: %s", rpc_url, e)
            return False

    async def connect(self) -> str:
        """Select the first endpoint that answers the liveness probe.

        Returns:
            The selected endpoint URL.

        Raises:
            ProviderUnavailableError: If no endpoint responds.
        """
        if self._active_url is not None:
            return self._active_url
        for rpc_url in self._rpc_urls:
            if await self._probe(rpc_url):
                self._active_url = rpc_url
                logger.debug("Using ETH endpoint %s", rpc_url)
                return rpc_url
        raise ProviderUnavailableError("No Ethereum RPC endpoint responded")

    async def _execute(self, func_name: str, *args: Any) -> Any:
        """Run a web3 ``eth`` call on the selected endpoint.

        A failure clears the selection so the next call re-probes the list.

        Raises:
            RPCError: If the call fails.
        """
        rpc_url = await self.connect()
        await self._rate_limiter.acquire()
        try:
            attr = getattr(self._client(rpc_url).eth, func_name)
            if args:
                return await asyncio.wait_for(attr(*args), timeout=self._request_timeout)
            # properties such as block_number are awaitables, not callables
            return await asyncio.wait_for(attr, timeout=self._request_timeout)
        except _TRANSPORT_ERRORS as e:
            self._active_url = None
            raise RPCError(f"RPC call {func_name} failed on {rpc_url}: {e}") from e

    async def block_number(self) -> int:
        """Return the current head block number."""
        return int(await self._execute("block_number"))

    async def get_block(self, block_number: int) -> dict[str, Any]:
        """Get a block with full transactions, normalized to plain values.

        Returns:
            ``{"number", "timestamp", "transactions": [{"hash", "from", "to", "value"}]}``
        """
        block = await self._execute("get_block", block_number, True)
        if block is None:
            raise ProviderResponseError(f"block {block_number} not found")
        transactions = []
        for tx in block.get("transactions") or []:
            if not hasattr(tx, "get"):
                continue
            transactions.append(
                {
                    "hash": to_hex(tx.get("hash")),
                    "from": str(tx.get("from") or ""),
                    "to": str(tx.get("to") or ""),
                    "value": int(tx.get("value") or 0),
                }
            )
        return {
            "number": int(block.get("number") or block_number),
            "timestamp": int(block.get("timestamp") or 0),
            "transactions": transactions,
        }

    async def get_logs(self, filter_params: dict[str, Any]) -> list[dict[str, Any]]:
        """Fetch logs via ``eth_getLogs``, normalized to hex strings."""
        logs = await self._execute("get_logs", filter_params)
        normalized = []
        for log in logs:
            normalized.append(
                {
                    "address": str(log.get("address") or "").lower(),
                    "topics": [to_hex(t) for t in log.get("topics") or []],
                    "data": to_hex(log.get("data")),
                    "transactionHash": to_hex(log.get("transactionHash")),
                    "blockNumber": int(log.get("blockNumber") or 0),
                    "logIndex": int(log.get("logIndex") or 0),
                }
            )
        return normalized

    async def health_check(self) -> bool:
        """Check if any endpoint can be reached."""
        try:
            await self.connect()
            return True
        except ProviderUnavailableError:
            return False

    async def aclose(self) -> None:
        """Close async HTTP provider sessions to avoid leaked aiohttp sessions."""
        for rpc_url, client in self._clients.items():
            disconnect = getattr(client.provider, "disconnect", None)
            if not callable(disconnect):
                continue
            try:
                result = disconnect()
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.warning("Failed to close RPC provider session (%s): %s", rpc_url, e)
        self._clients.clear()
        self._active_url = None
