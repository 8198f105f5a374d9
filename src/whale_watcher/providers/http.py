"""JSON-over-HTTP and JSON-RPC clients built on a shared aiohttp session.

Every request carries its own timeout so that a stalled provider surfaces
as ``ProviderUnavailableError`` instead of hanging the caller.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any

import aiohttp
from yarl import URL

from whale_watcher.providers.errors import ProviderResponseError, ProviderUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT_SECONDS = 10.0
DEFAULT_HEADERS = {"accept": "application/json", "user-agent": "whale-watcher/0.1"}


class JsonHttpClient:
    """Thin async HTTP client returning decoded JSON.

    The aiohttp session is created lazily on first use so the client can be
    constructed outside a running event loop.

    Example:
        ```python
        http = JsonHttpClient(timeout_seconds=10)
        blocks = await http.get_json("https://mempool.space/api/blocks")
        await http.aclose()
        ```
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=DEFAULT_HEADERS, timeout=self._timeout)
            self._owns_session = True
        return self._session

    def _timeout_for(self, timeout_seconds: float | None) -> aiohttp.ClientTimeout:
        if timeout_seconds is None:
            return self._timeout
        return aiohttp.ClientTimeout(total=timeout_seconds)

    async def get_json(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        timeout_seconds: float | None = None,
    ) -> Any:
        """GET a URL and decode its JSON body.

        Raises:
            ProviderUnavailableError: On network failure, timeout or HTTP >= 400.
            ProviderResponseError: If the body is not valid JSON.
        """
        return await self._request("GET", url, params=params, timeout_seconds=timeout_seconds)

    async def post_json(
        self,
        url: str,
        payload: Any,
        *,
        timeout_seconds: float | None = None,
    ) -> Any:
        """POST a JSON payload and decode the JSON response."""
        return await self._request("POST", url, json=payload, timeout_seconds=timeout_seconds)

    async def post(
        self,
        url: str,
        payload: Any,
        *,
        timeout_seconds: float | None = None,
    ) -> int:
        """POST a JSON payload, ignoring the response body.

        Used for user-supplied webhooks, whose path and query are credentials;
        error messages only name the scheme and host.

        Returns:
            The HTTP status code.
        """
        session = self._get_session()
        try:
            async with session.post(
                url,
                json=payload,
                timeout=self._timeout_for(timeout_seconds),
            ) as resp:
                if resp.status >= 400:
                    raise ProviderUnavailableError(
                        f"POST {_origin(url)} returned HTTP {resp.status}", status=resp.status
                    )
                return resp.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ProviderUnavailableError(f"POST {_origin(url)} failed: {type(e).__name__}") from e

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        timeout_seconds: float | None = None,
    ) -> Any:
        session = self._get_session()
        try:
            async with session.request(
                method,
                url,
                params=params,
                json=json,
                timeout=self._timeout_for(timeout_seconds),
            ) as resp:
                if resp.status >= 400:
                    raise ProviderUnavailableError(
                        f"{method} {_redact(url)} returned HTTP {resp.status}",
                        status=resp.status,
                    )
                try:
                    return await resp.json(content_type=None)
                except ValueError as e:
                    raise ProviderResponseError(f"{method} {_redact(url)} returned invalid JSON") from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ProviderUnavailableError(f"{method} {_redact(url)} failed: {e!r}") from e

    async def aclose(self) -> None:
        """Close the underlying session if this client created it."""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None


class JsonRpcClient:
    """JSON-RPC 2.0 caller over a JsonHttpClient."""

    def __init__(self, http: JsonHttpClient, url: str) -> None:
        self._http = http
        self._url = url
        self._ids = itertools.count(1)

    @property
    def url(self) -> str:
        return self._url

    async def call(self, method: str, params: list[Any] | None = None) -> Any:
        """Invoke a method and return its ``result``.

        Raises:
            ProviderUnavailableError: On transport failure.
            ProviderResponseError: On a JSON-RPC error object or malformed envelope.
        """
        body = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params or []}
        data = await self._http.post_json(self._url, body)
        if not isinstance(data, dict):
            raise ProviderResponseError(f"{method}: malformed JSON-RPC envelope")
        error = data.get("error")
        if error:
            message = error.get("message", error) if isinstance(error, dict) else error
            raise ProviderResponseError(f"{method}: {message}")
        if "result" not in data:
            raise ProviderResponseError(f"{method}: missing result")
        return data["result"]


def _redact(url: str) -> str:
    """Hide API keys embedded in query strings or path tails."""
    if "api-key=" in url:
        return url.split("api-key=")[0] + "api-key=***"
    if "/v2/" in url:
        return url.split("/v2/")[0] + "/v2/***"
    return url


def _origin(url: str) -> str:
    """Scheme and host only, for URLs whose path is itself a secret."""
    try:
        return str(URL(url).origin())
    except ValueError:
        return "<invalid url>"
