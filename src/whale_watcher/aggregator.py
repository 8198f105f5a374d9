"""Concurrent adapter fan-out and the merged top-N feed."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Mapping, Sequence

from whale_watcher.adapters.base import ChainAdapter
from whale_watcher.models import AdapterQuery, FeedResult, FetchResult, Transfer, sort_by_usd

logger = logging.getLogger(__name__)

DEFAULT_FEED_LIMIT = 50
DEFAULT_ADAPTER_TIMEOUT_SECONDS = 25.0


def merge_transfers(batches: Iterable[Sequence[Transfer]], limit: int = DEFAULT_FEED_LIMIT) -> list[Transfer]:
    """Flatten batches in order, keep the first transfer per hash, rank by USD and truncate.

    Applying the merge to its own output returns the same list.
    """
    seen: set[str] = set()
    unique: list[Transfer] = []
    for batch in batches:
        for transfer in batch:
            if transfer.tx_hash in seen:
                continue
            seen.add(transfer.tx_hash)
            unique.append(transfer)
    return sort_by_usd(unique)[: max(limit, 0)]


class Aggregator:
    """Runs enabled adapters concurrently and merges their output.

    Example:
        ```python
        aggregator = Aggregator(adapter_set.adapters, adapter_timeout=25)
        feed = await aggregator.poll(query, enabled={"eth", "btc"})
        ```
    """

    def __init__(
        self,
        adapters: Mapping[str, ChainAdapter],
        *,
        adapter_timeout: float = DEFAULT_ADAPTER_TIMEOUT_SECONDS,
        limit: int = DEFAULT_FEED_LIMIT,
    ) -> None:
        self._adapters = dict(adapters)
        self._adapter_timeout = adapter_timeout
        self._limit = limit

    @property
    def adapter_names(self) -> list[str]:
        return list(self._adapters)

    async def _run_one(self, name: str, query: AdapterQuery) -> FetchResult | None:
        adapter = self._adapters[name]
        try:
            return await asyncio.wait_for(adapter.fetch(query), timeout=self._adapter_timeout)
        except asyncio.TimeoutError:
            logger.warning("Adapter %s timed out after %.1fs", name, self._adapter_timeout)
        except Exception:
            logger.exception("Adapter %s failed", name)
        return None

    async def poll(self, query: AdapterQuery, enabled: Iterable[str] | None = None) -> FeedResult:
        """Run one fan-out over the enabled adapters, in registration order."""
        wanted = set(self._adapters) if enabled is None else set(enabled)
        names = [name for name in self._adapters if name in wanted]
        if not names:
            return FeedResult()

        results = await asyncio.gather(*(self._run_one(name, query) for name in names))

        feed = FeedResult()
        batches: list[list[Transfer]] = []
        for name, result in zip(names, results):
            if result is None:
                feed.errors.append(name)
                continue
            if result.note:
                feed.notes[name] = result.note
            batches.append(result.items)
            logger.debug("Adapter %s returned %d transfers", name, len(result.items))

        feed.items = merge_transfers(batches, self._limit)
        return feed
