"""Shared chain adapter contract."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from whale_watcher.models import AdapterQuery, FetchResult, sort_by_usd

logger = logging.getLogger(__name__)


class ChainAdapter(ABC):
    """Produces qualifying transfers for one chain/asset family.

    Subclasses implement ``_fetch``; callers use ``fetch``, which never raises
    (cancellation excepted) and always returns items sorted by USD value,
    largest first.
    """

    #: Key used in feed notes, diagnostics and log lines.
    name: str = "adapter"

    async def fetch(self, query: AdapterQuery) -> FetchResult:
        try:
            result = await self._fetch(query)
        except Exception:
            logger.exception("%s adapter failed", self.name)
            return FetchResult()
        result.items = sort_by_usd(result.items)
        return result

    @abstractmethod
    async def _fetch(self, query: AdapterQuery) -> FetchResult:
        """Fetch transfers for this adapter. May raise; ``fetch`` contains failures."""
