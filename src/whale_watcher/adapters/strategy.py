"""Ordered provider strategies with short-circuit on sufficiency.

A chain adapter describes how to obtain transfers as a list of named
strategies (indexer first, public-node scans after). ``StrategyChain`` runs
them in order, merges what each returns (first-seen hash wins) and stops as
soon as the merged set holds enough items. A strategy that fails contributes
nothing; the next one is tried.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import TypeVar

from whale_watcher.models import Transfer
from whale_watcher.providers.errors import ProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")

StrategyFunc = Callable[[], Awaitable[list[Transfer]]]

# Raised by a single provider record with an unexpected shape; the record is
# skipped and the rest of the batch is kept.
MALFORMED_RECORD_ERRORS = (AttributeError, IndexError, KeyError, TypeError, ValueError)


@dataclass(frozen=True)
class Strategy:
    """A named way of producing transfers."""

    name: str
    run: StrategyFunc


@dataclass
class StrategyOutcome:
    """Merged transfers plus which strategies ran and which failed."""

    items: list[Transfer] = field(default_factory=list)
    attempted: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


def merge_unique(target: list[Transfer], seen: set[str], items: Sequence[Transfer]) -> int:
    """Append items whose hash is not yet in ``seen``. Returns how many were added."""
    added = 0
    for item in items:
        if item.tx_hash in seen:
            continue
        seen.add(item.tx_hash)
        target.append(item)
        added += 1
    return added


class StrategyChain:
    """Evaluate strategies in order until ``min_results`` items are collected.

    Args:
        label: Name used in log lines (usually the adapter name).
        strategies: Strategies in preference order.
        min_results: Stop once the merged result holds at least this many items.
    """

    def __init__(self, label: str, strategies: Sequence[Strategy], *, min_results: int = 1) -> None:
        self._label = label
        self._strategies = list(strategies)
        self._min_results = max(min_results, 1)

    @property
    def names(self) -> list[str]:
        return [s.name for s in self._strategies]

    async def run(self) -> StrategyOutcome:
        outcome = StrategyOutcome()
        seen: set[str] = set()
        for strategy in self._strategies:
            if len(outcome.items) >= self._min_results:
                break
            outcome.attempted.append(strategy.name)
            try:
                found = await strategy.run()
            except ProviderError as e:
                logger.warning("%s: strategy %s failed: %s", self._label, strategy.name, e)
                outcome.failed.append(strategy.name)
                continue
            except Exception:
                logger.exception("%s: strategy %s raised unexpectedly", self._label, strategy.name)
                outcome.failed.append(strategy.name)
                continue
            added = merge_unique(outcome.items, seen, found)
            logger.debug("%s: strategy %s yielded %d (%d new)", self._label, strategy.name, len(found), added)
        return outcome


async def paginate(
    fetch_page: Callable[[str | None], Awaitable[tuple[list[T], str | None]]],
    *,
    max_pages: int,
) -> list[T]:
    """Follow continuation cursors until none is returned or ``max_pages`` is hit."""
    results: list[T] = []
    cursor: str | None = None
    for _ in range(max(max_pages, 1)):
        page, cursor = await fetch_page(cursor)
        results.extend(page)
        if not cursor:
            break
    return results
