"""One-shot health probe over every adapter and provider setting."""

from __future__ import annotations

import asyncio
import logging
import time
from decimal import Decimal
from typing import Any

from whale_watcher.adapters import AdapterSet
from whale_watcher.adapters.base import ChainAdapter
from whale_watcher.models import AdapterQuery

logger = logging.getLogger(__name__)

DEFAULT_PROBE_TIMEOUT_SECONDS = 30.0


async def probe_adapter(adapter: ChainAdapter, query: AdapterQuery, *, timeout: float) -> dict[str, Any]:
    """Run one adapter once and describe what came back.

    ``ok`` means the adapter answered in time with transfers or a note.
    """
    started = time.monotonic()
    report: dict[str, Any] = {"ok": False, "count": 0, "sample": None, "note": None, "error": None}
    try:
        result = await asyncio.wait_for(adapter.fetch(query), timeout=timeout)
    except asyncio.TimeoutError:
        report["error"] = f"timed out after {timeout:.0f}s"
    except Exception as e:
        logger.exception("Probe of %s failed", adapter.name)
        report["error"] = repr(e)
    else:
        report["count"] = len(result.items)
        report["sample"] = result.items[0].to_dict() if result.items else None
        report["note"] = result.note
        report["ok"] = bool(result.items) or result.note is not None
    report["elapsed_seconds"] = round(time.monotonic() - started, 2)
    return report


async def diagnose(
    adapter_set: AdapterSet,
    *,
    min_usd: Decimal = Decimal(0),
    timeout: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
) -> dict[str, Any]:
    """Probe every adapter concurrently with a permissive threshold.

    Solana is probed twice: native and stablecoin-only.
    """
    prices = await adapter_set.price_oracle.get_prices()
    query = AdapterQuery(min_usd=min_usd, prices=prices)

    probes: dict[str, tuple[ChainAdapter, AdapterQuery]] = {
        name: (adapter, query) for name, adapter in adapter_set.adapters.items()
    }
    if "sol" in adapter_set.adapters:
        probes["sol_stablecoin"] = (
            adapter_set.adapters["sol"],
            AdapterQuery(min_usd=min_usd, prices=prices, stablecoin_only=True),
        )

    reports = await asyncio.gather(*(probe_adapter(a, q, timeout=timeout) for a, q in probes.values()))
    return {
        "env": {name.upper(): on for name, on in adapter_set.indexers.items()},
        "prices": {asset.value: float(price) for asset, price in prices.items()},
        "routes": dict(zip(probes, reports)),
    }
