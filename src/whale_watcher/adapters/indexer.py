"""Helpers shared by the Alchemy-backed Ethereum strategies."""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any

from whale_watcher.adapters.strategy import paginate
from whale_watcher.normalize import decimal_or_zero, parse_raw_units, to_amount
from whale_watcher.providers.alchemy import AlchemyClient

logger = logging.getLogger(__name__)


async def fetch_recent_asset_transfers(
    alchemy: AlchemyClient,
    *,
    categories: list[str],
    lookback_blocks: int,
    max_pages: int,
    contract_addresses: list[str] | None = None,
) -> list[dict[str, Any]]:
    """Page through transfers from ``head - lookback_blocks`` to latest."""
    head = await alchemy.block_number()
    from_block = max(head - lookback_blocks, 0)

    async def fetch_page(page_key: str | None) -> tuple[list[dict[str, Any]], str | None]:
        page = await alchemy.get_asset_transfers(
            from_block=from_block,
            categories=categories,
            contract_addresses=contract_addresses,
            page_key=page_key,
        )
        return page.transfers, page.page_key

    return await paginate(fetch_page, max_pages=max_pages)


def transfer_amount(record: dict[str, Any], default_decimals: int) -> Decimal:
    """Amount of an asset transfer in token units.

    ``rawContract.value`` (hex base units) is exact and preferred; the float
    ``value`` is only used when the raw value is absent.
    """
    raw = record.get("rawContract") or {}
    raw_value = raw.get("value")
    if raw_value:
        decimals = default_decimals
        if raw.get("decimal"):
            decimals = parse_raw_units(raw["decimal"])
        return to_amount(raw_value, decimals)
    return decimal_or_zero(record.get("value"))


def block_timestamp(record: dict[str, Any]) -> int | None:
    """Unix seconds from ``metadata.blockTimestamp`` (ISO 8601), if present."""
    text = (record.get("metadata") or {}).get("blockTimestamp")
    if not text:
        return None
    try:
        return int(datetime.fromisoformat(str(text).replace("Z", "+00:00")).timestamp())
    except ValueError:
        logger.debug("Unparseable blockTimestamp %r", text)
        return None
