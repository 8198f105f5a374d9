"""Alert payloads and human-readable transfer summaries.

This module turns Transfer objects into the JSON document posted to the
user's webhook and into short one-line summaries for log output.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from whale_watcher.models import Chain, Transfer

ALERT_EVENT = "whale_transfer"

EXPLORER_TX_URLS: dict[Chain, str] = {
    Chain.ETHEREUM: "https://etherscan.io/tx/{hash}",
    Chain.BITCOIN: "https://mempool.space/tx/{hash}",
    Chain.SOLANA: "https://explorer.solana.com/tx/{hash}",
}


def short_address(address: str, chars: int = 4) -> str:
    """Shorten an address or hash to ``0x1234...5678`` form."""
    if len(address) < chars * 2 + 4:
        return address
    prefix = chars + 2 if address.startswith("0x") else chars
    return f"{address[:prefix]}...{address[-chars:]}"


def format_usd(amount: Decimal) -> str:
    """Format a USD amount with commas and 2 decimal places."""
    return f"${amount:,.2f}"


def format_amount(amount: Decimal, places: int = 4) -> str:
    """Format an asset amount with commas, trimming trailing zeros."""
    text = f"{amount:,.{places}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def explorer_url(transfer: Transfer) -> str:
    """Block explorer link for the transfer's transaction."""
    return EXPLORER_TX_URLS[transfer.chain].format(hash=transfer.tx_hash)


def build_payload(transfer: Transfer, threshold: Decimal) -> dict[str, Any]:
    """JSON body posted to the alert webhook."""
    return {
        "event": ALERT_EVENT,
        "chain": transfer.chain.value,
        "asset": transfer.asset.value,
        "amount": float(transfer.amount),
        "usd": float(transfer.usd_value),
        "from": transfer.from_address,
        "to": transfer.to_address,
        "hash": transfer.tx_hash,
        "url": explorer_url(transfer),
        "ts": transfer.timestamp,
        "threshold": float(threshold),
    }


def summary_line(transfer: Transfer) -> str:
    """e.g. ``ethereum 5 ETH ($20,000.00) 0xabcd...1234 -> 0x9876...5432``."""
    return (
        f"{transfer.chain.value} {format_amount(transfer.amount)} {transfer.asset.value} "
        f"({format_usd(transfer.usd_value)}) "
        f"{short_address(transfer.from_address)} -> {short_address(transfer.to_address)}"
    )
