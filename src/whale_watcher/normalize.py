"""Unit conversion from chain-native integers to asset amounts and USD."""

from __future__ import annotations

import time
from decimal import Decimal, InvalidOperation

from whale_watcher.models import Asset, Chain, Transfer

WEI_DECIMALS = 18
SATOSHI_DECIMALS = 8
LAMPORT_DECIMALS = 9
STABLECOIN_DECIMALS = 6

NATIVE_DECIMALS: dict[Asset, int] = {
    Asset.ETH: WEI_DECIMALS,
    Asset.BTC: SATOSHI_DECIMALS,
    Asset.SOL: LAMPORT_DECIMALS,
    Asset.USDC: STABLECOIN_DECIMALS,
    Asset.USDT: STABLECOIN_DECIMALS,
}


def parse_raw_units(raw: int | str | bytes | None) -> int:
    """Parse an integer amount given as int, decimal string, 0x-hex string or bytes.

    Raises:
        ValueError: If the value cannot be read as a non-negative integer.
    """
    if raw is None:
        return 0
    if isinstance(raw, bool):
        raise ValueError("boolean is not an amount")
    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, (bytes, bytearray)):
        value = int.from_bytes(raw, "big") if raw else 0
    else:
        text = str(raw).strip()
        if not text:
            return 0
        if text.lower().startswith("0x"):
            value = int(text, 16) if len(text) > 2 else 0
        else:
            value = int(text)
    if value < 0:
        raise ValueError(f"negative amount: {raw!r}")
    return value


def to_amount(raw: int | str | bytes | None, decimals: int) -> Decimal:
    """Convert integer base units to a decimal asset amount."""
    return Decimal(parse_raw_units(raw)).scaleb(-decimals)


def native_amount(raw: int | str | bytes | None, asset: Asset) -> Decimal:
    """Convert base units using the asset's native decimal count."""
    return to_amount(raw, NATIVE_DECIMALS[asset])


def decimal_or_zero(value: object) -> Decimal:
    """Best-effort Decimal conversion for provider-supplied floats/strings."""
    if value is None:
        return Decimal(0)
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal(0)


def usd_value(amount: Decimal, price: Decimal) -> Decimal:
    return amount * price


def build_transfer(
    *,
    chain: Chain,
    asset: Asset,
    amount: Decimal,
    price: Decimal,
    min_usd: Decimal,
    from_address: str,
    to_address: str,
    tx_hash: str,
    timestamp: int | None = None,
) -> Transfer | None:
    """Build a Transfer if it qualifies, else return None.

    Zero-value records (failed calls, approvals) and records whose USD value
    falls below ``min_usd`` are dropped. A zero price is not an error: the
    resulting value is zero and only survives a zero threshold.
    """
    if amount <= 0 or not tx_hash:
        return None
    if price <= 0 and min_usd > 0:
        return None
    usd = usd_value(amount, price)
    if usd < min_usd:
        return None
    return Transfer(
        chain=chain,
        asset=asset,
        amount=amount,
        usd_value=usd,
        from_address=from_address or "",
        to_address=to_address or "",
        tx_hash=tx_hash,
        timestamp=int(timestamp) if timestamp else int(time.time()),
    )
