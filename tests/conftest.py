"""Pytest configuration and fixtures."""

from decimal import Decimal

import pytest

from whale_watcher.models import Asset, Chain, Transfer


@pytest.fixture
def sample_prices() -> dict[Asset, Decimal]:
    """Spot prices used across adapter tests."""
    return {
        Asset.ETH: Decimal("4000"),
        Asset.BTC: Decimal("100000"),
        Asset.SOL: Decimal("200"),
        Asset.USDC: Decimal("1"),
        Asset.USDT: Decimal("1"),
    }


def make_transfer(
    tx_hash: str,
    usd: str | int,
    *,
    chain: Chain = Chain.ETHEREUM,
    asset: Asset = Asset.ETH,
    amount: str | int = "1",
    from_address: str = "0x" + "a" * 40,
    to_address: str = "0x" + "b" * 40,
    timestamp: int = 1_700_000_000,
) -> Transfer:
    return Transfer(
        chain=chain,
        asset=asset,
        amount=Decimal(str(amount)),
        usd_value=Decimal(str(usd)),
        from_address=from_address,
        to_address=to_address,
        tx_hash=tx_hash,
        timestamp=timestamp,
    )


@pytest.fixture
def transfer_factory():
    """Factory for Transfer objects with sensible defaults."""
    return make_transfer
