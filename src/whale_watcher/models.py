"""Core data models shared by adapters, the aggregator and the alerter."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

DEFAULT_MIN_USD = Decimal("1000000")


class Chain(str, Enum):
    """Blockchains covered by the feed."""

    ETHEREUM = "ethereum"
    BITCOIN = "bitcoin"
    SOLANA = "solana"


class Asset(str, Enum):
    """Kinds of value a transfer can move."""

    ETH = "ETH"
    USDC = "USDC"
    USDT = "USDT"
    BTC = "BTC"
    SOL = "SOL"


STABLECOINS = frozenset({Asset.USDC, Asset.USDT})


@dataclass(frozen=True)
class Transfer:
    """A single qualifying value transfer, normalized across chains."""

    chain: Chain
    asset: Asset
    amount: Decimal
    usd_value: Decimal
    from_address: str
    to_address: str
    tx_hash: str
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        """Render the feed wire shape."""
        return {
            "chain": self.chain.value,
            "asset": self.asset.value,
            "amount": float(self.amount),
            "usd": float(self.usd_value),
            "from": self.from_address,
            "to": self.to_address,
            "hash": self.tx_hash,
            "ts": self.timestamp,
        }


@dataclass(frozen=True)
class AdapterQuery:
    """Input shared read-only by every adapter during one poll."""

    min_usd: Decimal = DEFAULT_MIN_USD
    prices: Mapping[Asset, Decimal] = field(default_factory=dict)
    stablecoin_only: bool = False

    def price(self, asset: Asset) -> Decimal:
        """Return the caller-supplied USD price, or 0 when unknown."""
        value = self.prices.get(asset)
        if value is None:
            return Decimal(0)
        return Decimal(str(value))


@dataclass
class FetchResult:
    """Adapter output: qualifying transfers plus an optional capability note."""

    items: list[Transfer] = field(default_factory=list)
    note: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"items": [t.to_dict() for t in self.items]}
        if self.note:
            data["note"] = self.note
        return data


@dataclass
class FeedResult:
    """Merged top-N feed for one poll cycle."""

    items: list[Transfer] = field(default_factory=list)
    notes: dict[str, str] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"items": [t.to_dict() for t in self.items]}


def sort_by_usd(transfers: list[Transfer]) -> list[Transfer]:
    """Stable sort, descending by USD value."""
    return sorted(transfers, key=lambda t: t.usd_value, reverse=True)
