"""Native SOL and USDC-on-Solana transfers.

With a Helius key, parsed transfers come from the enhanced-transactions API.
Without one, native SOL is recovered by decoding System Program transfer
instructions from the most recent slots of a public node; stablecoin-only
mode is not available on that path.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import base58

from whale_watcher.adapters.base import ChainAdapter
from whale_watcher.adapters.strategy import MALFORMED_RECORD_ERRORS, Strategy, StrategyChain, paginate
from whale_watcher.models import AdapterQuery, Asset, Chain, FetchResult, Transfer
from whale_watcher.normalize import (
    STABLECOIN_DECIMALS,
    build_transfer,
    decimal_or_zero,
    native_amount,
    to_amount,
)
from whale_watcher.providers.errors import ProviderError
from whale_watcher.providers.solana import (
    SYSTEM_PROGRAM_ID,
    USDC_MINT,
    HeliusClient,
    SolanaRpcClient,
)

logger = logging.getLogger(__name__)

SYSTEM_TRANSFER_DISCRIMINANT = 2
# u32 instruction discriminant followed by u64 lamports, little-endian
_SYSTEM_TRANSFER_LAYOUT = struct.Struct("<IQ")

STABLECOIN_REQUIRES_INDEXER_NOTE = (
    "Solana stablecoin-only mode requires an indexer (e.g., Helius/Solscan Pro). "
    "This API returns no items in this mode."
)


@dataclass(frozen=True)
class SolAdapterConfig:
    """Slot window and indexer pagination bounds."""

    slots_to_scan: int = 4
    max_pages: int = 3
    page_limit: int = 100
    min_results: int = 1


def decode_system_transfer(data: bytes) -> int | None:
    """Lamports moved by a System Program transfer instruction, else None.

    Only the leading 12 bytes are read; trailing bytes are ignored.
    """
    if len(data) < _SYSTEM_TRANSFER_LAYOUT.size:
        return None
    discriminant, lamports = _SYSTEM_TRANSFER_LAYOUT.unpack_from(data)
    if discriminant != SYSTEM_TRANSFER_DISCRIMINANT:
        return None
    return lamports


def account_keys(tx: dict[str, Any]) -> list[str]:
    """Static account keys followed by addresses loaded from lookup tables."""
    message = tx["transaction"]["message"]
    keys = [k if isinstance(k, str) else k["pubkey"] for k in message.get("accountKeys") or []]
    loaded = (tx.get("meta") or {}).get("loadedAddresses") or {}
    keys.extend(loaded.get("writable") or [])
    keys.extend(loaded.get("readonly") or [])
    return keys


def native_transfers_in_block(block: dict[str, Any]) -> list[tuple[str, str, str, int]]:
    """Extract ``(signature, from, to, lamports)`` for every System transfer in a block."""
    found: list[tuple[str, str, str, int]] = []
    for tx in block.get("transactions") or []:
        try:
            if (tx.get("meta") or {}).get("err") is not None:
                continue
            signature = tx["transaction"]["signatures"][0]
            keys = account_keys(tx)
            for ix in tx["transaction"]["message"].get("instructions") or []:
                if keys[ix["programIdIndex"]] != SYSTEM_PROGRAM_ID:
                    continue
                lamports = decode_system_transfer(base58.b58decode(ix.get("data") or ""))
                accounts = ix.get("accounts") or []
                if lamports is None or len(accounts) < 2:
                    continue
                found.append((signature, keys[accounts[0]], keys[accounts[1]], lamports))
        except MALFORMED_RECORD_ERRORS as e:
            logger.debug("Skipping undecodable transaction: %s", e)
    return found


class SolAdapter(ChainAdapter):
    """Large SOL (or, in stablecoin-only mode, USDC) transfers on Solana."""

    name = "sol"

    def __init__(
        self,
        rpc: SolanaRpcClient,
        *,
        helius: HeliusClient | None = None,
        config: SolAdapterConfig | None = None,
    ) -> None:
        self._rpc = rpc
        self._helius = helius
        self._config = config or SolAdapterConfig()

    async def _fetch(self, query: AdapterQuery) -> FetchResult:
        if query.stablecoin_only:
            if self._helius is None:
                return FetchResult(items=[], note=STABLECOIN_REQUIRES_INDEXER_NOTE)
            strategies = [Strategy("helius-usdc", lambda: self._usdc_from_helius(query))]
        else:
            strategies = []
            if self._helius is not None:
                strategies.append(Strategy("helius-native", lambda: self._native_from_helius(query)))
            strategies.append(Strategy("slot-scan", lambda: self._native_from_slots(query)))

        outcome = await StrategyChain(self.name, strategies, min_results=self._config.min_results).run()
        return FetchResult(items=outcome.items)

    async def _helius_transactions(self, address: str) -> list[dict[str, Any]]:
        assert self._helius is not None
        helius = self._helius
        limit = self._config.page_limit

        async def fetch_page(before: str | None) -> tuple[list[dict[str, Any]], str | None]:
            page = await helius.get_address_transactions(address, before=before, limit=limit)
            last = page[-1] if len(page) >= limit else None
            cursor = last.get("signature") if isinstance(last, dict) else None
            return page, cursor

        return await paginate(fetch_page, max_pages=self._config.max_pages)

    async def _native_from_helius(self, query: AdapterQuery) -> list[Transfer]:
        price = query.price(Asset.SOL)
        items: list[Transfer] = []
        for tx in await self._helius_transactions(SYSTEM_PROGRAM_ID):
            try:
                moves = [m for m in tx.get("nativeTransfers") or [] if isinstance(m, dict)]
                if not moves:
                    continue
                largest = max(moves, key=lambda m: int(m.get("amount") or 0))
                transfer = build_transfer(
                    chain=Chain.SOLANA,
                    asset=Asset.SOL,
                    amount=native_amount(int(largest.get("amount") or 0), Asset.SOL),
                    price=price,
                    min_usd=query.min_usd,
                    from_address=str(largest.get("fromUserAccount") or ""),
                    to_address=str(largest.get("toUserAccount") or ""),
                    tx_hash=str(tx.get("signature") or ""),
                    timestamp=tx.get("timestamp"),
                )
            except MALFORMED_RECORD_ERRORS as e:
                logger.debug("Skipping malformed Helius tx: %s", e)
                continue
            if transfer is not None:
                items.append(transfer)
        return items

    async def _usdc_from_helius(self, query: AdapterQuery) -> list[Transfer]:
        price = query.price(Asset.USDC)
        if price <= 0:
            price = Decimal(1)
        items: list[Transfer] = []
        for tx in await self._helius_transactions(USDC_MINT):
            try:
                transfer = self._first_usdc_transfer(tx, price, query.min_usd)
            except MALFORMED_RECORD_ERRORS as e:
                logger.debug("Skipping malformed Helius token tx: %s", e)
                continue
            if transfer is not None:
                items.append(transfer)
        return items

    @staticmethod
    def _first_usdc_transfer(tx: dict[str, Any], price: Decimal, min_usd: Decimal) -> Transfer | None:
        for move in tx.get("tokenTransfers") or []:
            if not isinstance(move, dict) or move.get("mint") != USDC_MINT:
                continue
            try:
                transfer = build_transfer(
                    chain=Chain.SOLANA,
                    asset=Asset.USDC,
                    amount=_token_amount(move),
                    price=price,
                    min_usd=min_usd,
                    from_address=str(move.get("fromUserAccount") or ""),
                    to_address=str(move.get("toUserAccount") or ""),
                    tx_hash=str(tx.get("signature") or ""),
                    timestamp=tx.get("timestamp"),
                )
            except MALFORMED_RECORD_ERRORS as e:
                logger.debug("Skipping malformed token transfer in %s: %s", tx.get("signature"), e)
                continue
            if transfer is not None:
                return transfer
        return None

    async def _native_from_slots(self, query: AdapterQuery) -> list[Transfer]:
        head = await self._rpc.get_slot()
        price = query.price(Asset.SOL)
        items: list[Transfer] = []
        for slot in range(head, max(head - self._config.slots_to_scan, -1), -1):
            try:
                block = await self._rpc.get_block(slot)
            except ProviderError as e:
                logger.debug("Skipping slot %d: %s", slot, e)
                continue
            if block is None:
                continue
            for signature, source, destination, lamports in native_transfers_in_block(block):
                try:
                    transfer = build_transfer(
                        chain=Chain.SOLANA,
                        asset=Asset.SOL,
                        amount=native_amount(lamports, Asset.SOL),
                        price=price,
                        min_usd=query.min_usd,
                        from_address=source,
                        to_address=destination,
                        tx_hash=signature,
                        timestamp=block.get("blockTime"),
                    )
                except MALFORMED_RECORD_ERRORS as e:
                    logger.debug("Skipping malformed transfer %s in slot %d: %s", signature, slot, e)
                    continue
                if transfer is not None:
                    items.append(transfer)
        return items


def _token_amount(move: dict[str, Any]) -> Decimal:
    """Token units, exact from ``rawTokenAmount`` when present."""
    raw = move.get("rawTokenAmount")
    if isinstance(raw, dict) and raw.get("tokenAmount") is not None:
        return to_amount(raw["tokenAmount"], int(raw.get("decimals", STABLECOIN_DECIMALS)))
    return decimal_or_zero(move.get("tokenAmount"))
