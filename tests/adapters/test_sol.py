"""Tests for the Solana adapter."""

from __future__ import annotations

import struct
from decimal import Decimal
from unittest.mock import AsyncMock

import base58
import pytest

from whale_watcher.adapters.sol import (
    STABLECOIN_REQUIRES_INDEXER_NOTE,
    SolAdapter,
    SolAdapterConfig,
    decode_system_transfer,
    native_transfers_in_block,
)
from whale_watcher.models import AdapterQuery, Asset, Chain
from whale_watcher.providers.errors import ProviderUnavailableError
from whale_watcher.providers.solana import SYSTEM_PROGRAM_ID, USDC_MINT

LAMPORTS_PER_SOL = 1_000_000_000
SENDER = "Sender1111111111111111111111111111111111111"
RECIPIENT = "Recipient111111111111111111111111111111111"
OTHER_PROGRAM = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"


def system_ix_data(discriminant: int, lamports: int) -> str:
    return base58.b58encode(struct.pack("<IQ", discriminant, lamports)).decode()


def raw_tx(signature: str, lamports: int, *, program: str = SYSTEM_PROGRAM_ID, discriminant: int = 2) -> dict:
    return {
        "meta": {"err": None, "loadedAddresses": {"writable": [], "readonly": []}},
        "transaction": {
            "signatures": [signature],
            "message": {
                "accountKeys": [SENDER, RECIPIENT, program],
                "instructions": [
                    {"programIdIndex": 2, "accounts": [0, 1], "data": system_ix_data(discriminant, lamports)}
                ],
            },
        },
    }


def block(txs: list[dict], block_time: int = 1_700_000_000) -> dict:
    return {"blockTime": block_time, "transactions": txs}


@pytest.fixture
def mock_rpc() -> AsyncMock:
    rpc = AsyncMock()
    rpc.get_slot = AsyncMock(return_value=300)
    rpc.get_block = AsyncMock(return_value=None)
    return rpc


class TestInstructionDecoding:
    def test_transfer(self) -> None:
        assert decode_system_transfer(struct.pack("<IQ", 2, 5 * LAMPORTS_PER_SOL)) == 5 * LAMPORTS_PER_SOL

    def test_other_discriminant(self) -> None:
        assert decode_system_transfer(struct.pack("<IQ", 0, 1)) is None

    def test_too_short(self) -> None:
        assert decode_system_transfer(b"\x02\x00\x00\x00") is None

    def test_trailing_bytes_ignored(self) -> None:
        data = struct.pack("<IQ", 2, LAMPORTS_PER_SOL) + b"\x00\x01"
        assert decode_system_transfer(data) == LAMPORTS_PER_SOL

    def test_block_extraction(self) -> None:
        found = native_transfers_in_block(
            block(
                [
                    raw_tx("sig-ok", 7 * LAMPORTS_PER_SOL),
                    raw_tx("sig-token", 7 * LAMPORTS_PER_SOL, program=OTHER_PROGRAM),
                    raw_tx("sig-create", 7 * LAMPORTS_PER_SOL, discriminant=0),
                ]
            )
        )
        assert found == [("sig-ok", SENDER, RECIPIENT, 7 * LAMPORTS_PER_SOL)]

    def test_failed_transaction_skipped(self) -> None:
        tx = raw_tx("sig-failed", LAMPORTS_PER_SOL)
        tx["meta"]["err"] = {"InstructionError": [0, "Custom"]}
        assert native_transfers_in_block(block([tx])) == []

    def test_malformed_transaction_skipped(self) -> None:
        found = native_transfers_in_block(block([{"transaction": {}}, raw_tx("sig", LAMPORTS_PER_SOL)]))
        assert [f[0] for f in found] == ["sig"]

    def test_lookup_table_accounts(self) -> None:
        tx = raw_tx("sig-alt", LAMPORTS_PER_SOL)
        tx["meta"]["loadedAddresses"]["writable"] = ["LoadedDest11111111111111111111111111111111"]
        tx["transaction"]["message"]["instructions"][0]["accounts"] = [0, 3]
        found = native_transfers_in_block(block([tx]))
        assert found[0][2] == "LoadedDest11111111111111111111111111111111"


class TestSolRawScan:
    @pytest.mark.asyncio
    async def test_scans_recent_slots(self, mock_rpc, sample_prices) -> None:
        def get_block(slot: int):
            if slot == 299:
                return None
            return block([raw_tx(f"sig{slot}", 1000 * LAMPORTS_PER_SOL)], block_time=1_700_000_000 + slot)

        mock_rpc.get_block.side_effect = get_block
        adapter = SolAdapter(mock_rpc, config=SolAdapterConfig(slots_to_scan=4))

        result = await adapter.fetch(AdapterQuery(min_usd=Decimal(100_000), prices=sample_prices))

        assert mock_rpc.get_block.await_count == 4
        assert sorted(t.tx_hash for t in result.items) == ["sig297", "sig298", "sig300"]
        transfer = result.items[0]
        assert transfer.chain == Chain.SOLANA
        assert transfer.asset == Asset.SOL
        assert transfer.amount == Decimal(1000)
        assert transfer.usd_value == Decimal(200_000)

    @pytest.mark.asyncio
    async def test_slot_failure_skipped(self, mock_rpc, sample_prices) -> None:
        def get_block(slot: int):
            if slot == 300:
                raise ProviderUnavailableError("HTTP 429", status=429)
            return block([raw_tx(f"sig{slot}", 1000 * LAMPORTS_PER_SOL)])

        mock_rpc.get_block.side_effect = get_block
        adapter = SolAdapter(mock_rpc, config=SolAdapterConfig(slots_to_scan=2))

        result = await adapter.fetch(AdapterQuery(min_usd=Decimal(0), prices=sample_prices))

        assert [t.tx_hash for t in result.items] == ["sig299"]


class TestSolStablecoinOnly:
    @pytest.mark.asyncio
    async def test_without_indexer_returns_note(self, mock_rpc, sample_prices) -> None:
        adapter = SolAdapter(mock_rpc)

        result = await adapter.fetch(AdapterQuery(prices=sample_prices, stablecoin_only=True))

        assert result.items == []
        assert result.note == STABLECOIN_REQUIRES_INDEXER_NOTE
        assert result.to_dict() == {"items": [], "note": STABLECOIN_REQUIRES_INDEXER_NOTE}
        mock_rpc.get_slot.assert_not_called()

    @pytest.mark.asyncio
    async def test_with_indexer_filters_to_usdc_mint(self, mock_rpc, sample_prices) -> None:
        helius = AsyncMock()
        helius.get_address_transactions = AsyncMock(
            return_value=[
                {
                    "signature": "sig-usdc",
                    "timestamp": 1_700_000_123,
                    "tokenTransfers": [
                        {"mint": "OtherMint", "tokenAmount": 9e12, "fromUserAccount": "x", "toUserAccount": "y"},
                        {
                            "mint": USDC_MINT,
                            "tokenAmount": 3_000_000.0,
                            "fromUserAccount": SENDER,
                            "toUserAccount": RECIPIENT,
                        },
                    ],
                },
                {
                    "signature": "sig-small",
                    "timestamp": 1_700_000_124,
                    "tokenTransfers": [{"mint": USDC_MINT, "tokenAmount": 5.0}],
                },
            ]
        )
        adapter = SolAdapter(mock_rpc, helius=helius)

        result = await adapter.fetch(
            AdapterQuery(min_usd=Decimal(1_000_000), prices=sample_prices, stablecoin_only=True)
        )

        assert [t.tx_hash for t in result.items] == ["sig-usdc"]
        transfer = result.items[0]
        assert transfer.asset == Asset.USDC
        assert transfer.amount == Decimal(3_000_000)
        assert transfer.timestamp == 1_700_000_123
        assert helius.get_address_transactions.await_args.args[0] == USDC_MINT
        mock_rpc.get_slot.assert_not_called()


class TestSolHeliusNative:
    @pytest.mark.asyncio
    async def test_native_transfers_from_indexer(self, mock_rpc, sample_prices) -> None:
        helius = AsyncMock()
        helius.get_address_transactions = AsyncMock(
            return_value=[
                {
                    "signature": "sig-native",
                    "timestamp": 1_700_000_200,
                    "nativeTransfers": [
                        {"amount": 5000, "fromUserAccount": "fee", "toUserAccount": "payer"},
                        {"amount": 600 * LAMPORTS_PER_SOL, "fromUserAccount": SENDER, "toUserAccount": RECIPIENT},
                    ],
                }
            ]
        )
        adapter = SolAdapter(mock_rpc, helius=helius)

        result = await adapter.fetch(AdapterQuery(min_usd=Decimal(100_000), prices=sample_prices))

        assert [t.tx_hash for t in result.items] == ["sig-native"]
        assert result.items[0].from_address == SENDER
        assert result.items[0].usd_value == Decimal(120_000)
        mock_rpc.get_slot.assert_not_called()

    @pytest.mark.asyncio
    async def test_thin_indexer_merged_with_slot_scan(self, mock_rpc, sample_prices) -> None:
        helius = AsyncMock()
        helius.get_address_transactions = AsyncMock(return_value=[])
        mock_rpc.get_block.side_effect = lambda slot: block([raw_tx(f"sig{slot}", 1000 * LAMPORTS_PER_SOL)])
        adapter = SolAdapter(mock_rpc, helius=helius, config=SolAdapterConfig(slots_to_scan=1))

        result = await adapter.fetch(AdapterQuery(min_usd=Decimal(0), prices=sample_prices))

        assert [t.tx_hash for t in result.items] == ["sig300"]


class TestSolMalformedRecords:
    """A single badly shaped record is skipped; the rest of the batch is kept."""

    def test_non_dict_meta_in_block(self) -> None:
        bad = raw_tx("sig-bad", LAMPORTS_PER_SOL)
        bad["meta"] = "oops"
        found = native_transfers_in_block(block([bad, raw_tx("sig-good", LAMPORTS_PER_SOL)]))
        assert [f[0] for f in found] == ["sig-good"]

    @pytest.mark.asyncio
    async def test_helius_native_bad_entries(self, mock_rpc, sample_prices) -> None:
        helius = AsyncMock()
        helius.get_address_transactions = AsyncMock(
            return_value=[
                "not-a-tx",
                {"signature": "sig-bad", "nativeTransfers": [{"amount": "lots"}]},
                {
                    "signature": "sig-good",
                    "timestamp": 1_700_000_200,
                    "nativeTransfers": [
                        {"amount": 10 * LAMPORTS_PER_SOL, "fromUserAccount": SENDER, "toUserAccount": RECIPIENT}
                    ],
                },
            ]
        )
        adapter = SolAdapter(mock_rpc, helius=helius)

        result = await adapter.fetch(AdapterQuery(min_usd=Decimal(0), prices=sample_prices))

        assert [t.tx_hash for t in result.items] == ["sig-good"]
        mock_rpc.get_slot.assert_not_called()

    @pytest.mark.asyncio
    async def test_helius_usdc_bad_move_then_good(self, mock_rpc, sample_prices) -> None:
        helius = AsyncMock()
        helius.get_address_transactions = AsyncMock(
            return_value=[
                42,
                {
                    "signature": "sig-usdc",
                    "timestamp": 1_700_000_300,
                    "tokenTransfers": [
                        {"mint": USDC_MINT, "rawTokenAmount": {"tokenAmount": "1", "decimals": "six"}},
                        {
                            "mint": USDC_MINT,
                            "tokenAmount": 2_000_000.0,
                            "fromUserAccount": SENDER,
                            "toUserAccount": RECIPIENT,
                        },
                    ],
                },
            ]
        )
        adapter = SolAdapter(mock_rpc, helius=helius)

        result = await adapter.fetch(
            AdapterQuery(min_usd=Decimal(1_000_000), prices=sample_prices, stablecoin_only=True)
        )

        assert [t.tx_hash for t in result.items] == ["sig-usdc"]
        assert result.items[0].amount == Decimal(2_000_000)
