"""
Drift Instruction Encoder Unit Tests
====================================
Discriminators, borsh argument layouts and margin account ordering.
"""

import hashlib
import struct

import pytest
from solders.pubkey import Pubkey


class TestDiscriminators:

    @pytest.mark.parametrize("name", ["initialize_user_stats", "initialize_user", "deposit", "place_perp_order"])
    def test_anchor_global_namespace(self, name):
        from src.drift_engine.core.instructions import anchor_discriminator

        assert anchor_discriminator(name) == hashlib.sha256(f"global:{name}".encode()).digest()[:8]

    def test_constants_are_distinct(self):
        from src.drift_engine.core import instructions

        discriminators = {
            instructions.IX_INITIALIZE_USER_STATS,
            instructions.IX_INITIALIZE_USER,
            instructions.IX_DEPOSIT,
            instructions.IX_PLACE_PERP_ORDER,
        }
        assert len(discriminators) == 4


class TestOrderParams:

    def test_market_short_layout(self):
        from src.drift_engine.core.instructions import OrderParams
        from src.drift_engine.core.types import OrderType, PositionDirection

        data = OrderParams(
            market_index=2,
            direction=PositionDirection.SHORT,
            base_asset_amount=1_500_000_000,
            reduce_only=True,
        ).to_bytes()

        assert data[0] == OrderType.MARKET.value
        assert data[1] == 1  # perp
        assert data[2] == PositionDirection.SHORT.value
        assert struct.unpack_from("<Q", data, 4)[0] == 1_500_000_000
        assert struct.unpack_from("<Q", data, 12)[0] == 0
        assert struct.unpack_from("<H", data, 20)[0] == 2
        assert data[22] == 1

    def test_limit_price(self):
        from src.drift_engine.core.instructions import OrderParams
        from src.drift_engine.core.types import OrderType, PositionDirection

        data = OrderParams(
            market_index=0,
            direction=PositionDirection.LONG,
            base_asset_amount=10_000_000,
            order_type=OrderType.LIMIT,
            price=142_500_000,
        ).to_bytes()

        assert data[0] == OrderType.LIMIT.value
        assert struct.unpack_from("<Q", data, 12)[0] == 142_500_000

    def test_optional_fields(self):
        from src.drift_engine.core.instructions import OrderParams
        from src.drift_engine.core.types import PositionDirection

        plain = OrderParams(0, PositionDirection.LONG, 1).to_bytes()
        timed = OrderParams(0, PositionDirection.LONG, 1, max_ts=1_700_000_000).to_bytes()

        assert len(timed) == len(plain) + 8


class TestRemainingAccounts:

    def test_order_and_writability(self, registry):
        from src.drift_engine.core.accounts import get_perp_market_address, get_spot_market_address
        from src.drift_engine.core.instructions import build_remaining_accounts
        from src.drift_engine.core.types import MarketType

        usdc = registry.get(0, MarketType.SPOT)
        sol_perp = registry.get(0, MarketType.PERP)
        eth_perp = registry.get(2, MarketType.PERP)

        metas = build_remaining_accounts(
            spot_markets=[usdc],
            perp_markets=[eth_perp, sol_perp, sol_perp],
            writable_perp_indexes=[2],
        )
        keys = [m.pubkey for m in metas]

        # oracles (perp markets first), then spot, then perp in index order
        assert keys == [
            sol_perp.oracle,
            eth_perp.oracle,
            usdc.oracle,
            get_spot_market_address(0),
            get_perp_market_address(0),
            get_perp_market_address(2),
        ]
        assert not any(m.is_signer for m in metas)
        assert [m.is_writable for m in metas] == [False, False, False, False, False, True]


class TestEncoder:

    def test_initialize_user_data(self):
        from src.drift_engine.core.instructions import IX_INITIALIZE_USER, DriftInstructionEncoder

        ix = DriftInstructionEncoder(Pubkey.new_unique(), sub_account_id=1).initialize_user("Main Account")

        assert ix.data[:8] == IX_INITIALIZE_USER
        assert struct.unpack_from("<H", ix.data, 8)[0] == 1
        assert ix.data[10:] == b"Main Account" + b" " * 20

    def test_only_authority_signs(self, registry):
        from src.drift_engine.core.instructions import DriftInstructionEncoder, OrderParams
        from src.drift_engine.core.types import MarketType, PositionDirection

        authority = Pubkey.new_unique()
        encoder = DriftInstructionEncoder(authority)
        usdc = registry.get(0, MarketType.SPOT)
        instructions = [
            encoder.initialize_user_stats(),
            encoder.initialize_user(),
            encoder.deposit(usdc, 1_000_000, Pubkey.new_unique(), []),
            encoder.place_perp_order(OrderParams(0, PositionDirection.LONG, 10_000_000), []),
        ]

        for ix in instructions:
            signers = {m.pubkey for m in ix.accounts if m.is_signer}
            assert signers == {authority}

    def test_deposit_data(self, registry):
        from src.drift_engine.core.instructions import IX_DEPOSIT, DriftInstructionEncoder
        from src.drift_engine.core.types import MarketType

        usdc = registry.get(0, MarketType.SPOT)
        ix = DriftInstructionEncoder(Pubkey.new_unique()).deposit(usdc, 100_000_000, Pubkey.new_unique(), [])

        assert ix.data == IX_DEPOSIT + struct.pack("<HQ", 0, 100_000_000) + b"\x00"
        assert len(ix.accounts) == 7
