"""
Account Decoder Unit Tests
==========================
User, token and oracle layouts from raw bytes.
"""

import struct

import pytest
from solders.pubkey import Pubkey

from tests.mocks import make_pyth_price_data, make_token_account_data, make_user_account_data


class TestUserAccount:
    """decode_user_account"""

    def test_positions_and_empty_slots(self):
        from src.drift_engine.core.decoder import decode_user_account
        from src.drift_engine.core.types import PositionDirection

        authority = Pubkey.new_unique()
        data = make_user_account_data(
            authority,
            spot=[(0, 250_000_000)],
            perp=[(0, -2_000_000_000, 290_000_000, -300_000_000), (2, 500_000_000, -1_000_000_000, -1_000_000_000)],
        )

        account = decode_user_account(data, sub_account_id=3)

        assert account.authority == authority
        assert account.sub_account_id == 3
        assert [p.market_index for p in account.spot_positions] == [0]
        assert account.spot_positions[0].scaled_balance == 250_000_000
        assert len(account.perp_positions) == 2

        short = account.perp_position(0)
        assert short.base_asset_amount == -2_000_000_000
        assert short.quote_entry_amount == -300_000_000
        assert short.direction is PositionDirection.SHORT
        assert account.perp_position(2).direction is PositionDirection.LONG
        assert account.perp_position(1) is None
        assert account.active_perp_market_indexes() == [0, 2]

    def test_flat_slots_with_pnl_or_orders_stay_active(self):
        from src.drift_engine.core.decoder import decode_user_account

        data = make_user_account_data(
            Pubkey.new_unique(),
            spot=[(1, 0, 3)],
            perp=[(1, 0, -5_000_000, 0), (2, 0, 0, 0, 1)],
        )

        account = decode_user_account(data)

        assert account.spot_positions[0].open_orders == 3
        assert account.perp_position(2).open_orders == 1
        assert account.active_spot_market_indexes() == [1]
        assert account.active_perp_market_indexes() == [1, 2]

    def test_fresh_account_has_no_positions(self):
        from src.drift_engine.core.decoder import decode_user_account

        account = decode_user_account(make_user_account_data(Pubkey.new_unique()))

        assert account.spot_positions == []
        assert account.perp_positions == []

    def test_wrong_discriminator(self):
        from src.drift_engine.core.decoder import AccountDecodeError, decode_user_account

        data = bytearray(make_user_account_data(Pubkey.new_unique()))
        data[:8] = b"\x00" * 8

        with pytest.raises(AccountDecodeError):
            decode_user_account(bytes(data))

    def test_truncated(self):
        from src.drift_engine.core.decoder import AccountDecodeError, decode_user_account

        data = make_user_account_data(Pubkey.new_unique())

        with pytest.raises(AccountDecodeError):
            decode_user_account(data[:200])

    def test_invalid_balance_type(self):
        from src.drift_engine.core import decoder

        data = bytearray(make_user_account_data(Pubkey.new_unique(), spot=[(1, 5)]))
        data[decoder.SPOT_POSITIONS_OFFSET + 34] = 7

        with pytest.raises(decoder.AccountDecodeError):
            decoder.decode_user_account(bytes(data))


class TestTokenAccount:
    """decode_token_account"""

    def test_fields(self):
        from src.drift_engine.core.decoder import decode_token_account

        address, mint, owner = Pubkey.new_unique(), Pubkey.new_unique(), Pubkey.new_unique()

        account = decode_token_account(address, make_token_account_data(mint, owner, 42_000_000))

        assert account.address == address
        assert account.mint == mint
        assert account.owner == owner
        assert account.amount == 42_000_000

    def test_too_small(self):
        from src.drift_engine.core.decoder import AccountDecodeError, decode_token_account

        with pytest.raises(AccountDecodeError):
            decode_token_account(Pubkey.new_unique(), b"\x00" * 64)


class TestOraclePrice:
    """decode_oracle_price"""

    def test_pyth_push(self):
        from src.drift_engine.core.decoder import decode_oracle_price
        from src.drift_engine.core.types import OracleSource

        price = decode_oracle_price(make_pyth_price_data(14_512_345_678, -8), OracleSource.PYTH)

        assert price == pytest.approx(145.12345678)

    def test_pyth_bad_magic(self):
        from src.drift_engine.core.decoder import AccountDecodeError, decode_oracle_price
        from src.drift_engine.core.types import OracleSource

        data = bytearray(make_pyth_price_data(1, 0))
        struct.pack_into("<I", data, 0, 0xDEADBEEF)

        with pytest.raises(AccountDecodeError):
            decode_oracle_price(bytes(data), OracleSource.PYTH)

    def test_pyth_pull_full_verification(self):
        from src.drift_engine.core.decoder import decode_oracle_price
        from src.drift_engine.core.types import OracleSource

        data = bytearray(8 + 32 + 1 + 32 + 20)
        data[40] = 1  # Full
        struct.pack_into("<q", data, 73, 6_500_000_000_000)
        struct.pack_into("<i", data, 89, -8)

        assert decode_oracle_price(bytes(data), OracleSource.PYTH_PULL) == pytest.approx(65_000.0)

    def test_pyth_pull_partial_verification(self):
        from src.drift_engine.core.decoder import decode_oracle_price
        from src.drift_engine.core.types import OracleSource

        data = bytearray(8 + 32 + 2 + 32 + 20)
        data[40] = 0  # Partial, followed by num_signatures
        struct.pack_into("<q", data, 74, 312_000)
        struct.pack_into("<i", data, 90, -2)

        assert decode_oracle_price(bytes(data), OracleSource.PYTH_PULL) == pytest.approx(3_120.0)

    def test_quote_asset_is_one(self):
        from src.drift_engine.core.decoder import decode_oracle_price
        from src.drift_engine.core.types import OracleSource

        assert decode_oracle_price(b"", OracleSource.QUOTE_ASSET) == 1.0
