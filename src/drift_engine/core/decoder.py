"""
Account Decoder
===============
The single place raw account bytes become typed objects.

Drift User Account Structure (prefix read here):
- 8 bytes:   Anchor discriminator (sha256("account:User")[:8])
- 32 bytes:  authority
- 32 bytes:  delegate
- 32 bytes:  name
- 8 * 40:    spotPositions
- 8 * 96:    perpPositions

SpotPosition (40 bytes):
- scaledBalance u64 @0, openBids i64 @8, openAsks i64 @16,
  cumulativeDeposits i64 @24, marketIndex u16 @32, balanceType u8 @34,
  openOrders u8 @35

PerpPosition (96 bytes):
- lastCumulativeFundingRate i64 @0, baseAssetAmount i64 @8,
  quoteAssetAmount i64 @16, quoteBreakEvenAmount i64 @24,
  quoteEntryAmount i64 @32, openBids @40, openAsks @48, settledPnl @56,
  lpShares u64 @64, marketIndex u16 @92, openOrders u8 @94
"""

import hashlib
import struct
from typing import List

from solders.pubkey import Pubkey

from src.drift_engine.core.types import (
    OracleSource,
    PerpPosition,
    SpotBalanceType,
    SpotPosition,
    TokenAccount,
    UserAccount,
)


class AccountDecodeError(ValueError):
    """Account bytes do not match the expected layout."""


def _anchor_account_discriminator(name: str) -> bytes:
    return hashlib.sha256(f"account:{name}".encode()).digest()[:8]


USER_DISCRIMINATOR = _anchor_account_discriminator("User")

DISCRIMINATOR = 8
AUTHORITY = 32
DELEGATE = 32
NAME = 32
SPOT_POSITION_SIZE = 40
PERP_POSITION_SIZE = 96
MAX_SPOT_POSITIONS = 8
MAX_PERP_POSITIONS = 8

SPOT_POSITIONS_OFFSET = DISCRIMINATOR + AUTHORITY + DELEGATE + NAME
PERP_POSITIONS_OFFSET = SPOT_POSITIONS_OFFSET + MAX_SPOT_POSITIONS * SPOT_POSITION_SIZE
USER_PREFIX_SIZE = PERP_POSITIONS_OFFSET + MAX_PERP_POSITIONS * PERP_POSITION_SIZE

TOKEN_ACCOUNT_SIZE = 165

PYTH_MAGIC = 0xA1B2C3D4
PYTH_EXPO_OFFSET = 20
PYTH_AGG_PRICE_OFFSET = 208


# =============================================================================
# DRIFT USER
# =============================================================================

def decode_user_account(data: bytes, sub_account_id: int = 0) -> UserAccount:
    """Decode a Drift User account, dropping empty position slots."""
    if len(data) < USER_PREFIX_SIZE:
        raise AccountDecodeError(
            f"User account too small: {len(data)} < {USER_PREFIX_SIZE} bytes"
        )
    if data[:DISCRIMINATOR] != USER_DISCRIMINATOR:
        raise AccountDecodeError("Account is not a Drift User (discriminator mismatch)")

    authority = Pubkey.from_bytes(data[DISCRIMINATOR:DISCRIMINATOR + AUTHORITY])

    return UserAccount(
        authority=authority,
        sub_account_id=sub_account_id,
        spot_positions=_decode_spot_positions(data),
        perp_positions=_decode_perp_positions(data),
    )


def _decode_spot_positions(data: bytes) -> List[SpotPosition]:
    positions = []
    for i in range(MAX_SPOT_POSITIONS):
        offset = SPOT_POSITIONS_OFFSET + i * SPOT_POSITION_SIZE
        scaled_balance = struct.unpack_from("<Q", data, offset)[0]
        market_index = struct.unpack_from("<H", data, offset + 32)[0]
        balance_type = data[offset + 34]
        open_orders = data[offset + 35]

        if scaled_balance == 0 and open_orders == 0:
            continue
        if balance_type not in (0, 1):
            raise AccountDecodeError(f"Invalid spot balance type {balance_type} in slot {i}")

        positions.append(SpotPosition(
            market_index=market_index,
            scaled_balance=scaled_balance,
            balance_type=SpotBalanceType(balance_type),
            open_orders=open_orders,
        ))
    return positions


def _decode_perp_positions(data: bytes) -> List[PerpPosition]:
    positions = []
    for i in range(MAX_PERP_POSITIONS):
        offset = PERP_POSITIONS_OFFSET + i * PERP_POSITION_SIZE
        base_asset_amount = struct.unpack_from("<q", data, offset + 8)[0]
        quote_asset_amount = struct.unpack_from("<q", data, offset + 16)[0]
        quote_entry_amount = struct.unpack_from("<q", data, offset + 32)[0]
        settled_pnl = struct.unpack_from("<q", data, offset + 56)[0]
        lp_shares = struct.unpack_from("<Q", data, offset + 64)[0]
        market_index = struct.unpack_from("<H", data, offset + 92)[0]
        open_orders = data[offset + 94]

        if base_asset_amount == 0 and quote_asset_amount == 0 and open_orders == 0 and lp_shares == 0:
            continue

        positions.append(PerpPosition(
            market_index=market_index,
            base_asset_amount=base_asset_amount,
            quote_asset_amount=quote_asset_amount,
            quote_entry_amount=quote_entry_amount,
            settled_pnl=settled_pnl,
            lp_shares=lp_shares,
            open_orders=open_orders,
        ))
    return positions


# =============================================================================
# SPL TOKEN
# =============================================================================

def decode_token_account(address: Pubkey, data: bytes) -> TokenAccount:
    """SPL token account: mint @0, owner @32, amount u64 @64."""
    if len(data) < TOKEN_ACCOUNT_SIZE:
        raise AccountDecodeError(
            f"Token account {address} too small: {len(data)} < {TOKEN_ACCOUNT_SIZE} bytes"
        )
    return TokenAccount(
        address=address,
        mint=Pubkey.from_bytes(data[0:32]),
        owner=Pubkey.from_bytes(data[32:64]),
        amount=struct.unpack_from("<Q", data, 64)[0],
    )


# =============================================================================
# ORACLES
# =============================================================================

def decode_oracle_price(data: bytes, source: OracleSource) -> float:
    """Return the oracle price in quote units."""
    if source is OracleSource.QUOTE_ASSET:
        return 1.0
    if source is OracleSource.PYTH:
        return _decode_pyth_push(data)
    if source is OracleSource.PYTH_PULL:
        return _decode_pyth_pull(data)
    raise AccountDecodeError(f"Unsupported oracle source {source}")


def _decode_pyth_push(data: bytes) -> float:
    if len(data) < PYTH_AGG_PRICE_OFFSET + 8:
        raise AccountDecodeError("Pyth price account too small")
    magic = struct.unpack_from("<I", data, 0)[0]
    if magic != PYTH_MAGIC:
        raise AccountDecodeError(f"Bad Pyth magic 0x{magic:08x}")
    expo = struct.unpack_from("<i", data, PYTH_EXPO_OFFSET)[0]
    price = struct.unpack_from("<q", data, PYTH_AGG_PRICE_OFFSET)[0]
    return price * (10 ** expo)


def _decode_pyth_pull(data: bytes) -> float:
    """
    PriceUpdateV2: discriminator(8) + write_authority(32) + verification_level
    (1 byte tag, +1 byte num_signatures when Partial) + feed_id(32) + price i64
    + conf u64 + exponent i32.
    """
    offset = DISCRIMINATOR + 32
    if len(data) < offset + 1:
        raise AccountDecodeError("Pyth price update too small")
    level = data[offset]
    if level == 0:
        offset += 2
    elif level == 1:
        offset += 1
    else:
        raise AccountDecodeError(f"Unknown Pyth verification level {level}")
    offset += 32  # feed_id
    if len(data) < offset + 20:
        raise AccountDecodeError("Pyth price update truncated")
    price = struct.unpack_from("<q", data, offset)[0]
    exponent = struct.unpack_from("<i", data, offset + 16)[0]
    return price * (10 ** exponent)
