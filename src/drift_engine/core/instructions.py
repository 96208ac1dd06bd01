"""
Drift Instruction Encoder
=========================
Builds raw Drift Protocol instructions as solders ``Instruction`` objects.

Anchor instructions are ``sha256("global:<name>")[:8]`` followed by the
borsh-encoded arguments. Only the user authority is ever marked as a signer;
it is also the payer of every rent-bearing account created here.

References:
- Drift SDK: https://github.com/drift-labs/protocol-v2
"""

from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass
from typing import Iterable, List, Optional

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from solders.system_program import TransferParams, transfer
from solders.sysvar import RENT
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID
from spl.token.instructions import SyncNativeParams, sync_native

from src.drift_engine.core.accounts import (
    DRIFT_PROGRAM_ID,
    get_perp_market_address,
    get_spot_market_address,
    get_spot_market_vault_address,
    get_state_address,
    get_user_address,
    get_user_stats_address,
)
from src.drift_engine.core.types import (
    MarketDescriptor,
    MarketType,
    OrderType,
    PositionDirection,
)


def anchor_discriminator(name: str) -> bytes:
    return hashlib.sha256(f"global:{name}".encode()).digest()[:8]


IX_INITIALIZE_USER_STATS = anchor_discriminator("initialize_user_stats")
IX_INITIALIZE_USER = anchor_discriminator("initialize_user")
IX_DEPOSIT = anchor_discriminator("deposit")
IX_PLACE_PERP_ORDER = anchor_discriminator("place_perp_order")

# Associated Token Account program: CreateIdempotent
ATA_CREATE_IDEMPOTENT = bytes([1])

DEFAULT_ACCOUNT_NAME = "Main Account"


def _option(fmt: str, value) -> bytes:
    if value is None:
        return b"\x00"
    return b"\x01" + struct.pack(fmt, value)


def encode_name(name: str) -> bytes:
    raw = name.encode("utf-8")[:32]
    return raw + b" " * (32 - len(raw))


# =============================================================================
# ORDER PARAMS
# =============================================================================

@dataclass(frozen=True)
class OrderParams:
    """Parameters for a Drift perp order."""

    market_index: int
    direction: PositionDirection
    base_asset_amount: int
    order_type: OrderType = OrderType.MARKET
    market_type: MarketType = MarketType.PERP
    reduce_only: bool = False
    price: int = 0  # 0 for market orders (PRICE_PRECISION = 1e6)
    user_order_id: int = 0
    max_ts: Optional[int] = None
    auction_duration: Optional[int] = None

    def to_bytes(self) -> bytes:
        """Borsh layout of Drift's OrderParams."""
        data = bytearray()
        data.append(self.order_type.value)
        data.append(self.market_type.value)
        data.append(self.direction.value)
        data.append(self.user_order_id)
        data.extend(struct.pack("<Q", self.base_asset_amount))
        data.extend(struct.pack("<Q", self.price))
        data.extend(struct.pack("<H", self.market_index))
        data.append(1 if self.reduce_only else 0)
        data.append(0)  # post_only: None
        data.append(0)  # bit_flags
        data.extend(_option("<q", self.max_ts))
        data.extend(_option("<Q", None))  # trigger_price
        data.append(0)  # trigger_condition: Above
        data.extend(_option("<i", None))  # oracle_price_offset
        data.extend(_option("<B", self.auction_duration))
        data.extend(_option("<q", None))  # auction_start_price
        data.extend(_option("<q", None))  # auction_end_price
        return bytes(data)


# =============================================================================
# REMAINING ACCOUNTS
# =============================================================================

def build_remaining_accounts(
    spot_markets: Iterable[MarketDescriptor],
    perp_markets: Iterable[MarketDescriptor],
    writable_spot_indexes: Iterable[int] = (),
    writable_perp_indexes: Iterable[int] = (),
    program_id: Pubkey = DRIFT_PROGRAM_ID,
) -> List[AccountMeta]:
    """
    Margin accounts in the order the Drift program reads them:
    oracles, then spot markets, then perp markets. Duplicates are dropped.
    """
    spot_markets = _dedupe(spot_markets)
    perp_markets = _dedupe(perp_markets)
    writable_spot = set(writable_spot_indexes)
    writable_perp = set(writable_perp_indexes)

    metas: List[AccountMeta] = []
    seen_oracles = set()
    for market in perp_markets + spot_markets:
        if market.oracle in seen_oracles or market.oracle == Pubkey.default():
            continue
        seen_oracles.add(market.oracle)
        metas.append(AccountMeta(market.oracle, is_signer=False, is_writable=False))

    for market in spot_markets:
        metas.append(AccountMeta(
            get_spot_market_address(market.market_index, program_id),
            is_signer=False,
            is_writable=market.market_index in writable_spot,
        ))

    for market in perp_markets:
        metas.append(AccountMeta(
            get_perp_market_address(market.market_index, program_id),
            is_signer=False,
            is_writable=market.market_index in writable_perp,
        ))

    return metas


def _dedupe(markets: Iterable[MarketDescriptor]) -> List[MarketDescriptor]:
    unique = {}
    for market in markets:
        unique.setdefault(market.market_index, market)
    return [unique[k] for k in sorted(unique)]


# =============================================================================
# DRIFT INSTRUCTIONS
# =============================================================================

class DriftInstructionEncoder:
    """
    Encodes Drift instructions for one authority / sub-account.

    Example:
        >>> encoder = DriftInstructionEncoder(wallet_pubkey)
        >>> ix = encoder.place_perp_order(params, remaining_accounts)
    """

    def __init__(self, authority: Pubkey, sub_account_id: int = 0,
                 program_id: Pubkey = DRIFT_PROGRAM_ID):
        self.authority = authority
        self.sub_account_id = sub_account_id
        self.program_id = program_id

        self.state = get_state_address(program_id)
        self.user_account = get_user_address(authority, sub_account_id, program_id)
        self.user_stats = get_user_stats_address(authority, program_id)

    def initialize_user_stats(self) -> Instruction:
        accounts = [
            AccountMeta(self.user_stats, is_signer=False, is_writable=True),
            AccountMeta(self.state, is_signer=False, is_writable=True),
            AccountMeta(self.authority, is_signer=True, is_writable=False),
            AccountMeta(self.authority, is_signer=True, is_writable=True),  # payer
            AccountMeta(RENT, is_signer=False, is_writable=False),
            AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        ]
        return Instruction(self.program_id, IX_INITIALIZE_USER_STATS, accounts)

    def initialize_user(self, name: str = DEFAULT_ACCOUNT_NAME) -> Instruction:
        data = IX_INITIALIZE_USER + struct.pack("<H", self.sub_account_id) + encode_name(name)
        accounts = [
            AccountMeta(self.user_account, is_signer=False, is_writable=True),
            AccountMeta(self.user_stats, is_signer=False, is_writable=True),
            AccountMeta(self.state, is_signer=False, is_writable=True),
            AccountMeta(self.authority, is_signer=True, is_writable=False),
            AccountMeta(self.authority, is_signer=True, is_writable=True),  # payer
            AccountMeta(RENT, is_signer=False, is_writable=False),
            AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        ]
        return Instruction(self.program_id, data, accounts)

    def deposit(
        self,
        spot_market: MarketDescriptor,
        amount: int,
        token_account: Pubkey,
        remaining_accounts: List[AccountMeta],
        reduce_only: bool = False,
    ) -> Instruction:
        data = (
            IX_DEPOSIT
            + struct.pack("<H", spot_market.market_index)
            + struct.pack("<Q", amount)
            + bytes([1 if reduce_only else 0])
        )
        accounts = [
            AccountMeta(self.state, is_signer=False, is_writable=False),
            AccountMeta(self.user_account, is_signer=False, is_writable=True),
            AccountMeta(self.user_stats, is_signer=False, is_writable=True),
            AccountMeta(self.authority, is_signer=True, is_writable=False),
            AccountMeta(get_spot_market_vault_address(spot_market.market_index, self.program_id),
                        is_signer=False, is_writable=True),
            AccountMeta(token_account, is_signer=False, is_writable=True),
            AccountMeta(TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
        ]
        return Instruction(self.program_id, data, accounts + list(remaining_accounts))

    def place_perp_order(self, params: OrderParams,
                         remaining_accounts: List[AccountMeta]) -> Instruction:
        accounts = [
            AccountMeta(self.state, is_signer=False, is_writable=False),
            AccountMeta(self.user_account, is_signer=False, is_writable=True),
            AccountMeta(self.authority, is_signer=True, is_writable=False),
        ]
        return Instruction(
            self.program_id,
            IX_PLACE_PERP_ORDER + params.to_bytes(),
            accounts + list(remaining_accounts),
        )


# =============================================================================
# TOKEN ACCOUNT HELPERS
# =============================================================================

def create_token_account_idempotent(payer: Pubkey, owner: Pubkey, mint: Pubkey,
                                    token_account: Pubkey) -> Instruction:
    """ATA CreateIdempotent: a no-op on-chain if the account already exists."""
    accounts = [
        AccountMeta(payer, is_signer=True, is_writable=True),
        AccountMeta(token_account, is_signer=False, is_writable=True),
        AccountMeta(owner, is_signer=False, is_writable=False),
        AccountMeta(mint, is_signer=False, is_writable=False),
        AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    return Instruction(ASSOCIATED_TOKEN_PROGRAM_ID, ATA_CREATE_IDEMPOTENT, accounts)


def wrap_native_instructions(owner: Pubkey, token_account: Pubkey, lamports: int) -> List[Instruction]:
    """Transfer lamports into a wrapped-SOL account, then sync its token balance."""
    return [
        transfer(TransferParams(from_pubkey=owner, to_pubkey=token_account, lamports=lamports)),
        sync_native(SyncNativeParams(program_id=TOKEN_PROGRAM_ID, account=token_account)),
    ]
