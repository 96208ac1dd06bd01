"""
Drift account addresses.

All PDAs are derived from the Drift program id; nothing here touches the network.
"""

from functools import lru_cache

from solders.pubkey import Pubkey
from spl.token.instructions import get_associated_token_address

from config.settings import Settings

DRIFT_PROGRAM_ID = Pubkey.from_string(Settings.DRIFT_PROGRAM_ID)


def _u16(value: int) -> bytes:
    return value.to_bytes(2, "little")


@lru_cache(maxsize=None)
def get_state_address(program_id: Pubkey = DRIFT_PROGRAM_ID) -> Pubkey:
    pda, _ = Pubkey.find_program_address([b"drift_state"], program_id)
    return pda


def get_user_address(authority: Pubkey, sub_account_id: int = 0,
                     program_id: Pubkey = DRIFT_PROGRAM_ID) -> Pubkey:
    """PDA: seeds = ["user", authority, sub_account_id(u16)]"""
    pda, _ = Pubkey.find_program_address(
        [b"user", bytes(authority), _u16(sub_account_id)],
        program_id,
    )
    return pda


def get_user_stats_address(authority: Pubkey, program_id: Pubkey = DRIFT_PROGRAM_ID) -> Pubkey:
    pda, _ = Pubkey.find_program_address([b"user_stats", bytes(authority)], program_id)
    return pda


@lru_cache(maxsize=None)
def get_perp_market_address(market_index: int, program_id: Pubkey = DRIFT_PROGRAM_ID) -> Pubkey:
    pda, _ = Pubkey.find_program_address([b"perp_market", _u16(market_index)], program_id)
    return pda


@lru_cache(maxsize=None)
def get_spot_market_address(market_index: int, program_id: Pubkey = DRIFT_PROGRAM_ID) -> Pubkey:
    pda, _ = Pubkey.find_program_address([b"spot_market", _u16(market_index)], program_id)
    return pda


@lru_cache(maxsize=None)
def get_spot_market_vault_address(market_index: int, program_id: Pubkey = DRIFT_PROGRAM_ID) -> Pubkey:
    pda, _ = Pubkey.find_program_address([b"spot_market_vault", _u16(market_index)], program_id)
    return pda


def get_token_account_address(owner: Pubkey, mint: Pubkey) -> Pubkey:
    """Associated token account of ``owner`` for ``mint``."""
    return get_associated_token_address(owner, mint)
