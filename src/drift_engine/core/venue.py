"""
Venue Query Service
===================
Read-only queries against Drift state.

Every answer is fetched fresh. Transient unavailability raises instead of
returning a default, so callers never act on a guessed state.
"""

from typing import List, Optional

from solders.pubkey import Pubkey

from src.drift_engine.core.accounts import (
    get_user_address,
    get_user_stats_address,
)
from src.drift_engine.core.decoder import (
    AccountDecodeError,
    decode_oracle_price,
    decode_token_account,
    decode_user_account,
)
from src.drift_engine.core.markets import MarketRegistry
from src.drift_engine.core.types import (
    BASE_PRECISION,
    QUOTE_PRECISION,
    AccountExistence,
    MarketDescriptor,
    MarketType,
    OracleSource,
    PositionSnapshot,
    TokenAccount,
)
from src.execution.errors import (
    AccountProbeFailedError,
    MarketNotFoundError,
    RpcError,
    VenueUnavailableError,
)
from src.shared.infrastructure.solana_rpc import SolanaRpcGateway
from src.shared.system.logging import Logger


class VenueQueryService:
    """Market metadata, account probes, oracle prices and position views."""

    def __init__(self, rpc: SolanaRpcGateway, registry: MarketRegistry):
        self.rpc = rpc
        self.registry = registry

    def get_market_descriptor(self, market_index: int, market_type: MarketType) -> MarketDescriptor:
        market = self.registry.get(market_index, market_type)
        if market is None:
            raise MarketNotFoundError(market_index, market_type)
        return market

    def get_spot_market_by_symbol(self, symbol: str) -> MarketDescriptor:
        market = self.registry.spot_by_symbol(symbol)
        if market is None:
            raise MarketNotFoundError(symbol, MarketType.SPOT)
        return market

    async def get_account_existence(self, authority: Pubkey, sub_account_id: int = 0) -> AccountExistence:
        """Probe stats and trading accounts in a single getMultipleAccounts call."""
        stats_pda = get_user_stats_address(authority)
        user_pda = get_user_address(authority, sub_account_id)

        try:
            stats_data, user_data = await self.rpc.get_multiple_accounts([stats_pda, user_pda])
        except RpcError as e:
            raise AccountProbeFailedError(f"Account probe failed for {authority}: {e}") from e

        account = None
        if user_data is not None:
            try:
                account = decode_user_account(user_data, sub_account_id)
            except AccountDecodeError as e:
                raise AccountProbeFailedError(f"Undecodable trading account {user_pda}: {e}") from e

        Logger.debug(
            f"[VENUE] Probe {str(authority)[:8]}: stats={stats_data is not None} "
            f"user={user_data is not None}"
        )
        return AccountExistence(
            authority=authority,
            sub_account_id=sub_account_id,
            stats_account_exists=stats_data is not None,
            trading_account_exists=user_data is not None,
            account=account,
        )

    async def get_token_account(self, address: Pubkey) -> Optional[TokenAccount]:
        """Decoded token account, or None if it does not exist."""
        try:
            (data,) = await self.rpc.get_multiple_accounts([address])
        except RpcError as e:
            raise VenueUnavailableError(f"Token account {address} unavailable: {e}") from e
        if data is None:
            return None
        return decode_token_account(address, data)

    async def get_oracle_price(self, market_index: int, market_type: MarketType) -> float:
        market = self.get_market_descriptor(market_index, market_type)
        if market.oracle_source is OracleSource.QUOTE_ASSET:
            return 1.0

        try:
            (data,) = await self.rpc.get_multiple_accounts([market.oracle])
        except RpcError as e:
            raise VenueUnavailableError(f"Oracle for {market.symbol} unavailable: {e}") from e
        if data is None:
            raise VenueUnavailableError(f"Oracle account {market.oracle} not found for {market.symbol}")

        try:
            return decode_oracle_price(data, market.oracle_source)
        except AccountDecodeError as e:
            raise VenueUnavailableError(f"Oracle for {market.symbol} unreadable: {e}") from e

    async def get_position_snapshots(self, authority: Pubkey, sub_account_id: int = 0) -> List[PositionSnapshot]:
        """Open perp positions valued at the current oracle price."""
        existence = await self.get_account_existence(authority, sub_account_id)
        if existence.account is None:
            return []

        snapshots = []
        for position in existence.account.perp_positions:
            if position.base_asset_amount == 0:
                continue
            market = self.registry.get(position.market_index, MarketType.PERP)
            if market is None:
                Logger.warning(f"[VENUE] Position in unknown perp market {position.market_index}")
                continue

            price = await self.get_oracle_price(position.market_index, MarketType.PERP)
            size = position.base_asset_amount / BASE_PRECISION
            entry_price = abs(position.quote_entry_amount) / QUOTE_PRECISION / abs(size)
            notional = abs(size) * price
            pnl = size * price + position.quote_asset_amount / QUOTE_PRECISION

            snapshots.append(PositionSnapshot(
                market_index=position.market_index,
                symbol=market.symbol,
                signed_size=size,
                quote_notional=notional,
                side=position.direction.name.lower(),
                entry_price=entry_price,
                current_price=price,
                unrealized_pnl=pnl,
                margin_used=notional * market.initial_margin_ratio,
            ))
        return snapshots
