"""
Transaction Builder
===================
Turns a completed Intent into one unsigned, single-signer transaction.

Instruction order:
    [create token account] [wrap SOL] [init user stats] [init user] <terminal>

Prerequisites are emitted only when the on-chain probe shows they are
missing, so rebuilding after a partial failure never double-creates.
The only signer anywhere in the transaction is the user authority, who is
also the fee payer.
"""

from dataclasses import dataclass
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import List, Optional

from solders.hash import Hash
from solders.instruction import Instruction
from solders.message import Message
from solders.pubkey import Pubkey
from spl.token.constants import WRAPPED_SOL_MINT

from src.drift_engine.core.accounts import get_token_account_address
from src.drift_engine.core.decoder import AccountDecodeError
from src.drift_engine.core.instructions import (
    DriftInstructionEncoder,
    OrderParams,
    build_remaining_accounts,
    create_token_account_idempotent,
    wrap_native_instructions,
)
from src.drift_engine.core.types import (
    BASE_DECIMALS,
    AccountExistence,
    MarketDescriptor,
    MarketType,
    OrderType,
    PositionDirection,
)
from src.drift_engine.core.venue import VenueQueryService
from src.execution.errors import (
    AccountProbeFailedError,
    BelowMinimumOrderSizeError,
    IncompleteIntentError,
    InvalidAmountError,
    InvalidIntentError,
    LimitPriceRequiredError,
    MarketNotFoundError,
    PositionNotFoundError,
    SignerInvariantError,
    VenueUnavailableError,
)
from src.shared.infrastructure.solana_rpc import SolanaRpcGateway
from src.shared.state.flow_state import REQUIRED_FIELDS, FlowKind, Intent
from src.shared.system.logging import Logger

PRICE_DECIMALS = 6

INTENT_ORDER_TYPES = (OrderType.MARKET, OrderType.LIMIT)


# ═══════════════════════════════════════════════════════════════════════════════
# UNIT CONVERSION
# ═══════════════════════════════════════════════════════════════════════════════

def to_base_units(value, decimals: int) -> int:
    """Human decimal -> integer base units, rounding half away from zero."""
    try:
        scaled = Decimal(str(value)).scaleb(decimals)
        return int(scaled.quantize(Decimal(1), rounding=ROUND_HALF_UP))
    except InvalidOperation:
        raise InvalidAmountError(f"Not a valid amount: {value!r}")


def from_base_units(amount: int, decimals: int) -> Decimal:
    return Decimal(amount).scaleb(-decimals)


def _positive_base_units(value, decimals: int, label: str) -> int:
    units = to_base_units(value, decimals)
    if units <= 0:
        raise InvalidAmountError(f"{label} must be greater than zero (got {value})")
    return units


# ═══════════════════════════════════════════════════════════════════════════════
# INTENT FIELDS
# ═══════════════════════════════════════════════════════════════════════════════

def _market_index(intent: Intent) -> int:
    value = intent.get("market_index")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidIntentError("market_index", value)


def _direction(intent: Intent) -> PositionDirection:
    side = intent.get("side")
    try:
        return PositionDirection.from_side(side)
    except (KeyError, AttributeError):
        raise InvalidIntentError("side", side)


def _order_type(intent: Intent) -> OrderType:
    """Only market and limit orders can be collected from a chat flow."""
    value = intent.get("order_type") or "market"
    order_type = OrderType.__members__.get(str(value).strip().upper())
    if order_type not in INTENT_ORDER_TYPES:
        raise InvalidIntentError("order_type", value)
    return order_type


# ═══════════════════════════════════════════════════════════════════════════════
# UNSIGNED TRANSACTION
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class UnsignedTransaction:
    """Ordered instructions plus the bookkeeping the ledger needs."""

    instructions: List[Instruction]
    fee_payer: Pubkey
    recent_blockhash: Hash
    kind: FlowKind
    market_index: int
    amount: int
    token_symbol: Optional[str] = None
    decimals: int = BASE_DECIMALS

    @property
    def display_amount(self) -> Decimal:
        return from_base_units(self.amount, self.decimals)

    def validate_signers(self) -> None:
        """Every signer slot must belong to the fee payer."""
        for position, ix in enumerate(self.instructions):
            for meta in ix.accounts:
                if meta.is_signer and meta.pubkey != self.fee_payer:
                    raise SignerInvariantError(
                        f"Instruction {position} ({ix.program_id}) requires signer "
                        f"{meta.pubkey}, only fee payer {self.fee_payer} may sign"
                    )

    def to_message(self, blockhash: Optional[Hash] = None) -> Message:
        return Message.new_with_blockhash(
            self.instructions,
            self.fee_payer,
            blockhash or self.recent_blockhash,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# BUILDER
# ═══════════════════════════════════════════════════════════════════════════════

class TransactionBuilder:
    """
    Builds deposit, open and close transactions from completed intents.

    Usage:
        builder = TransactionBuilder(venue, rpc)
        tx = await builder.build_transaction(intent, wallet_pubkey)
    """

    def __init__(self, venue: VenueQueryService, rpc: SolanaRpcGateway):
        self.venue = venue
        self.rpc = rpc

    async def build_transaction(
        self,
        intent: Intent,
        authority: Pubkey,
        sub_account_id: int = 0,
    ) -> UnsignedTransaction:
        missing = [name for name in REQUIRED_FIELDS[intent.kind] if intent.get(name) is None]
        if missing:
            raise IncompleteIntentError(intent.kind.value, missing)

        encoder = DriftInstructionEncoder(authority, sub_account_id)

        if intent.kind is FlowKind.DEPOSIT:
            instructions, market, amount = await self._build_deposit(intent, encoder)
        elif intent.kind is FlowKind.OPEN_POSITION:
            instructions, market, amount = await self._build_open(intent, encoder)
        else:
            instructions, market, amount = await self._build_close(intent, encoder)

        blockhash = await self.rpc.get_latest_blockhash()
        tx = UnsignedTransaction(
            instructions=instructions,
            fee_payer=authority,
            recent_blockhash=blockhash,
            kind=intent.kind,
            market_index=market.market_index,
            amount=amount,
            token_symbol=market.symbol,
            decimals=market.decimals,
        )
        tx.validate_signers()

        Logger.info(
            f"[BUILDER] {intent.kind.value} {market.symbol}: "
            f"{len(instructions)} instruction(s), amount={amount}"
        )
        return tx

    # =========================================================================
    # DEPOSIT
    # =========================================================================

    async def _build_deposit(self, intent: Intent, encoder: DriftInstructionEncoder):
        market = self.venue.get_spot_market_by_symbol(intent.get("token"))
        amount = _positive_base_units(intent.get("amount"), market.decimals, "Deposit amount")
        authority = encoder.authority

        existence = await self._probe(authority, encoder.sub_account_id)
        token_account_address = get_token_account_address(authority, market.mint)

        try:
            token_account = await self.venue.get_token_account(token_account_address)
        except (VenueUnavailableError, AccountDecodeError) as e:
            raise AccountProbeFailedError(
                f"Token account {token_account_address} unreadable: {e}"
            ) from e

        instructions: List[Instruction] = []
        if token_account is None:
            instructions.append(create_token_account_idempotent(
                payer=authority,
                owner=authority,
                mint=market.mint,
                token_account=token_account_address,
            ))

        if market.mint == WRAPPED_SOL_MINT:
            existing = token_account.amount if token_account is not None else 0
            shortfall = max(0, amount - existing)
            if shortfall > 0:
                Logger.debug(f"[BUILDER] Wrapping {shortfall} lamports (have {existing})")
                instructions.extend(wrap_native_instructions(authority, token_account_address, shortfall))

        instructions.extend(self._bootstrap(existence, encoder))

        remaining = self._margin_accounts(
            existence,
            spot_markets=[market],
            perp_markets=[],
            writable_spot=[market.market_index],
        )
        instructions.append(encoder.deposit(market, amount, token_account_address, remaining))
        return instructions, market, amount

    # =========================================================================
    # OPEN POSITION
    # =========================================================================

    async def _build_open(self, intent: Intent, encoder: DriftInstructionEncoder):
        market = self.venue.get_market_descriptor(_market_index(intent), MarketType.PERP)
        direction = _direction(intent)
        order_type = _order_type(intent)

        price = 0
        if order_type is OrderType.LIMIT:
            if intent.get("limit_price") is None:
                raise LimitPriceRequiredError()
            price = _positive_base_units(intent.get("limit_price"), PRICE_DECIMALS, "Limit price")

        base_amount = _positive_base_units(intent.get("size"), BASE_DECIMALS, "Order size")
        if base_amount < market.min_order_increment:
            raise BelowMinimumOrderSizeError(base_amount, market.min_order_increment)

        existence = await self._probe(encoder.authority, encoder.sub_account_id)
        instructions = self._bootstrap(existence, encoder)

        params = OrderParams(
            market_index=market.market_index,
            direction=direction,
            base_asset_amount=base_amount,
            order_type=order_type,
            price=price,
        )
        instructions.append(encoder.place_perp_order(params, self._perp_margin_accounts(existence, market)))
        return instructions, market, base_amount

    # =========================================================================
    # CLOSE POSITION
    # =========================================================================

    async def _build_close(self, intent: Intent, encoder: DriftInstructionEncoder):
        market = self.venue.get_market_descriptor(_market_index(intent), MarketType.PERP)
        try:
            percentage = Decimal(str(intent.get("percentage")))
        except InvalidOperation:
            raise InvalidAmountError(f"Not a valid percentage: {intent.get('percentage')!r}")
        if not percentage.is_finite() or percentage <= 0 or percentage > 100:
            raise InvalidAmountError(f"Close percentage must be in (0, 100], got {percentage}")

        existence = await self._probe(encoder.authority, encoder.sub_account_id)
        if existence.account is None:
            raise PositionNotFoundError(market.market_index)
        position = existence.account.perp_position(market.market_index)
        if position is None or position.base_asset_amount == 0:
            raise PositionNotFoundError(market.market_index)

        close_amount = close_base_amount(
            abs(position.base_asset_amount), percentage, market.min_order_increment
        )

        params = OrderParams(
            market_index=market.market_index,
            direction=position.direction.opposite,
            base_asset_amount=close_amount,
            order_type=OrderType.MARKET,
            reduce_only=True,
        )
        instructions = [encoder.place_perp_order(params, self._perp_margin_accounts(existence, market))]
        return instructions, market, close_amount

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _probe(self, authority: Pubkey, sub_account_id: int) -> AccountExistence:
        try:
            return await self.venue.get_account_existence(authority, sub_account_id)
        except VenueUnavailableError as e:
            raise AccountProbeFailedError(str(e)) from e

    @staticmethod
    def _bootstrap(existence: AccountExistence, encoder: DriftInstructionEncoder) -> List[Instruction]:
        instructions = []
        if not existence.stats_account_exists:
            instructions.append(encoder.initialize_user_stats())
        if not existence.trading_account_exists:
            instructions.append(encoder.initialize_user())
        if instructions:
            Logger.info(f"[BUILDER] Bootstrapping {len(instructions)} account(s) for {encoder.authority}")
        return instructions

    def _perp_margin_accounts(self, existence: AccountExistence, market: MarketDescriptor):
        quote = self.venue.get_market_descriptor(market.quote_market_index, MarketType.SPOT)
        return self._margin_accounts(
            existence,
            spot_markets=[quote],
            perp_markets=[market],
            writable_perp=[market.market_index],
        )

    def _margin_accounts(
        self,
        existence: AccountExistence,
        spot_markets: List[MarketDescriptor],
        perp_markets: List[MarketDescriptor],
        writable_spot=(),
        writable_perp=(),
    ):
        """Traded markets plus every market the user already has exposure in."""
        spot_markets = list(spot_markets)
        perp_markets = list(perp_markets)
        if existence.account is not None:
            for index in existence.account.active_spot_market_indexes():
                spot_markets.append(self._resolve(index, MarketType.SPOT))
            for index in existence.account.active_perp_market_indexes():
                perp_markets.append(self._resolve(index, MarketType.PERP))

        return build_remaining_accounts(
            spot_markets,
            perp_markets,
            writable_spot_indexes=writable_spot,
            writable_perp_indexes=writable_perp,
        )

    def _resolve(self, market_index: int, market_type: MarketType) -> MarketDescriptor:
        try:
            return self.venue.get_market_descriptor(market_index, market_type)
        except MarketNotFoundError:
            Logger.error(f"[BUILDER] Account holds unknown {market_type.name} market {market_index}")
            raise


def close_base_amount(position_size: int, percentage: Decimal, min_increment: int) -> int:
    """
    Base amount to close for a partial or full close.

    A partial close that rounds below the minimum increment escalates to a
    full close when the whole position is itself closeable.
    """
    if percentage >= 100:
        close_amount = position_size
    else:
        close_amount = int((Decimal(position_size) * percentage / 100).to_integral_value(rounding=ROUND_FLOOR))

    if close_amount >= min_increment:
        return close_amount

    if percentage < 100 and position_size >= min_increment:
        Logger.warning(
            f"[BUILDER] {percentage}% close ({close_amount}) below minimum {min_increment}, "
            f"closing full position ({position_size})"
        )
        return position_size

    raise BelowMinimumOrderSizeError(close_amount, min_increment)
