from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, List, Optional

from solders.pubkey import Pubkey

# Precision constants (from Drift Protocol)
BASE_PRECISION = 10 ** 9     # perp base asset amounts
PRICE_PRECISION = 10 ** 6    # order prices
QUOTE_PRECISION = 10 ** 6    # quote asset amounts (USDC)
BASE_DECIMALS = 9


class OracleSource(Enum):
    """Drift OracleSource values supported by the price decoder."""
    PYTH = 0
    QUOTE_ASSET = 2
    PYTH_PULL = 7

    @classmethod
    def from_name(cls, name: str) -> "OracleSource":
        return cls[name.strip().upper()]


class PositionDirection(Enum):
    """Direction of perp position."""
    LONG = 0
    SHORT = 1

    @property
    def opposite(self) -> "PositionDirection":
        return PositionDirection.SHORT if self is PositionDirection.LONG else PositionDirection.LONG

    @classmethod
    def from_side(cls, side: str) -> "PositionDirection":
        return cls[side.strip().upper()]


class OrderType(Enum):
    """Drift order types."""
    MARKET = 0
    LIMIT = 1
    TRIGGER_MARKET = 2
    TRIGGER_LIMIT = 3
    ORACLE = 4


class MarketType(Enum):
    """Drift market types."""
    SPOT = 0
    PERP = 1


class SpotBalanceType(Enum):
    DEPOSIT = 0
    BORROW = 1


@dataclass(frozen=True)
class MarketDescriptor:
    """Static metadata for one venue market."""
    market_index: int
    market_type: MarketType
    symbol: str
    decimals: int
    min_order_increment: int
    oracle: Pubkey
    oracle_source: OracleSource = OracleSource.PYTH_PULL
    quote_market_index: int = 0
    mint: Optional[Pubkey] = None
    initial_margin_ratio: float = 0.1

    @property
    def is_perp(self) -> bool:
        return self.market_type is MarketType.PERP


@dataclass(frozen=True)
class SpotPosition:
    market_index: int
    scaled_balance: int
    balance_type: SpotBalanceType = SpotBalanceType.DEPOSIT
    open_orders: int = 0

    @property
    def is_available(self) -> bool:
        return self.scaled_balance == 0 and self.open_orders == 0


@dataclass(frozen=True)
class PerpPosition:
    market_index: int
    base_asset_amount: int  # Positive = long, Negative = short
    quote_asset_amount: int = 0
    quote_entry_amount: int = 0
    settled_pnl: int = 0
    lp_shares: int = 0
    open_orders: int = 0

    @property
    def is_available(self) -> bool:
        return (
            self.base_asset_amount == 0
            and self.quote_asset_amount == 0
            and self.open_orders == 0
            and self.lp_shares == 0
        )

    @property
    def direction(self) -> PositionDirection:
        return PositionDirection.LONG if self.base_asset_amount > 0 else PositionDirection.SHORT


@dataclass(frozen=True)
class UserAccount:
    """Decoded Drift User account (only the fields the relay reads)."""
    authority: Pubkey
    sub_account_id: int
    spot_positions: List[SpotPosition] = field(default_factory=list)
    perp_positions: List[PerpPosition] = field(default_factory=list)

    def perp_position(self, market_index: int) -> Optional[PerpPosition]:
        for position in self.perp_positions:
            if position.market_index == market_index:
                return position
        return None

    def active_spot_market_indexes(self) -> List[int]:
        """Spot markets the margin engine loads: any balance or open order."""
        return [p.market_index for p in self.spot_positions if not p.is_available]

    def active_perp_market_indexes(self) -> List[int]:
        """Perp markets the margin engine loads, including closed slots with unsettled PnL."""
        return [p.market_index for p in self.perp_positions if not p.is_available]


@dataclass(frozen=True)
class AccountExistence:
    """Result of one on-chain probe. Never cached across builds."""
    authority: Pubkey
    sub_account_id: int
    stats_account_exists: bool
    trading_account_exists: bool
    account: Optional[UserAccount] = None


@dataclass(frozen=True)
class TokenAccount:
    """Decoded SPL token account."""
    address: Pubkey
    mint: Pubkey
    owner: Pubkey
    amount: int


@dataclass
class PositionSnapshot:
    """Position view computed at query time. The venue remains the source of truth."""
    market_index: int
    symbol: str
    signed_size: float
    quote_notional: float
    side: str
    entry_price: float
    current_price: float
    unrealized_pnl: float
    margin_used: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "market_index": self.market_index,
            "symbol": self.symbol,
            "signed_size": self.signed_size,
            "quote_notional": self.quote_notional,
            "side": self.side,
            "entry_price": self.entry_price,
            "current_price": self.current_price,
            "unrealized_pnl": self.unrealized_pnl,
            "margin_used": self.margin_used,
        }
