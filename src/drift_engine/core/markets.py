"""
Market Registry
===============
Static market metadata loaded from ``data/markets.json``.

Descriptors are read-only; the registry never touches the network.
"""

import json
from typing import Dict, List, Optional, Tuple

from solders.pubkey import Pubkey

from config.settings import Settings
from src.drift_engine.core.types import MarketDescriptor, MarketType, OracleSource
from src.shared.system.logging import Logger


class MarketRegistry:
    """Lookup of MarketDescriptor by (market_type, market_index)."""

    def __init__(self, markets: List[MarketDescriptor]):
        self._markets: Dict[Tuple[MarketType, int], MarketDescriptor] = {}
        for market in markets:
            self._markets[(market.market_type, market.market_index)] = market

    @classmethod
    def from_file(cls, path: Optional[str] = None) -> "MarketRegistry":
        path = path or Settings.MARKETS_FILE
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)

        markets = [_parse_market(entry, MarketType.PERP) for entry in raw.get("perp", [])]
        markets += [_parse_market(entry, MarketType.SPOT) for entry in raw.get("spot", [])]
        Logger.info(f"[VENUE] Loaded {len(markets)} markets from {path}")
        return cls(markets)

    def get(self, market_index: int, market_type: MarketType) -> Optional[MarketDescriptor]:
        return self._markets.get((market_type, market_index))

    def spot_by_symbol(self, symbol: str) -> Optional[MarketDescriptor]:
        symbol = symbol.strip().upper()
        for (market_type, _), market in self._markets.items():
            if market_type is MarketType.SPOT and market.symbol.upper() == symbol:
                return market
        return None

    def all(self, market_type: Optional[MarketType] = None) -> List[MarketDescriptor]:
        markets = [
            m for (kind, _), m in self._markets.items()
            if market_type is None or kind is market_type
        ]
        return sorted(markets, key=lambda m: (m.market_type.value, m.market_index))

    def __len__(self) -> int:
        return len(self._markets)


def _parse_market(entry: dict, market_type: MarketType) -> MarketDescriptor:
    mint = entry.get("mint")
    return MarketDescriptor(
        market_index=int(entry["market_index"]),
        market_type=market_type,
        symbol=entry["symbol"],
        decimals=int(entry["decimals"]),
        min_order_increment=int(entry["min_order_increment"]),
        oracle=Pubkey.from_string(entry["oracle"]),
        oracle_source=OracleSource.from_name(entry.get("oracle_source", "PYTH_PULL")),
        quote_market_index=int(entry.get("quote_market_index", 0)),
        mint=Pubkey.from_string(mint) if mint else None,
        initial_margin_ratio=float(entry.get("initial_margin_ratio", 0.1)),
    )
