"""Static market registry per network.

Perp markets are looked up by base asset symbol, spot markets (collateral) by
index. Precision values are the exponents of the exchange's fixed-point units.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional

from .errors import UnknownMarket

BASE_PRECISION_EXP = 9  # perp base asset amounts
PRICE_PRECISION_EXP = 6
LAMPORTS_PER_SOL = 10 ** 9

WRAPPED_SOL_MINT = "So11111111111111111111111111111111111111112"


@dataclass(frozen=True)
class PerpMarket:
    symbol: str
    base_asset_symbol: str
    market_index: int


@dataclass(frozen=True)
class SpotMarket:
    symbol: str
    market_index: int
    mint: str
    precision_exp: int


def _perps(symbols: List[str]) -> List[PerpMarket]:
    return [PerpMarket(f"{s}-PERP", s, i) for i, s in enumerate(symbols)]


PERP_MARKETS: Dict[str, List[PerpMarket]] = {
    "devnet": _perps([
        "SOL", "BTC", "ETH", "APT", "1MBONK", "MATIC", "ARB", "DOGE", "BNB",
        "SUI", "1MPEPE", "OP",
    ]),
    "mainnet-beta": _perps([
        "SOL", "BTC", "ETH", "APT", "1MBONK", "POL", "ARB", "DOGE", "BNB",
        "SUI", "1MPEPE", "OP", "RENDER", "XRP", "HNT", "INJ", "LINK", "RLB",
        "PYTH", "TIA", "JTO", "SEI", "AVAX", "WIF", "JUP",
    ]),
}

SPOT_MARKETS: Dict[str, List[SpotMarket]] = {
    "devnet": [
        SpotMarket("USDC", 0, "8zGuJQqwhZafTah7Uc7Z4tXRnguqkn5KLFAP8oV6PHe2", 6),
        SpotMarket("SOL", 1, WRAPPED_SOL_MINT, 9),
    ],
    "mainnet-beta": [
        SpotMarket("USDC", 0, "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v", 6),
        SpotMarket("SOL", 1, WRAPPED_SOL_MINT, 9),
        SpotMarket("mSOL", 2, "mSoLzYCxHdYgdzU16g5QSh3i5K3z3KZK7ytfqcJm7So", 9),
        SpotMarket("wBTC", 3, "3NZ9JMVBmGAqocybic2c7LQCJScmgsAZ6vQqTDzcqmJh", 8),
        SpotMarket("wETH", 4, "7vfCXTUXx5WJV5JADk17DUJ4ksgau7utNKj4b963voxs", 8),
        SpotMarket("USDT", 5, "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB", 6),
        SpotMarket("jitoSOL", 6, "J1toso1uCk3RLmjorhTtrVwY9HJ7X8V9yYac6Y7kGCPn", 9),
    ],
}


def _markets_for(table: Dict[str, list], network: str) -> list:
    try:
        return table[network]
    except KeyError:
        raise UnknownMarket(f"No market registry for network {network!r}")


def find_perp_market(network: str, symbol: str) -> Optional[PerpMarket]:
    for market in _markets_for(PERP_MARKETS, network):
        if market.base_asset_symbol == symbol:
            return market
    return None


def get_perp_market(network: str, symbol: str) -> PerpMarket:
    """Resolve a perp market by base asset symbol or raise ``UnknownMarket``."""
    market = find_perp_market(network, symbol)
    if market is None:
        raise UnknownMarket(f"Token info for {symbol} not found on {network}")
    return market


def get_spot_market(network: str, market_index: int) -> SpotMarket:
    for market in _markets_for(SPOT_MARKETS, network):
        if market.market_index == market_index:
            return market
    raise UnknownMarket(f"Spot market {market_index} not found on {network}")
