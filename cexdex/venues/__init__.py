"""Venue adapters: the CEX and DEX interfaces and their implementations."""

from cexdex.venues.base import CexAdapter, DexAdapter
from cexdex.venues.binance import BinanceAdapter
from cexdex.venues.uniswap import UniswapAdapter

__all__ = [
    "CexAdapter",
    "DexAdapter",
    "BinanceAdapter",
    "UniswapAdapter",
]
