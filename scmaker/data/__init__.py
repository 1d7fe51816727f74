"""Market data helpers (symbol rules & streaming indicators)."""

from .indicators import BollingerBandWidth, MidPriceEMA
from .market import KLine, Market

__all__ = [
    "BollingerBandWidth",
    "KLine",
    "Market",
    "MidPriceEMA",
]
