"""Venue connector interface and the value types it exchanges."""

from .base import (
    AdvancedCancelApi,
    Balance,
    BaseConnector,
    KLine,
    Order,
    OrderIntent,
    Ticker,
    Trade,
)

__all__ = [
    "AdvancedCancelApi",
    "Balance",
    "BaseConnector",
    "KLine",
    "Order",
    "OrderIntent",
    "Ticker",
    "Trade",
]
