"""Abstract connector interface the strategy consumes from its host venue."""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional

from scmaker.data.market import KLine, Market

BUY = "BUY"
SELL = "SELL"

ORDER_TYPE_LIMIT_MAKER = "LIMIT_MAKER"
TIME_IN_FORCE_GTC = "GTC"


@dataclass
class Ticker:
    buy: float   # best bid
    sell: float  # best ask

    @property
    def spread(self) -> float:
        return self.sell - self.buy


@dataclass
class Balance:
    currency: str
    available: float
    locked: float = 0.0

    @property
    def total(self) -> float:
        return self.available + self.locked


@dataclass
class Trade:
    """One of our own fills."""

    trade_id: int
    client_order_id: str
    symbol: str
    side: str  # "BUY" | "SELL"
    price: float
    quantity: float
    fee: float = 0.0  # in quote currency
    timestamp: datetime = field(default_factory=datetime.utcnow)


@dataclass(frozen=True)
class OrderIntent:
    """An order the strategy wants resting on the book."""

    symbol: str
    side: str
    price: float
    quantity: float
    type: str = ORDER_TYPE_LIMIT_MAKER
    time_in_force: str = TIME_IN_FORCE_GTC
    tag: str = ""
    layer: Optional[int] = None

    @property
    def notional(self) -> float:
        return self.price * self.quantity


@dataclass
class Order:
    client_order_id: str
    exchange_order_id: Optional[int]
    symbol: str
    side: str
    price: float
    quantity: float
    status: str  # NEW, PARTIALLY_FILLED, FILLED, CANCELED, REJECTED
    timestamp: datetime = field(default_factory=datetime.utcnow)


class BaseConnector(abc.ABC):
    """Minimal async interface every host venue connector must satisfy."""

    def __init__(self, config: Dict[str, Any], logger):
        self.config = config
        self.logger = logger

    # ---------- Market data ---------- #

    @abc.abstractmethod
    async def query_market(self, symbol: str) -> Market:
        """Return precision and minimum-size rules for *symbol*."""

    @abc.abstractmethod
    async def query_ticker(self, symbol: str) -> Ticker:
        """Return the current best bid/ask."""

    @abc.abstractmethod
    async def query_klines(self, symbol: str, interval: str, limit: int) -> List[KLine]:
        """Return up to *limit* historical closed candles, oldest first."""

    @abc.abstractmethod
    def stream_klines(self, symbol: str, intervals: Iterable[str]) -> AsyncIterator[KLine]:
        """Asynchronous generator yielding candles as they close."""

    # ---------- Account ---------- #

    @abc.abstractmethod
    async def query_balances(self) -> Dict[str, Balance]:
        """Return balances keyed by currency."""

    @abc.abstractmethod
    def stream_trades(self, symbol: str) -> AsyncIterator[Trade]:
        """Asynchronous generator yielding our own fills.

        The subscription must be in place by the time the generator first
        suspends; fills from before that point are not replayed.  A replay
        after reconnecting is fine, repeated trade ids are dropped.
        """

    # ---------- Trading ---------- #

    @abc.abstractmethod
    async def submit_order(self, intent: OrderIntent, client_order_id: str) -> Order:
        """Send a LIMIT_MAKER (maker-only) GTC order."""

    @abc.abstractmethod
    async def cancel_order(self, symbol: str, client_order_id: str) -> None:
        """Cancel an open order; cancelling an already-closed order is a no-op."""

    # ---------- Housekeeping ---------- #

    @abc.abstractmethod
    async def close(self):
        """Gracefully shut down sessions / sockets."""


class AdvancedCancelApi(abc.ABC):
    """Optional capability: bulk cancellation by symbol."""

    @abc.abstractmethod
    async def cancel_orders_by_symbol(self, symbol: str) -> List[Order]:
        """Cancel every open order of *symbol* and return them."""
