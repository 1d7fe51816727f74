"""Book of our own resting orders, one instance per cancel scope."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List

from scmaker.connectors.base import BaseConnector, Order, Trade
from scmaker.errors import OrderCancelError


@dataclass
class LiveOrder:
    order: Order
    remaining: float
    birth: datetime = field(default_factory=datetime.utcnow)


class ActiveOrderBook:
    """Orders placed by one partition (liquidity or adjustment) that may still rest on the book."""

    def __init__(self, symbol: str, name: str, logger: logging.Logger):
        self.symbol = symbol
        self.name = name
        self._logger = logger
        self._live: Dict[str, LiveOrder] = {}

    def __len__(self) -> int:
        return len(self._live)

    def __contains__(self, client_order_id: str) -> bool:
        return client_order_id in self._live

    def add(self, *orders: Order) -> None:
        for order in orders:
            self._live[order.client_order_id] = LiveOrder(order=order, remaining=order.quantity)

    def remove(self, client_order_id: str) -> None:
        self._live.pop(client_order_id, None)

    def orders(self) -> List[Order]:
        return [lo.order for lo in self._live.values()]

    def apply_trade(self, trade: Trade) -> bool:
        """Reduce the remaining size of the traded order; drop it once fully filled."""
        live = self._live.get(trade.client_order_id)
        if live is None:
            return False
        live.remaining -= trade.quantity
        if live.remaining <= 1e-12:
            self._logger.info("%s order %s fully filled", self.name, trade.client_order_id)
            self._live.pop(trade.client_order_id, None)
        return True

    async def graceful_cancel(self, connector: BaseConnector) -> List[str]:
        """Cancel every tracked order and return the client ids that failed.

        Failed orders stay tracked so the next cancel pass retries them.
        """
        if not self._live:
            return []

        client_ids = list(self._live)
        results = await asyncio.gather(
            *[connector.cancel_order(self.symbol, cid) for cid in client_ids],
            return_exceptions=True,
        )
        failed = []
        for cid, res in zip(client_ids, results):
            if isinstance(res, asyncio.CancelledError):
                raise res
            if isinstance(res, Exception):
                err = OrderCancelError(f"{self.name} order {cid}: {res}")
                self._logger.error("Unable to cancel: %s", err)
                failed.append(cid)
            else:
                self._live.pop(cid, None)
        if not failed:
            self._logger.debug("Cancelled %d %s orders", len(client_ids), self.name)
        return failed
