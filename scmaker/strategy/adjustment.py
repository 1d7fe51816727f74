"""Single profit-protected order that works an open position back to flat."""

from __future__ import annotations

import logging
from typing import Optional

from scmaker.connectors.base import BUY, SELL, OrderIntent, Ticker
from scmaker.data.market import Market
from scmaker.strategy.inventory import Position

ADJUSTMENT_TAG = "adjustment"


def profit_protected_price(
    side: str, average_cost: float, price: float, fee_rate: float, min_profit: float
) -> float:
    """Clamp *price* so that closing at it still earns fees plus *min_profit* over cost.

    A sell is never cheaper than ``cost * (1 + fee + min_profit)``, a buy never
    dearer than ``cost * (1 - fee - min_profit)``; a touch price that already
    beats the floor is kept.
    """
    margin = average_cost * (fee_rate + min_profit)
    if side == SELL:
        return max(average_cost + margin, price)
    if side == BUY:
        return min(average_cost - margin, price)
    return price


class InventoryAdjuster:
    def __init__(
        self,
        symbol: str,
        market: Market,
        fee_rate: float,
        min_profit: float,
        logger: Optional[logging.Logger] = None,
    ):
        self._symbol = symbol
        self._market = market
        self._fee_rate = fee_rate
        self._min_profit = min_profit
        self._logger = logger or logging.getLogger("scmaker.adjustment")

    def adjust(
        self,
        position: Position,
        ticker: Ticker,
        available_base: float,
        available_quote: float,
    ) -> Optional[OrderIntent]:
        """Return the closing order for *position*, or None when there is nothing worth placing."""
        if position.is_dust(self._market):
            return None

        tick = self._market.tick_size
        if position.is_short():
            price = profit_protected_price(
                BUY, position.average_cost, ticker.sell - tick, self._fee_rate, self._min_profit
            )
            price = self._market.truncate_price(price)
            if price <= 0:
                return None
            quantity = min(position.size, max(0.0, available_quote) / price)
            side = BUY
        elif position.is_long():
            price = profit_protected_price(
                SELL, position.average_cost, ticker.buy + tick, self._fee_rate, self._min_profit
            )
            price = self._market.round_up_price(price)
            quantity = min(position.size, max(0.0, available_base))
            side = SELL
        else:
            return None

        quantity = self._market.truncate_quantity(quantity)
        if self._market.is_dust_quantity(quantity, price):
            self._logger.debug("adjustment %s %f @ %f is dust, skipped", side, quantity, price)
            return None

        self._logger.info(
            "adjustment order %s %f @ %f (position %f @ %f)",
            side, quantity, price, position.base, position.average_cost,
        )
        return OrderIntent(
            symbol=self._symbol,
            side=side,
            price=price,
            quantity=quantity,
            tag=ADJUSTMENT_TAG,
        )
