"""Spread the available balances over the price ladder as maker-only orders."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional

from scmaker.connectors.base import BUY, SELL, OrderIntent, Ticker
from scmaker.data.market import Market
from scmaker.strategy.inventory import Position
from scmaker.strategy.pricing import PriceLadder
from scmaker.strategy.quota import QuotaLedger
from scmaker.strategy.scale import Scale

LIQUIDITY_TAG = "liquidity"

_UNIT_SCALE = 1e8


def truncate_unit(x: float) -> float:
    """Floor an allocation rate to 8 decimals."""
    return math.floor(x * _UNIT_SCALE) / _UNIT_SCALE


@dataclass
class LiquidityPlan:
    """Outcome of one allocation pass."""

    intents: List[OrderIntent] = field(default_factory=list)
    weight_sum: float = 0.0
    available_base: float = 0.0
    available_quote: float = 0.0
    ask_unit: float = 0.0
    bid_unit: float = 0.0
    ledger: Optional[QuotaLedger] = None

    @property
    def bids(self) -> List[OrderIntent]:
        return [o for o in self.intents if o.side == BUY]

    @property
    def asks(self) -> List[OrderIntent]:
        return [o for o in self.intents if o.side == SELL]


class LiquidityLayerAllocator:
    """Weight each ladder layer by the scale function and reserve balance layer by layer."""

    def __init__(
        self,
        symbol: str,
        market: Market,
        scale: Scale,
        layer_count: int,
        max_exposure: float = 0.0,
        logger: Optional[logging.Logger] = None,
    ):
        self._symbol = symbol
        self._market = market
        self._scale = scale
        self._layer_count = layer_count
        self._max_exposure = max_exposure
        self._logger = logger or logging.getLogger("scmaker.liquidity")

    def weight_sum(self) -> float:
        return sum(self._scale.weight(i) for i in range(self._layer_count + 1))

    def _cap_exposure(self, base: float, quote: float, ticker: Ticker):
        if self._max_exposure <= 0:
            return base, quote
        quote = min(quote, self._max_exposure)
        if base * ticker.sell > self._max_exposure:
            base = self._max_exposure / ticker.sell
        return base, quote

    def allocate(
        self,
        ladder: PriceLadder,
        available_base: float,
        available_quote: float,
        position: Position,
        ticker: Ticker,
    ) -> LiquidityPlan:
        if len(ladder) != self._layer_count + 1:
            raise ValueError(f"ladder has {len(ladder)} layers, expected {self._layer_count + 1}")

        n = self.weight_sum()
        base, quote = self._cap_exposure(max(0.0, available_base), max(0.0, available_quote), ticker)
        ledger = QuotaLedger(base, quote)

        # inventory already held is not quoted again
        position_is_dust = position.is_dust(self._market)
        if not position_is_dust:
            if position.is_long():
                base = max(0.0, self._market.truncate_quantity(base - position.size))
            elif position.is_short():
                quote = max(0.0, quote - position.size * ticker.sell)

        bid_price_sum = sum(ladder.bid_prices)
        ask_unit = truncate_unit(base / n) if n > 0 else 0.0
        bid_unit = truncate_unit(quote / (n * bid_price_sum)) if n > 0 and bid_price_sum > 0 else 0.0

        plan = LiquidityPlan(
            weight_sum=n,
            available_base=base,
            available_quote=quote,
            ask_unit=ask_unit,
            bid_unit=bid_unit,
            ledger=ledger,
        )

        for i, band in enumerate(ladder.bands):
            w = self._scale.weight(i)
            bid_qty = self._market.truncate_quantity(w * bid_unit)
            ask_qty = self._market.truncate_quantity(w * ask_unit)

            self._logger.info(
                "liquidity layer #%d %f/%f = %f/%f", i, band.ask, band.bid, ask_qty, bid_qty
            )

            place_buy = True
            place_sell = True
            # never close inventory at a loss against its average cost
            if not position_is_dust:
                if position.is_long() and band.ask < position.average_cost:
                    place_sell = False
                if position.is_short() and band.bid > position.average_cost:
                    place_buy = False

            if place_buy and (
                self._market.is_dust_quantity(bid_qty, band.bid)
                or not ledger.lock_quote(bid_qty * band.bid)
            ):
                place_buy = False

            if place_sell and (
                self._market.is_dust_quantity(ask_qty, band.ask)
                or not ledger.lock_base(ask_qty)
            ):
                place_sell = False

            if place_buy:
                plan.intents.append(self._intent(BUY, band.bid, bid_qty, i))
            if place_sell:
                plan.intents.append(self._intent(SELL, band.ask, ask_qty, i))

        ledger.commit()
        return plan

    def _intent(self, side: str, price: float, quantity: float, layer: int) -> OrderIntent:
        return OrderIntent(
            symbol=self._symbol,
            side=side,
            price=price,
            quantity=quantity,
            tag=LIQUIDITY_TAG,
            layer=layer,
        )
