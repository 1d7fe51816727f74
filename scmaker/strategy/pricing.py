"""Layered bid/ask price ladder anchored on the mid-price EMA and Bollinger width."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from scmaker.connectors.base import Ticker
from scmaker.data.market import Market


@dataclass
class QuoteBand:
    """One rung of the ladder: a bid/ask pair at the same layer index."""

    bid: float
    ask: float


@dataclass
class PriceLadder:
    """Bands ordered from the touch (index 0) to the volatility edge (index N)."""

    bands: List[QuoteBand] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.bands)

    @property
    def bid_prices(self) -> List[float]:
        return [b.bid for b in self.bands]

    @property
    def ask_prices(self) -> List[float]:
        return [b.ask for b in self.bands]


def build_price_ladder(
    ticker: Ticker,
    mid_price: float,
    band_width: float,
    tick_size: float,
    layer_count: int,
    market: Market,
) -> PriceLadder:
    """Return ``layer_count + 1`` bands.

    Layer 0 quotes at the touch, layers ``1..N-1`` sit ``tick_size * i`` away
    from *mid_price*, and layer N sits on the Bollinger edge
    ``mid_price ± band_width``.  Layers above 0 that would bid through the
    best bid (or offer through the best ask) are pushed back behind the touch.
    Bids are truncated down and asks rounded up to the market tick.  Inner
    layers are non-increasing (bids) / non-decreasing (asks); the outermost
    layer follows the band and is exempt.
    """
    if layer_count < 0:
        raise ValueError("layer_count must not be negative")

    ladder = PriceLadder()
    for i in range(layer_count + 1):
        sp = tick_size * i

        bid = ticker.buy
        ask = ticker.sell
        if i == layer_count and i > 0:
            bid = mid_price - band_width
            ask = mid_price + band_width
        elif i > 0:
            bid = mid_price - sp
            ask = mid_price + sp

        if i > 0 and bid > ticker.buy:
            bid = ticker.buy - sp
        if i > 0 and ask < ticker.sell:
            ask = ticker.sell + sp

        bid = market.truncate_price(bid)
        ask = market.round_up_price(ask)
        # inner layers never come back toward the touch once pushed behind it
        if 0 < i < layer_count:
            prev = ladder.bands[-1]
            bid = min(bid, prev.bid)
            ask = max(ask, prev.ask)
        ladder.bands.append(QuoteBand(bid=bid, ask=ask))
    return ladder
