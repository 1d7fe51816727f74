"""Track the net base position and its average entry cost."""

from __future__ import annotations

from collections import deque
from dataclasses import asdict, dataclass
from typing import Any, Deque, Dict, List, Set, Tuple

from scmaker.connectors.base import BUY, Trade
from scmaker.data.market import Market

_EPSILON = 1e-12

# a reconnecting trade stream may replay fills it already delivered
SEEN_TRADES_LIMIT = 10_000


@dataclass
class Position:
    """Signed base quantity (+long / -short) and average cost in quote per base."""

    symbol: str
    base: float = 0.0
    average_cost: float = 0.0

    # --- classification --- #

    def is_long(self) -> bool:
        return self.base > 0

    def is_short(self) -> bool:
        return self.base < 0

    def is_closed(self) -> bool:
        return self.base == 0

    def is_dust(self, market: Market) -> bool:
        """Position too small to trade back at its average cost."""
        return market.is_dust_quantity(abs(self.base), self.average_cost)

    @property
    def size(self) -> float:
        return abs(self.base)

    # --- position updates --- #

    def add_trade(self, trade: Trade) -> float:
        """Apply a fill and return the realised profit (0.0 when the fill only adds)."""
        qty = trade.quantity
        price = trade.price
        signed = qty if trade.side.upper() == BUY else -qty

        # adding to the position, or opening from flat
        if self.base == 0 or (self.base > 0) == (signed > 0):
            cost = self.average_cost * abs(self.base) + price * qty
            if self.base >= 0:
                cost += trade.fee
            else:
                cost -= trade.fee
            self.base += signed
            self.average_cost = cost / abs(self.base)
            return 0.0

        # reducing, possibly flipping
        closed = min(qty, abs(self.base))
        if self.base > 0:
            profit = (price - self.average_cost) * closed
        else:
            profit = (self.average_cost - price) * closed
        profit -= trade.fee

        self.base += signed
        if abs(self.base) < _EPSILON:
            self.base = 0.0
            self.average_cost = 0.0
        elif closed < qty:
            # flipped through flat: the remainder opens at the fill price
            self.average_cost = price
        return profit

    # --- persistence --- #

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Position":
        return cls(
            symbol=data["symbol"],
            base=float(data.get("base", 0.0)),
            average_cost=float(data.get("average_cost", 0.0)),
        )


class PositionCell:
    """Single-owner holder of the Position.

    Fill events are posted from the user-trade stream and only applied when
    the owner drains the mailbox between ticks, so a tick never sees the
    position change under it.
    """

    def __init__(self, position: Position, history: int = SEEN_TRADES_LIMIT):
        self._position = position
        self._mailbox: Deque[Trade] = deque()
        self._seen_ids: Set[Any] = set()
        self._seen_order: Deque[Any] = deque()
        self._history = history

    @property
    def position(self) -> Position:
        return self._position

    @property
    def pending(self) -> int:
        return len(self._mailbox)

    def post(self, trade: Trade) -> bool:
        """Queue *trade*; return False when its trade id was already posted."""
        if trade.trade_id in self._seen_ids:
            return False
        self._seen_ids.add(trade.trade_id)
        self._seen_order.append(trade.trade_id)
        if len(self._seen_order) > self._history:
            self._seen_ids.discard(self._seen_order.popleft())
        self._mailbox.append(trade)
        return True

    def drain(self) -> List[Tuple[Trade, float]]:
        """Apply every queued fill; return ``(trade, realised_profit)`` pairs."""
        applied = []
        while self._mailbox:
            trade = self._mailbox.popleft()
            applied.append((trade, self._position.add_trade(trade)))
        return applied
