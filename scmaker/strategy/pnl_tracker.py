from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from scmaker.connectors.base import Trade
from scmaker.strategy.inventory import Position


@dataclass
class ProfitStats:
    """Realised profit and traded volume of one strategy instance."""

    symbol: str

    accumulated_pnl: float = 0.0
    accumulated_volume: float = 0.0  # base currency
    accumulated_fee: float = 0.0     # quote currency
    accumulated_trades: int = 0

    today_pnl: float = 0.0
    today_volume: float = 0.0
    today: Optional[str] = field(default=None)

    def _roll_day(self, now: datetime) -> None:
        day = now.date().isoformat()
        if self.today != day:
            self.today = day
            self.today_pnl = 0.0
            self.today_volume = 0.0

    def add_trade(self, trade: Trade, profit: float) -> None:
        """Record a fill together with the profit it realised on the position."""
        self._roll_day(trade.timestamp)
        self.accumulated_trades += 1
        self.accumulated_volume += trade.quantity
        self.today_volume += trade.quantity
        self.accumulated_fee += trade.fee
        if profit:
            self.accumulated_pnl += profit
            self.today_pnl += profit

    def unrealized_pnl(self, position: Position, price: float) -> float:
        """Mark-to-market profit of *position* at *price*."""
        if position.is_closed():
            return 0.0
        return (price - position.average_cost) * position.base

    def summary(self, position: Position, price: float) -> str:
        return (
            f"{self.symbol} position {position.base:.8f} @ {position.average_cost:.6f} | "
            f"realised {self.accumulated_pnl:.6f} (today {self.today_pnl:.6f}) | "
            f"unrealised {self.unrealized_pnl(position, price):.6f} | "
            f"trades {self.accumulated_trades} volume {self.accumulated_volume:.4f}"
        )

    # --- persistence --- #

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProfitStats":
        known = {k: data[k] for k in cls.__dataclass_fields__ if k in data}
        return cls(**known)
