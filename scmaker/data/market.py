"""Market metadata: price/quantity precision, dust thresholds and truncation rules."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_CEILING, ROUND_FLOOR, Decimal
from typing import Any, Dict


def decimals_from_step(step: float) -> int:
    """Number of decimals implied by a step such as ``0.0001``."""
    if step <= 0:
        return 0
    exp = Decimal(str(step)).normalize().as_tuple().exponent
    return max(0, -int(exp))


def _snap(value: float, step: float, rounding: str) -> float:
    if step <= 0:
        return float(value)
    sd = Decimal(str(step))
    # drop float noise such as 0.9997999999999999 before snapping
    n = (Decimal(str(round(value, 12))) / sd).to_integral_value(rounding=rounding)
    out = (n * sd).quantize(Decimal(1).scaleb(-decimals_from_step(step)))
    return float(out)


def floor_to_step(value: float, step: float) -> float:
    """Round *value* down to a whole multiple of *step*."""
    return _snap(value, step, ROUND_FLOOR)


def ceil_to_step(value: float, step: float) -> float:
    """Round *value* up to a whole multiple of *step*."""
    return _snap(value, step, ROUND_CEILING)


@dataclass
class KLine:
    symbol: str
    interval: str
    open: float
    high: float
    low: float
    close: float
    volume: float
    start_time: datetime
    closed: bool = True


@dataclass(frozen=True)
class Market:
    """Static trading rules of one symbol."""

    symbol: str
    base_currency: str
    quote_currency: str
    tick_size: float
    step_size: float
    min_quantity: float = 0.0
    min_notional: float = 0.0

    @property
    def price_precision(self) -> int:
        return decimals_from_step(self.tick_size)

    @property
    def volume_precision(self) -> int:
        return decimals_from_step(self.step_size)

    # ---------- truncation ---------- #

    def truncate_price(self, price: float) -> float:
        """Round *price* down to the tick size (safe side for bids)."""
        return floor_to_step(price, self.tick_size)

    def round_up_price(self, price: float) -> float:
        """Round *price* up to the tick size (safe side for asks)."""
        return ceil_to_step(price, self.tick_size)

    def truncate_quantity(self, quantity: float) -> float:
        """Round *quantity* down to the lot step size."""
        if quantity <= 0:
            return 0.0
        return floor_to_step(quantity, self.step_size)

    # ---------- dust ---------- #

    def is_dust_quantity(self, quantity: float, price: float) -> bool:
        """True when an order of *quantity* at *price* is below venue minimums."""
        if quantity <= 0 or price <= 0:
            return True
        if quantity < self.min_quantity:
            return True
        return quantity * price < self.min_notional

    # ---------- construction ---------- #

    @classmethod
    def from_exchange_info(cls, symbol_info: Dict[str, Any]) -> "Market":
        """Build a market from a Binance-style ``exchangeInfo`` symbol entry."""
        tick_size = step_size = min_quantity = min_notional = 0.0
        for f in symbol_info.get("filters", []):
            if f["filterType"] == "PRICE_FILTER":
                tick_size = float(f["tickSize"])
            elif f["filterType"] == "LOT_SIZE":
                step_size = float(f["stepSize"])
                min_quantity = float(f.get("minQty", 0.0))
            elif f["filterType"] in {"MIN_NOTIONAL", "NOTIONAL"}:
                min_notional = float(f.get("minNotional", 0.0))
        return cls(
            symbol=symbol_info["symbol"].upper(),
            base_currency=symbol_info["baseAsset"],
            quote_currency=symbol_info["quoteAsset"],
            tick_size=tick_size,
            step_size=step_size,
            min_quantity=min_quantity,
            min_notional=min_notional,
        )
