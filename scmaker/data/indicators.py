"""Streaming indicators fed by closed candles: mid-price EMA and Bollinger band width."""

from __future__ import annotations

from collections import deque
from typing import Deque, Iterable, List, Optional

import numpy as np
import pandas as pd

from scmaker.data.market import KLine


def klines_frame(klines: Iterable[KLine]) -> pd.DataFrame:
    """Tabulate candles ordered by start time."""
    frame = pd.DataFrame(
        [(k.start_time, k.open, k.high, k.low, k.close, k.volume) for k in klines],
        columns=["start_time", "open", "high", "low", "close", "volume"],
    )
    return frame.sort_values("start_time", kind="stable").reset_index(drop=True)


class MidPriceEMA:
    """Exponential moving average of close prices.

    Uses the ``2 / (window + 1)`` multiplier and seeds with the first close,
    which is what ``pandas.Series.ewm(span=window, adjust=False)`` computes.
    """

    def __init__(self, interval: str, window: int):
        if window <= 0:
            raise ValueError("EMA window must be positive")
        self.interval = interval
        self.window = window
        self._alpha = 2.0 / (window + 1)
        self._value: Optional[float] = None

    def warm_up(self, klines: Iterable[KLine]) -> None:
        frame = klines_frame(klines)
        if frame.empty:
            return
        closes = frame["close"]
        if self._value is not None:
            closes = pd.concat([pd.Series([self._value]), closes], ignore_index=True)
        self._value = float(closes.ewm(span=self.window, adjust=False).mean().iloc[-1])

    def update(self, close: float) -> float:
        if self._value is None:
            self._value = float(close)
        else:
            self._value = self._alpha * close + (1 - self._alpha) * self._value
        return self._value

    @property
    def ready(self) -> bool:
        return self._value is not None

    def last(self) -> float:
        if self._value is None:
            raise ValueError(f"mid price EMA({self.interval}, {self.window}) has no data")
        return self._value


class BollingerBandWidth:
    """Half-width of a Bollinger band: ``k`` population standard deviations."""

    def __init__(self, interval: str, window: int, k: float):
        if window <= 0:
            raise ValueError("Bollinger window must be positive")
        self.interval = interval
        self.window = window
        self.k = k
        self._closes: Deque[float] = deque(maxlen=window)

    def warm_up(self, klines: Iterable[KLine]) -> None:
        for close in klines_frame(klines)["close"].tolist():
            self._closes.append(float(close))

    def update(self, close: float) -> float:
        self._closes.append(float(close))
        return self.last()

    @property
    def ready(self) -> bool:
        return len(self._closes) > 0

    @property
    def closes(self) -> List[float]:
        return list(self._closes)

    def last(self) -> float:
        if not self._closes:
            raise ValueError(f"bollinger({self.interval}, {self.window}) has no data")
        return float(self.k * np.std(np.asarray(self._closes), ddof=0))
