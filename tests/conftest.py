import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List

import pytest

# make the top-level package importable without installing it
ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)

from scmaker.connectors.base import Balance, BaseConnector, Order, Ticker  # noqa: E402
from scmaker.data.market import KLine, Market  # noqa: E402


@pytest.fixture
def market():
    return Market(
        symbol="USDCUSDT",
        base_currency="USDC",
        quote_currency="USDT",
        tick_size=0.0001,
        step_size=0.01,
        min_quantity=0.0,
        min_notional=1.0,
    )


@pytest.fixture
def strategy_cfg():
    return {
        "symbol": "usdcusdt",
        "base_currency": "USDC",
        "quote_currency": "USDT",
        "adjustment_update_interval": "1m",
        "liquidity_update_interval": "1h",
        "mid_price_ema": {"interval": "1h", "window": 3},
        "price_range_bollinger": {"interval": "1h", "window": 3, "k": 1.0},
        "num_of_liquidity_layers": 3,
        "liquidity_layer_tick_size": 0.0001,
        "min_profit": "0.01%",
        "maker_fee_rate": 0,
        "max_exposure": 0,
        "liquidity_scale": {"linear": {"domain": [0, 3], "range": [1, 4]}},
    }


def make_klines(closes, interval="1h", symbol="USDCUSDT") -> List[KLine]:
    start = datetime(2023, 5, 20)
    return [
        KLine(symbol, interval, c, c, c, c, 1000.0, start + timedelta(hours=i))
        for i, c in enumerate(closes)
    ]


class FakeConnector(BaseConnector):
    """In-memory venue: records submissions and cancellations."""

    def __init__(self, market: Market, ticker: Ticker = None, balances: Dict[str, Balance] = None):
        super().__init__({}, None)
        self.market = market
        self.ticker = ticker or Ticker(buy=0.9999, sell=1.0001)
        self.balances = balances or {
            "USDC": Balance("USDC", 1000.0),
            "USDT": Balance("USDT", 1000.0),
        }
        self.closes = [0.9999, 1.0, 1.0001]
        self.klines: List[KLine] = []
        self.trades = []
        self.submitted = []
        self.cancelled = []
        self.ticker_error = None
        self.submit_error_sides = set()
        self.cancel_error_ids = set()
        self.closed = False

    async def query_market(self, symbol):
        return self.market

    async def query_ticker(self, symbol):
        if self.ticker_error is not None:
            raise self.ticker_error
        return self.ticker

    async def query_klines(self, symbol, interval, limit):
        return make_klines(self.closes, interval, symbol)[-limit:]

    async def stream_klines(self, symbol, intervals):
        for k in self.klines:
            yield k

    async def query_balances(self):
        return dict(self.balances)

    async def stream_trades(self, symbol):
        for t in self.trades:
            yield t

    async def submit_order(self, intent, client_order_id):
        if intent.side in self.submit_error_sides:
            raise RuntimeError("order would immediately match and take")
        self.submitted.append((client_order_id, intent))
        return Order(
            client_order_id=client_order_id,
            exchange_order_id=len(self.submitted),
            symbol=intent.symbol,
            side=intent.side,
            price=intent.price,
            quantity=intent.quantity,
            status="NEW",
        )

    async def cancel_order(self, symbol, client_order_id):
        if client_order_id in self.cancel_error_ids:
            raise RuntimeError("cancel rejected")
        self.cancelled.append(client_order_id)

    async def close(self):
        self.closed = True


@pytest.fixture
def connector(market):
    return FakeConnector(market)
