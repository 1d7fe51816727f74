import asyncio
import logging

import pytest

from conftest import FakeConnector, make_klines
from scmaker.connectors.base import BUY, SELL, AdvancedCancelApi, Trade
from scmaker.data.market import KLine
from scmaker.execution.order_manager import OrderManager
from scmaker.main import run_bot
from scmaker.utils.metrics import Metrics
from scmaker.utils.state import StateStore

logger = logging.getLogger("scmaker.tests")


def _config(strategy_cfg):
    return {
        "strategy": strategy_cfg,
        "logging": {"level": "WARNING", "path": None},
        "state": {"path": None},
        "metrics": {"path": None},
        "warmup_klines": 10,
    }


def _fill(client_order_id, side, price, quantity, fee=0.0):
    return Trade(
        trade_id=1,
        client_order_id=client_order_id,
        symbol="USDCUSDT",
        side=side,
        price=price,
        quantity=quantity,
        fee=fee,
    )


def _run(coro_fn):
    return asyncio.run(coro_fn())


def test_liquidity_tick_quotes_every_layer(connector, strategy_cfg):
    async def scenario():
        om = OrderManager(connector, _config(strategy_cfg), logger)
        await om.start()
        created = await om.place_liquidity_orders()
        return om, created

    om, created = _run(scenario)

    assert len(created) == 8
    assert len(om.liquidity_orders) == 8
    intents = [intent for _, intent in connector.submitted]
    assert [i.price for i in intents if i.side == BUY] == [0.9999, 0.9998, 0.9998, 0.9996]
    assert [i.price for i in intents if i.side == SELL] == [1.0001, 1.0002, 1.0003, 1.0002]
    assert [i.quantity for i in intents if i.side == SELL] == [100.0, 200.0, 300.0, 400.0]
    assert all(cid.startswith("scmaker-liq-") for cid, _ in connector.submitted)
    assert om.metrics.get("orders_submitted") == 8


def test_second_tick_cancels_previous_ladder(connector, strategy_cfg):
    async def scenario():
        om = OrderManager(connector, _config(strategy_cfg), logger)
        await om.start()
        first = await om.place_liquidity_orders()
        await om.place_liquidity_orders()
        return om, first

    om, first = _run(scenario)

    assert sorted(connector.cancelled) == sorted(o.client_order_id for o in first)
    assert len(connector.submitted) == 16
    assert len(om.liquidity_orders) == 8


def test_query_failure_aborts_tick(connector, strategy_cfg):
    connector.ticker_error = ConnectionError("venue unreachable")

    async def scenario():
        om = OrderManager(connector, _config(strategy_cfg), logger)
        await om.start()
        return om, await om.place_liquidity_orders()

    om, created = _run(scenario)

    assert created == []
    assert connector.submitted == []
    assert om.metrics.get("ticks_aborted") == 1


def test_crossed_ticker_aborts_tick(connector, strategy_cfg):
    connector.ticker.buy, connector.ticker.sell = 1.0002, 1.0001

    async def scenario():
        om = OrderManager(connector, _config(strategy_cfg), logger)
        await om.start()
        return om, await om.place_liquidity_orders()

    om, created = _run(scenario)

    assert created == []
    assert om.metrics.get("ticks_aborted") == 1


def test_rejected_side_does_not_stop_the_other(connector, strategy_cfg):
    connector.submit_error_sides = {SELL}

    async def scenario():
        om = OrderManager(connector, _config(strategy_cfg), logger)
        await om.start()
        return om, await om.place_liquidity_orders()

    om, created = _run(scenario)

    assert [o.side for o in created] == [BUY] * 4
    assert om.metrics.get("orders_failed") == 4
    assert om.metrics.get("orders_submitted") == 4


def test_failed_cancel_keeps_order_tracked(connector, strategy_cfg):
    async def scenario():
        om = OrderManager(connector, _config(strategy_cfg), logger)
        await om.start()
        first = await om.place_liquidity_orders()
        stuck = first[0].client_order_id
        connector.cancel_error_ids = {stuck}
        second = await om.place_liquidity_orders()
        return om, stuck, second

    om, stuck, second = _run(scenario)

    assert len(second) == 8
    assert stuck in om.liquidity_orders
    assert len(om.liquidity_orders) == 9
    assert om.metrics.get("cancels_failed") == 1


def test_adjustment_works_long_position_back(connector, strategy_cfg, tmp_path):
    store = StateStore(tmp_path / "state.json")

    async def scenario():
        om = OrderManager(connector, _config(strategy_cfg), logger, state_store=store)
        await om.start()
        om.on_trade(_fill("scmaker-liq-1-0badf00d", BUY, 0.999, 50.0))
        return om, await om.place_adjustment_orders()

    om, created = _run(scenario)

    assert len(created) == 1
    order = created[0]
    assert (order.side, order.price, order.quantity) == (SELL, 1.0, 50.0)
    assert order.client_order_id.startswith("scmaker-adj-")
    assert len(om.adjustment_orders) == 1
    assert om.position.base == pytest.approx(50.0)

    position, stats = store.load("USDCUSDT")
    assert position.average_cost == pytest.approx(0.999)
    assert stats.accumulated_trades == 1


def test_adjustment_skips_flat_position(connector, strategy_cfg):
    async def scenario():
        om = OrderManager(connector, _config(strategy_cfg), logger)
        await om.start()
        return await om.place_adjustment_orders()

    assert _run(scenario) == []
    assert connector.submitted == []


def test_foreign_fills_are_ignored(connector, strategy_cfg):
    async def scenario():
        om = OrderManager(connector, _config(strategy_cfg), logger)
        await om.start()
        om.on_trade(_fill("manual-order-7", BUY, 1.0, 500.0))
        await om.place_adjustment_orders()
        return om

    om = _run(scenario)

    assert om.position.is_closed()
    assert om.profit_stats.accumulated_trades == 0


def test_fill_reduces_tracked_order(connector, strategy_cfg):
    async def scenario():
        om = OrderManager(connector, _config(strategy_cfg), logger)
        await om.start()
        created = await om.place_liquidity_orders()
        bid = created[0]
        om.on_trade(_fill(bid.client_order_id, BUY, bid.price, bid.quantity))
        return om, bid

    om, bid = _run(scenario)

    assert bid.client_order_id not in om.liquidity_orders
    assert len(om.liquidity_orders) == 7


def test_closed_klines_drive_the_ticks(connector, strategy_cfg):
    async def scenario():
        om = OrderManager(connector, _config(strategy_cfg), logger, metrics=Metrics())
        await om.start()
        ema_before = om.strategy.ema.last()

        minute = make_klines([1.0], interval="1m")[0]
        hour = make_klines([1.0002], interval="1h")[0]
        open_hour = KLine("USDCUSDT", "1h", 1.0, 1.0, 1.0, 1.0, 1.0, hour.start_time, closed=False)
        other = make_klines([1.0], interval="1h", symbol="BTCUSDT")[0]

        await om.on_kline_closed(minute)
        await om.on_kline_closed(open_hour)
        await om.on_kline_closed(other)
        assert om.strategy.ema.last() == ema_before
        await om.on_kline_closed(hour)
        return om, ema_before

    om, ema_before = _run(scenario)

    assert om.metrics.get("adjustment_ticks") == 1
    assert om.metrics.get("liquidity_ticks") == 1
    assert om.strategy.ema.last() > ema_before
    assert len(om.liquidity_orders) == 8


def test_shutdown_cancels_both_partitions(connector, strategy_cfg):
    async def scenario():
        om = OrderManager(connector, _config(strategy_cfg), logger)
        await om.start()
        await om.place_liquidity_orders()
        om.on_trade(_fill("scmaker-liq-99-0badf00d", SELL, 1.001, 20.0))
        await om.place_adjustment_orders()
        await om.shutdown()
        return om

    om = _run(scenario)

    assert len(om.liquidity_orders) == 0
    assert len(om.adjustment_orders) == 0
    assert len(connector.cancelled) == 9


class BulkCancelConnector(FakeConnector, AdvancedCancelApi):
    def __init__(self, market):
        super().__init__(market)
        self.bulk_cancelled = []

    async def cancel_orders_by_symbol(self, symbol):
        self.bulk_cancelled.append(symbol)
        return []


def test_start_clears_leftover_orders_when_supported(market, strategy_cfg):
    connector = BulkCancelConnector(market)

    async def scenario():
        om = OrderManager(connector, _config(strategy_cfg), logger)
        await om.start()

    _run(scenario)
    assert connector.bulk_cancelled == ["USDCUSDT"]


def test_strategy_is_unavailable_before_start(connector, strategy_cfg):
    async def scenario():
        return OrderManager(connector, _config(strategy_cfg), logger)

    om = _run(scenario)
    with pytest.raises(RuntimeError):
        om.strategy


def test_run_bot_follows_stream_and_cleans_up(connector, strategy_cfg):
    connector.klines = make_klines([1.0001], interval="1h")
    config = _config(strategy_cfg)

    asyncio.run(run_bot(config, connector))

    # initial ladder plus one ladder per closed hourly candle
    assert len(connector.submitted) == 16
    assert len(connector.cancelled) == 16
    assert connector.closed


class LiveTradesConnector(FakeConnector):
    """Delivers fills only to trade streams subscribed when the fill happens."""

    def __init__(self, market):
        super().__init__(market)
        self.subscribers = []

    async def stream_trades(self, symbol):
        queue = asyncio.Queue()
        self.subscribers.append(queue)
        while True:
            yield await queue.get()

    async def submit_order(self, intent, client_order_id):
        order = await super().submit_order(intent, client_order_id)
        if intent.side == BUY and intent.layer == 0:
            fill = _fill(client_order_id, BUY, intent.price, intent.quantity)
            for queue in self.subscribers:
                queue.put_nowait(fill)
        return order


def test_touch_fill_of_first_ladder_reaches_the_position(market, strategy_cfg):
    connector = LiveTradesConnector(market)

    async def scenario():
        om = OrderManager(connector, _config(strategy_cfg), logger)
        await om.run()
        return om

    om = _run(scenario)

    assert len(connector.subscribers) == 1
    assert om.position.base == pytest.approx(25.0)
    assert om.position.average_cost == pytest.approx(0.9999)


def test_replayed_fill_is_applied_once(connector, strategy_cfg):
    async def scenario():
        om = OrderManager(connector, _config(strategy_cfg), logger)
        await om.start()
        fill = _fill("scmaker-liq-1-0badf00d", BUY, 0.999, 50.0)
        om.on_trade(fill)
        om.on_trade(fill)
        await om.place_adjustment_orders()
        return om

    om = _run(scenario)

    assert om.position.base == pytest.approx(50.0)
    assert om.profit_stats.accumulated_trades == 1
