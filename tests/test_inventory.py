from datetime import datetime

import pytest

from scmaker.connectors.base import BUY, SELL, Trade
from scmaker.strategy.inventory import Position, PositionCell
from scmaker.strategy.pnl_tracker import ProfitStats
from scmaker.utils.state import StateStore

_ids = iter(range(1, 1000))


def trade(side, qty, price, fee=0.0, ts=None):
    return Trade(
        trade_id=next(_ids),
        client_order_id="scmaker-liq-1-deadbeef",
        symbol="USDCUSDT",
        side=side,
        price=price,
        quantity=qty,
        fee=fee,
        timestamp=ts or datetime(2023, 5, 20, 12),
    )


def test_buys_average_the_cost():
    pos = Position(symbol="USDCUSDT")
    assert pos.add_trade(trade(BUY, 10, 1.0)) == 0.0
    assert pos.add_trade(trade(BUY, 10, 1.002)) == 0.0
    assert pos.base == pytest.approx(20)
    assert pos.average_cost == pytest.approx(1.001)
    assert pos.is_long() and not pos.is_short()


def test_reducing_realises_profit_and_flipping_resets_cost():
    pos = Position(symbol="USDCUSDT", base=20.0, average_cost=1.001)
    assert pos.add_trade(trade(SELL, 5, 1.003)) == pytest.approx(0.01)
    assert pos.base == pytest.approx(15)
    assert pos.average_cost == pytest.approx(1.001)

    assert pos.add_trade(trade(SELL, 20, 1.0)) == pytest.approx(-0.015)
    assert pos.base == pytest.approx(-5)
    assert pos.average_cost == pytest.approx(1.0)
    assert pos.is_short()


def test_closing_exactly_goes_flat():
    pos = Position(symbol="USDCUSDT", base=-5.0, average_cost=1.0)
    assert pos.add_trade(trade(BUY, 5, 0.999, fee=0.001)) == pytest.approx(0.005 - 0.001)
    assert pos.is_closed()
    assert pos.average_cost == 0.0


def test_fees_are_part_of_the_entry_cost():
    pos = Position(symbol="USDCUSDT")
    pos.add_trade(trade(BUY, 10, 1.0, fee=0.01))
    assert pos.average_cost == pytest.approx(1.001)


def test_dust_classification(market):
    assert Position(symbol="USDCUSDT", base=0.5, average_cost=1.0).is_dust(market)
    assert not Position(symbol="USDCUSDT", base=-5.0, average_cost=1.0).is_dust(market)


def test_position_cell_applies_fills_only_when_drained():
    cell = PositionCell(Position(symbol="USDCUSDT"))
    cell.post(trade(BUY, 10, 1.0))
    cell.post(trade(SELL, 4, 1.001))
    assert cell.position.base == 0.0
    assert cell.pending == 2

    applied = cell.drain()
    assert [p for _, p in applied] == pytest.approx([0.0, 0.004])
    assert cell.position.base == pytest.approx(6.0)
    assert cell.pending == 0
    assert cell.drain() == []


def test_position_cell_drops_replayed_trade_ids():
    cell = PositionCell(Position(symbol="USDCUSDT"), history=2)
    first = trade(BUY, 100, 1.0)
    assert cell.post(first)
    assert not cell.post(first)
    cell.drain()
    assert cell.position.base == pytest.approx(100.0)

    # ids older than the history window are forgotten
    cell.post(trade(BUY, 1, 1.0))
    cell.post(trade(BUY, 1, 1.0))
    assert cell.post(first)


def test_profit_stats_accumulate_and_roll_over_days():
    stats = ProfitStats(symbol="USDCUSDT")
    stats.add_trade(trade(BUY, 10, 1.0, fee=0.01), 0.0)
    stats.add_trade(trade(SELL, 10, 1.002), 0.02)
    assert stats.accumulated_trades == 2
    assert stats.accumulated_volume == pytest.approx(20)
    assert stats.accumulated_fee == pytest.approx(0.01)
    assert stats.accumulated_pnl == pytest.approx(0.02)
    assert stats.today == "2023-05-20"

    stats.add_trade(trade(SELL, 1, 1.0, ts=datetime(2023, 5, 21, 0, 5)), -0.001)
    assert stats.today == "2023-05-21"
    assert stats.today_pnl == pytest.approx(-0.001)
    assert stats.accumulated_pnl == pytest.approx(0.019)


def test_unrealized_pnl():
    stats = ProfitStats(symbol="USDCUSDT")
    assert stats.unrealized_pnl(Position(symbol="USDCUSDT", base=-10, average_cost=1.001), 1.0) == pytest.approx(0.01)
    assert stats.unrealized_pnl(Position(symbol="USDCUSDT"), 1.0) == 0.0


def test_state_store_persists_position_and_stats(tmp_path):
    store = StateStore(tmp_path / "state" / "scmaker.json")
    position, stats = store.load("USDCUSDT")
    assert position.is_closed() and stats.accumulated_trades == 0

    position.add_trade(trade(BUY, 10, 0.999))
    stats.add_trade(trade(BUY, 10, 0.999), 0.0)
    store.save(position, stats)

    loaded_position, loaded_stats = StateStore(tmp_path / "state" / "scmaker.json").load("USDCUSDT")
    assert loaded_position == position
    assert loaded_stats == stats
    with pytest.raises(ValueError):
        store.load("BTCUSDT")
