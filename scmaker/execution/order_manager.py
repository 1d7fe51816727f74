"""High-level orchestrator: cancel, refresh, quote and submit on every closed candle."""

from __future__ import annotations

import asyncio
import itertools
import uuid
from typing import Dict, List, Optional, Tuple

from scmaker.connectors.base import (
    AdvancedCancelApi,
    Balance,
    BaseConnector,
    Order,
    OrderIntent,
    Ticker,
    Trade,
)
from scmaker.data.market import KLine
from scmaker.errors import OrderSubmitError, QueryError
from scmaker.execution.active_orders import ActiveOrderBook
from scmaker.strategy.inventory import Position, PositionCell
from scmaker.strategy.market_maker import MarketMakerStrategy, StrategyConfig
from scmaker.strategy.pnl_tracker import ProfitStats
from scmaker.utils.logger import get_child_logger
from scmaker.utils.metrics import Metrics
from scmaker.utils.state import StateStore

CLIENT_ID_PREFIX = "scmaker-"
DEFAULT_WARMUP_KLINES = 1000


class OrderManager:
    """Drives the liquidity and adjustment ticks of one strategy instance.

    Both ticks run on the event loop under ``_tick_lock``, so at most one
    tick evaluates at a time.  Liquidity and adjustment orders are tracked
    in separate ``ActiveOrderBook`` partitions and cancelled independently.
    """

    def __init__(
        self,
        connector: BaseConnector,
        config: dict,
        logger,
        metrics: Optional[Metrics] = None,
        state_store: Optional[StateStore] = None,
    ):
        self._c = connector
        self._cfg = config
        self._logger = get_child_logger(logger, "order_mgr")
        self._strategy_cfg = StrategyConfig.from_dict(config["strategy"])
        self._symbol = self._strategy_cfg.symbol
        self._metrics = metrics or Metrics()
        self._state = state_store
        self._warmup_limit = int(config.get("warmup_klines", DEFAULT_WARMUP_KLINES))

        self._strat: Optional[MarketMakerStrategy] = None
        self._cell: Optional[PositionCell] = None
        self._profit_stats: Optional[ProfitStats] = None

        self.liquidity_orders = ActiveOrderBook(self._symbol, "liquidity", self._logger)
        self.adjustment_orders = ActiveOrderBook(self._symbol, "adjustment", self._logger)

        self._id_seq = itertools.count(1)
        self._tick_lock = asyncio.Lock()
        self._trades_subscribed = asyncio.Event()
        self._advanced_cancel = isinstance(connector, AdvancedCancelApi)

    # ---------- accessors ---------- #

    @property
    def strategy(self) -> MarketMakerStrategy:
        if self._strat is None:
            raise RuntimeError("OrderManager.start() has not been awaited")
        return self._strat

    @property
    def position(self) -> Position:
        return self._cell.position

    @property
    def profit_stats(self) -> ProfitStats:
        return self._profit_stats

    @property
    def metrics(self) -> Metrics:
        return self._metrics

    # ---------- lifecycle ---------- #

    async def start(self) -> None:
        """Load market rules & state, solve the scale and warm up the indicators."""
        market = await self._c.query_market(self._symbol)
        # raises ScaleError / ConfigError: the strategy must not start
        self._strat = MarketMakerStrategy(self._strategy_cfg, market, self._logger.getChild("strategy"))

        if self._state is not None:
            position, stats = self._state.load(self._symbol)
        else:
            position, stats = Position(symbol=self._symbol), ProfitStats(symbol=self._symbol)
        self._cell = PositionCell(position)
        self._profit_stats = stats

        if self._advanced_cancel:
            try:
                cancelled = await self._c.cancel_orders_by_symbol(self._symbol)
                self._logger.info("Cancelled %d open %s orders on startup", len(cancelled), self._symbol)
            except Exception as exc:
                self._logger.error("Unable to cancel open orders on startup: %s", exc)

        await self._warm_up()

    async def _warm_up(self) -> None:
        ema, boll = self._strat.ema, self._strat.boll
        ema.warm_up(await self._c.query_klines(self._symbol, ema.interval, self._warmup_limit))
        boll.warm_up(await self._c.query_klines(self._symbol, boll.interval, boll.window))
        self._logger.info(
            "Indicators warmed up - EMA(%s,%d) ready: %s, BOLL(%s,%d) ready: %s",
            ema.interval, ema.window, ema.ready, boll.interval, boll.window, boll.ready,
        )

    async def run(self) -> None:
        """Main entry point: start, quote once, then follow the candle stream until cancelled.

        The first ladder is only placed once the trade stream is subscribed,
        so fills of touch-priced orders are never missed.
        """
        await self.start()

        trades_task = asyncio.create_task(self._handle_trades())
        try:
            await self._wait_for_trade_stream(trades_task)
            await self.place_liquidity_orders()
            async for kline in self._c.stream_klines(self._symbol, self._intervals()):
                await self.on_kline_closed(kline)
                if trades_task.done() and trades_task.exception():
                    raise trades_task.exception()
        finally:
            # fills already delivered to the stream reach the mailbox before it stops
            await asyncio.sleep(0)
            trades_task.cancel()
            try:
                await trades_task
            except asyncio.CancelledError:
                pass
            await self.shutdown()

    async def _wait_for_trade_stream(self, trades_task: asyncio.Task) -> None:
        subscribed = asyncio.create_task(self._trades_subscribed.wait())
        done, _ = await asyncio.wait({subscribed, trades_task}, return_when=asyncio.FIRST_COMPLETED)
        if subscribed not in done:
            subscribed.cancel()
            trades_task.result()

    def _intervals(self) -> List[str]:
        cfg = self._strategy_cfg
        intervals = [
            cfg.adjustment_update_interval,
            cfg.liquidity_update_interval,
            cfg.mid_price_ema.interval,
            cfg.price_range_bollinger.interval,
        ]
        return list(dict.fromkeys(intervals))

    async def on_kline_closed(self, kline: KLine) -> None:
        if not kline.closed or kline.symbol.upper() != self._symbol:
            return
        self.strategy.on_kline_closed(kline)

        if kline.interval == self._strategy_cfg.adjustment_update_interval:
            await self.place_adjustment_orders()
        if kline.interval == self._strategy_cfg.liquidity_update_interval:
            await self.place_liquidity_orders()

    async def shutdown(self) -> None:
        """Cancel both partitions; failures are logged and not retried."""
        for book in (self.liquidity_orders, self.adjustment_orders):
            try:
                failed = await book.graceful_cancel(self._c)
            except Exception as exc:
                self._logger.error("Unable to cancel %s orders: %s", book.name, exc)
                continue
            if failed:
                self._logger.error("Unable to cancel %d %s orders on shutdown", len(failed), book.name)
        if self._cell is not None:
            self._sync_position()
        await self._metrics.flush()

    # ---------- fills ---------- #

    async def _handle_trades(self) -> None:
        """Consume our own fills and post them to the position mailbox."""
        self._logger.info("Starting trade stream handler")
        while True:  # Keep trying to reconnect if stream ends
            try:
                stream = self._c.stream_trades(self._symbol)
                # the generator subscribes as soon as it is first awaited below
                self._trades_subscribed.set()
                async for trade in stream:
                    self.on_trade(trade)
                self._logger.warning("Trade stream ended, attempting to reconnect...")
                await asyncio.sleep(1)
            except asyncio.CancelledError:
                self._logger.info("Trade stream handler cancelled")
                raise
            except Exception as e:
                self._logger.error("Error in trade stream: %s", e, exc_info=True)
                await asyncio.sleep(1)

    def on_trade(self, trade: Trade) -> None:
        if not trade.client_order_id.startswith(CLIENT_ID_PREFIX):
            self._logger.debug("Skipping trade of non-strategy order: %s", trade.client_order_id)
            return
        if not self._cell.post(trade):
            self._logger.debug("Skipping replayed trade %s of %s", trade.trade_id, trade.client_order_id)
            return
        self.liquidity_orders.apply_trade(trade)
        self.adjustment_orders.apply_trade(trade)
        self._logger.info(
            "Fill: %s %.8f @ %.6f (fee: %.8f) order %s",
            trade.side, trade.quantity, trade.price, trade.fee, trade.client_order_id,
        )

    def _sync_position(self) -> None:
        """Apply queued fills to the position; persist when anything changed."""
        applied = self._cell.drain()
        if not applied:
            return
        for trade, profit in applied:
            self._profit_stats.add_trade(trade, profit)
            if profit:
                self._logger.info("Realised profit %.8f from %s", profit, trade.client_order_id)
        position = self._cell.position
        self._logger.info("Position updated: %.8f @ %.6f", position.base, position.average_cost)
        if self._state is not None:
            try:
                self._state.save(position, self._profit_stats)
            except OSError as exc:
                self._logger.error("Unable to save state to %s: %s", self._state.path, exc)

    # ---------- ticks ---------- #

    async def _query(self) -> Tuple[Ticker, float, float]:
        """Fetch a fresh ticker and the available base/quote balances."""
        cfg = self._strategy_cfg
        try:
            ticker = await self._c.query_ticker(self._symbol)
            balances: Dict[str, Balance] = await self._c.query_balances()
        except Exception as exc:
            raise QueryError(f"unable to query ticker/balances: {exc}") from exc
        if ticker.buy <= 0 or ticker.sell <= 0 or ticker.buy > ticker.sell:
            raise QueryError(f"invalid ticker {ticker}")

        base = balances.get(cfg.base_currency, Balance(cfg.base_currency, 0.0))
        quote = balances.get(cfg.quote_currency, Balance(cfg.quote_currency, 0.0))
        self._logger.info(
            "balances before orders: %s %.8f (total %.8f), %s %.8f (total %.8f)",
            base.currency, base.available, base.total, quote.currency, quote.available, quote.total,
        )
        return ticker, base.available, quote.available

    async def place_liquidity_orders(self) -> List[Order]:
        """Liquidity tick: cancel the ladder, re-quote it from fresh balances."""
        async with self._tick_lock:
            await self._metrics.incr("liquidity_ticks")
            self._sync_position()

            failed = await self.liquidity_orders.graceful_cancel(self._c)
            if failed:
                await self._metrics.incr("cancels_failed", len(failed))

            try:
                ticker, base, quote = await self._query()
                plan = self.strategy.liquidity_plan(ticker, base, quote, self.position)
            except Exception as exc:
                self._logger.error("Liquidity tick aborted: %s", exc, exc_info=not isinstance(exc, QueryError))
                await self._metrics.incr("ticks_aborted")
                return []

            created = await self._submit(plan.intents, self.liquidity_orders)
            self._logger.info(
                "Placed %d/%d liquidity orders (bid unit %.8f, ask unit %.8f) | %s",
                len(created), len(plan.intents), plan.bid_unit, plan.ask_unit,
                self._profit_stats.summary(self.position, (ticker.buy + ticker.sell) / 2),
            )
            await self._metrics.flush()
            return created

    async def place_adjustment_orders(self) -> List[Order]:
        """Adjustment tick: replace the single order that flattens the position."""
        async with self._tick_lock:
            await self._metrics.incr("adjustment_ticks")
            self._sync_position()

            failed = await self.adjustment_orders.graceful_cancel(self._c)
            if failed:
                await self._metrics.incr("cancels_failed", len(failed))

            if self.position.is_dust(self.strategy.market):
                return []

            try:
                ticker, base, quote = await self._query()
                intent = self.strategy.adjustment_order(ticker, base, quote, self.position)
            except Exception as exc:
                self._logger.error("Adjustment tick aborted: %s", exc, exc_info=not isinstance(exc, QueryError))
                await self._metrics.incr("ticks_aborted")
                return []

            if intent is None:
                return []
            return await self._submit([intent], self.adjustment_orders)

    async def _submit(self, intents: List[OrderIntent], book: ActiveOrderBook) -> List[Order]:
        """Submit each intent independently; one rejection does not stop the batch."""
        created = []
        for intent in intents:
            client_id = f"{CLIENT_ID_PREFIX}{intent.tag[:3]}-{next(self._id_seq)}-{uuid.uuid4().hex[:8]}"
            try:
                order = await self._c.submit_order(intent, client_id)
            except Exception as exc:
                err = OrderSubmitError(f"{intent.side} {intent.quantity} @ {intent.price}: {exc}")
                self._logger.error("Failed to place %s order: %s", book.name, err)
                await self._metrics.incr("orders_failed")
                continue
            book.add(order)
            created.append(order)
            await self._metrics.incr("orders_submitted")
            self._logger.debug(
                "Placed %s %s order %s: %.8f @ %.6f",
                book.name, intent.side, client_id, intent.quantity, intent.price,
            )
        return created
