"""Stablecoin-pair market maker: configuration and the per-tick quoting facade."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from scmaker.connectors.base import OrderIntent, Ticker
from scmaker.data.indicators import BollingerBandWidth, MidPriceEMA
from scmaker.data.market import KLine, Market
from scmaker.errors import ConfigError
from scmaker.strategy.adjustment import InventoryAdjuster
from scmaker.strategy.inventory import Position
from scmaker.strategy.liquidity import LiquidityLayerAllocator, LiquidityPlan
from scmaker.strategy.pricing import PriceLadder, build_price_ladder
from scmaker.strategy.scale import Scale, scale_from_config

_INTERVAL_RE = re.compile(r"^\d+[smhdwM]$")


def parse_rate(value: Any, key: str) -> float:
    """Accept ``0.0001`` as well as ``"0.01%"``."""
    try:
        if isinstance(value, str) and value.strip().endswith("%"):
            return float(value.strip()[:-1]) / 100.0
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(key, f"not a number: {value!r}") from exc


def _interval(value: Any, key: str) -> str:
    if not isinstance(value, str) or not _INTERVAL_RE.match(value):
        raise ConfigError(key, f"invalid interval {value!r}")
    return value


@dataclass(frozen=True)
class IntervalWindow:
    interval: str
    window: int


@dataclass(frozen=True)
class BollingerConfig:
    interval: str
    window: int
    k: float


@dataclass(frozen=True)
class StrategyConfig:
    symbol: str
    base_currency: str
    quote_currency: str
    num_of_liquidity_layers: int
    liquidity_layer_tick_size: float
    liquidity_update_interval: str
    adjustment_update_interval: str
    mid_price_ema: IntervalWindow
    price_range_bollinger: BollingerConfig
    liquidity_scale: Dict[str, Any] = field(hash=False)
    min_profit: float = 0.0
    max_exposure: float = 0.0
    maker_fee_rate: float = 0.0

    @classmethod
    def from_dict(cls, cfg: Dict[str, Any]) -> "StrategyConfig":
        def req(key: str) -> Any:
            if key not in cfg or cfg[key] is None:
                raise ConfigError(f"strategy.{key}", "missing")
            return cfg[key]

        symbol = str(req("symbol")).upper()
        layers = int(req("num_of_liquidity_layers"))
        if layers < 1:
            raise ConfigError("strategy.num_of_liquidity_layers", "must be at least 1")

        tick = parse_rate(req("liquidity_layer_tick_size"), "strategy.liquidity_layer_tick_size")
        if tick <= 0:
            raise ConfigError("strategy.liquidity_layer_tick_size", "must be positive")

        ema = req("mid_price_ema")
        boll = req("price_range_bollinger")
        try:
            mid_price_ema = IntervalWindow(
                interval=_interval(ema["interval"], "strategy.mid_price_ema.interval"),
                window=int(ema["window"]),
            )
            bollinger = BollingerConfig(
                interval=_interval(boll["interval"], "strategy.price_range_bollinger.interval"),
                window=int(boll["window"]),
                k=float(boll.get("k", 2.0)),
            )
        except (KeyError, TypeError) as exc:
            raise ConfigError("strategy", f"incomplete indicator settings: {exc}") from exc
        if mid_price_ema.window <= 0 or bollinger.window <= 0:
            raise ConfigError("strategy", "indicator windows must be positive")

        min_profit = parse_rate(cfg.get("min_profit", 0.0), "strategy.min_profit")
        max_exposure = parse_rate(cfg.get("max_exposure", 0.0), "strategy.max_exposure")
        fee_rate = parse_rate(cfg.get("maker_fee_rate", 0.0), "strategy.maker_fee_rate")
        if min_profit < 0 or max_exposure < 0 or fee_rate < 0:
            raise ConfigError("strategy", "min_profit, max_exposure and maker_fee_rate must not be negative")

        return cls(
            symbol=symbol,
            base_currency=str(req("base_currency")).upper(),
            quote_currency=str(req("quote_currency")).upper(),
            num_of_liquidity_layers=layers,
            liquidity_layer_tick_size=tick,
            liquidity_update_interval=_interval(
                req("liquidity_update_interval"), "strategy.liquidity_update_interval"
            ),
            adjustment_update_interval=_interval(
                req("adjustment_update_interval"), "strategy.adjustment_update_interval"
            ),
            mid_price_ema=mid_price_ema,
            price_range_bollinger=bollinger,
            liquidity_scale=dict(req("liquidity_scale")),
            min_profit=min_profit,
            max_exposure=max_exposure,
            maker_fee_rate=fee_rate,
        )


class MarketMakerStrategy:
    """Compute liquidity layers and adjustment orders from indicator and account state.

    The scale function is solved in the constructor, so an unsolvable
    configuration fails before anything is traded.
    """

    def __init__(self, cfg: StrategyConfig, market: Market, logger: Optional[logging.Logger] = None):
        self._cfg = cfg
        self._market = market
        self._logger = logger or logging.getLogger("scmaker.strategy")

        self.scale: Scale = scale_from_config(cfg.liquidity_scale)
        self.ema = MidPriceEMA(cfg.mid_price_ema.interval, cfg.mid_price_ema.window)
        self.boll = BollingerBandWidth(
            cfg.price_range_bollinger.interval,
            cfg.price_range_bollinger.window,
            cfg.price_range_bollinger.k,
        )
        self.allocator = LiquidityLayerAllocator(
            symbol=cfg.symbol,
            market=market,
            scale=self.scale,
            layer_count=cfg.num_of_liquidity_layers,
            max_exposure=cfg.max_exposure,
            logger=self._logger.getChild("liquidity"),
        )
        self.adjuster = InventoryAdjuster(
            symbol=cfg.symbol,
            market=market,
            fee_rate=cfg.maker_fee_rate,
            min_profit=cfg.min_profit,
            logger=self._logger.getChild("adjustment"),
        )

    @property
    def config(self) -> StrategyConfig:
        return self._cfg

    @property
    def market(self) -> Market:
        return self._market

    @property
    def layer_tick_size(self) -> float:
        return max(self._cfg.liquidity_layer_tick_size, self._market.tick_size)

    # ---- indicators ---- #

    def on_kline_closed(self, kline: KLine) -> None:
        """Feed a closed candle to whichever indicators run on its interval."""
        if kline.interval == self.ema.interval:
            self.ema.update(kline.close)
        if kline.interval == self.boll.interval:
            self.boll.update(kline.close)

    # ---- public API ---- #

    def ladder(self, ticker: Ticker) -> PriceLadder:
        mid_price = self.ema.last()
        band_width = self.boll.last()
        self._logger.info(
            "spread: %f mid price ema: %f boll band width: %f", ticker.spread, mid_price, band_width
        )
        return build_price_ladder(
            ticker,
            mid_price,
            band_width,
            self.layer_tick_size,
            self._cfg.num_of_liquidity_layers,
            self._market,
        )

    def liquidity_plan(
        self, ticker: Ticker, available_base: float, available_quote: float, position: Position
    ) -> LiquidityPlan:
        ladder = self.ladder(ticker)
        return self.allocator.allocate(ladder, available_base, available_quote, position, ticker)

    def adjustment_order(
        self, ticker: Ticker, available_base: float, available_quote: float, position: Position
    ) -> Optional[OrderIntent]:
        return self.adjuster.adjust(position, ticker, available_base, available_quote)
