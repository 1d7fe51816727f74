"""Quoting, allocation & position-control algorithms."""

from .adjustment import InventoryAdjuster, profit_protected_price
from .inventory import Position, PositionCell
from .liquidity import LiquidityLayerAllocator, LiquidityPlan
from .market_maker import MarketMakerStrategy, StrategyConfig
from .pnl_tracker import ProfitStats
from .pricing import PriceLadder, QuoteBand, build_price_ladder
from .quota import Quota, QuotaLedger
from .scale import Scale, scale_from_config

__all__ = [
    "InventoryAdjuster",
    "LiquidityLayerAllocator",
    "LiquidityPlan",
    "MarketMakerStrategy",
    "Position",
    "PositionCell",
    "PriceLadder",
    "ProfitStats",
    "Quota",
    "QuotaLedger",
    "QuoteBand",
    "Scale",
    "StrategyConfig",
    "build_price_ladder",
    "profit_protected_price",
    "scale_from_config",
]
