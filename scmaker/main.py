"""Command-line entrypoint and the coroutine hosts use to run the market maker."""

import argparse
import asyncio
import sys
from pathlib import Path

from scmaker import __version__, load_config
from scmaker.connectors.base import BaseConnector, Ticker
from scmaker.data.market import Market
from scmaker.errors import ConfigError
from scmaker.execution.order_manager import OrderManager
from scmaker.strategy.inventory import Position
from scmaker.strategy.market_maker import MarketMakerStrategy, StrategyConfig
from scmaker.strategy.pricing import build_price_ladder
from scmaker.utils.logger import setup_logger
from scmaker.utils.metrics import Metrics
from scmaker.utils.state import StateStore


async def run_bot(config: dict, connector: BaseConnector) -> None:
    """Run the strategy against *connector* until cancelled."""
    logger = setup_logger(config["logging"])
    logger.info("Launching scmaker v%s", __version__)

    state_path = config["state"]["path"]
    order_manager = OrderManager(
        connector=connector,
        config=config,
        logger=logger,
        metrics=Metrics(config["metrics"]["path"]),
        state_store=StateStore(state_path, logger.getChild("state")) if state_path else None,
    )
    try:
        await order_manager.run()
    finally:
        await connector.close()


def _plan(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    cfg = StrategyConfig.from_dict(config["strategy"])
    market = Market(
        symbol=cfg.symbol,
        base_currency=cfg.base_currency,
        quote_currency=cfg.quote_currency,
        tick_size=args.tick_size,
        step_size=args.step_size,
        min_quantity=args.min_quantity,
        min_notional=args.min_notional,
    )
    strategy = MarketMakerStrategy(cfg, market)
    ticker = Ticker(buy=args.bid, sell=args.ask)
    position = Position(symbol=cfg.symbol, base=args.position, average_cost=args.average_cost or 0.0)

    ladder = build_price_ladder(
        ticker, args.mid, args.band, strategy.layer_tick_size, cfg.num_of_liquidity_layers, market
    )
    plan = strategy.allocator.allocate(ladder, args.base, args.quote, position, ticker)

    print(f"{cfg.symbol} mid {args.mid} band {args.band} weight sum {plan.weight_sum:.6f}")
    print(f"bid unit {plan.bid_unit:.8f} ask unit {plan.ask_unit:.8f}")
    print(f"{'layer':>5} {'side':>4} {'price':>14} {'quantity':>18}")
    for intent in plan.intents:
        print(f"{intent.layer:>5} {intent.side:>4} {intent.price:>14.8f} {intent.quantity:>18.8f}")

    adjustment = strategy.adjustment_order(ticker, args.base, args.quote, position)
    if adjustment is not None:
        print(f"adjustment {adjustment.side} {adjustment.quantity:.8f} @ {adjustment.price:.8f}")
    return 0


def _check(args: argparse.Namespace) -> int:
    try:
        config = load_config(args.config)
        cfg = StrategyConfig.from_dict(config["strategy"])
        market = Market(cfg.symbol, cfg.base_currency, cfg.quote_currency, tick_size=0.0, step_size=0.0)
        strategy = MarketMakerStrategy(cfg, market)
    except ConfigError as exc:
        print(f"invalid configuration: {exc}", file=sys.stderr)
        return 1
    weights = ", ".join(f"{strategy.scale.weight(i):.4f}" for i in range(cfg.num_of_liquidity_layers + 1))
    print(f"{cfg.symbol}: {cfg.num_of_liquidity_layers} layers, weights [{weights}]")
    return 0


def cli(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Stablecoin-pair layered market maker")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    check = sub.add_parser("check", help="Validate the configuration and solve the liquidity scale")
    check.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path(__file__).with_name("config.yaml"),
        help="Path to the YAML configuration file",
    )
    check.set_defaults(func=_check)

    plan = sub.add_parser("plan", help="Print the orders the strategy would place for a market snapshot")
    plan.add_argument("-c", "--config", type=Path, default=Path(__file__).with_name("config.yaml"))
    plan.add_argument("--bid", type=float, required=True, help="Best bid")
    plan.add_argument("--ask", type=float, required=True, help="Best ask")
    plan.add_argument("--mid", type=float, required=True, help="Mid price EMA")
    plan.add_argument("--band", type=float, required=True, help="Bollinger band width")
    plan.add_argument("--base", type=float, required=True, help="Available base balance")
    plan.add_argument("--quote", type=float, required=True, help="Available quote balance")
    plan.add_argument("--position", type=float, default=0.0, help="Signed base position")
    plan.add_argument(
        "--average-cost", type=float, default=None, help="Average cost of --position (required when it is non-zero)"
    )
    plan.add_argument("--tick-size", type=float, default=0.0001)
    plan.add_argument("--step-size", type=float, default=0.01)
    plan.add_argument("--min-quantity", type=float, default=0.0)
    plan.add_argument("--min-notional", type=float, default=10.0)
    plan.set_defaults(func=_plan)

    args = parser.parse_args(argv)
    if args.command == "plan" and args.position and (args.average_cost is None or args.average_cost <= 0):
        parser.error("--average-cost must be a positive price when --position is non-zero")
    return args.func(args)


if __name__ == "__main__":
    sys.exit(cli())
