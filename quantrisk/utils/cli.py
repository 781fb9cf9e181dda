"""
Quant Risk Engine - CLI
Command-line interface for sizing, allocation, simulation and drawdown reports.
"""

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

import pandas as pd

from ..core.cancellation import CancellationToken
from ..core.config import EngineConfig
from ..core.exceptions import InvalidInputError, RiskEngineError
from ..core.models import MarketStatistics
from .logging import setup_logging_from_config

logger = logging.getLogger(__name__)


def load_csv(path: str) -> pd.DataFrame:
    """Load a CSV with dates in the first column and one column per asset."""
    csv_path = Path(path)
    if not csv_path.exists():
        raise InvalidInputError(f"CSV file not found: {path}")
    frame = pd.read_csv(csv_path, index_col=0, parse_dates=True)
    if frame.empty:
        raise InvalidInputError(f"CSV file has no rows: {path}")
    return frame


def select_columns(frame: pd.DataFrame, assets: Optional[List[str]]) -> pd.DataFrame:
    if not assets:
        return frame
    missing = [a for a in assets if a not in frame.columns]
    if missing:
        raise InvalidInputError(f"Columns not in CSV: {missing}")
    return frame[assets]


def emit(payload):
    print(json.dumps(payload, indent=2, default=str))


def handle_kelly(engine, args):
    result = engine.compute_kelly(args.win_rate, args.avg_win, args.avg_loss, args.confidence)
    emit(result.to_dict())


async def handle_montecarlo(engine, args):
    cancellation = CancellationToken(args.timeout) if args.timeout else None
    result = await engine.run_monte_carlo_async(
        args.capital, args.expected_return, args.volatility, args.days,
        num_scenarios=args.scenarios, seed=args.seed, cancellation=cancellation,
    )
    emit(result.to_dict(include_paths=args.paths))


def handle_drawdown(engine, args):
    frame = load_csv(args.csv)
    column = args.column or frame.columns[0]
    if column not in frame.columns:
        raise InvalidInputError(f"Column not in CSV: {column}")
    result = engine.analyze_drawdown(frame[column].dropna())
    emit(result.to_dict(include_history=args.history))


def handle_optimize(engine, args):
    frame = select_columns(load_csv(args.csv), args.assets).dropna()
    assets = [str(c) for c in frame.columns]
    stats = MarketStatistics.from_returns(frame, engine.config.periods_per_year)

    if args.expected_returns:
        expected = args.expected_returns
    else:
        expected = stats.annualized_mean_returns().tolist()
        logger.info("No expected returns given, using annualized historical means")

    result = engine.optimize_portfolio(
        assets, expected, stats, args.risk_tolerance, include_frontier=not args.no_frontier,
    )
    emit(result.to_dict())


def handle_parity(engine, args):
    frame = select_columns(load_csv(args.csv), args.assets).dropna()
    assets = [str(c) for c in frame.columns]
    strategies = engine.compute_risk_parity(assets, frame, method=args.method)
    emit([s.to_dict() for s in strategies])


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Quant Risk Engine",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    parser.add_argument("--config", default=".env",
                        help="Path to .env configuration file")
    parser.add_argument("--debug", action="store_true",
                        help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="mode", help="Calculation")

    kelly_parser = subparsers.add_parser("kelly",
                                         help="Kelly criterion position size")
    kelly_parser.add_argument("--win-rate", type=float, required=True,
                              help="Probability of a winning trade")
    kelly_parser.add_argument("--avg-win", type=float, required=True,
                              help="Average gain of a winning trade")
    kelly_parser.add_argument("--avg-loss", type=float, required=True,
                              help="Average loss magnitude of a losing trade")
    kelly_parser.add_argument("--confidence", type=float, default=1.0,
                              help="Fractional Kelly multiplier")

    mc_parser = subparsers.add_parser("montecarlo",
                                      help="Monte Carlo simulation of portfolio value")
    mc_parser.add_argument("--capital", type=float, required=True,
                           help="Initial capital")
    mc_parser.add_argument("--expected-return", type=float, required=True,
                           help="Annual expected return")
    mc_parser.add_argument("--volatility", type=float, required=True,
                           help="Annual volatility")
    mc_parser.add_argument("--days", type=int, default=252,
                           help="Horizon in trading days")
    mc_parser.add_argument("--scenarios", type=int,
                           help="Number of scenarios (defaults to the configured count)")
    mc_parser.add_argument("--seed", type=int,
                           help="Random seed")
    mc_parser.add_argument("--timeout", type=float,
                           help="Stop after this many seconds and report partial results")
    mc_parser.add_argument("--paths", action="store_true",
                           help="Include the retained sample paths")

    dd_parser = subparsers.add_parser("drawdown",
                                      help="Drawdown and tail-risk report for a value series")
    dd_parser.add_argument("--csv", required=True,
                           help="CSV with dates in the first column and portfolio values")
    dd_parser.add_argument("--column",
                           help="Value column (defaults to the first)")
    dd_parser.add_argument("--history", action="store_true",
                           help="Include the per-point drawdown history")

    opt_parser = subparsers.add_parser("optimize",
                                       help="Mean-variance optimization from return histories")
    opt_parser.add_argument("--csv", required=True,
                            help="CSV of periodic returns, one column per asset")
    opt_parser.add_argument("--assets", nargs="+",
                            help="Subset of asset columns")
    opt_parser.add_argument("--risk-tolerance", type=float, default=0.5,
                            help="Risk-aversion lambda")
    opt_parser.add_argument("--expected-returns", nargs="+", type=float,
                            help="Annual expected returns in asset order")
    opt_parser.add_argument("--no-frontier", action="store_true",
                            help="Skip the efficient frontier sweep")

    parity_parser = subparsers.add_parser("parity",
                                          help="Risk parity weights from return histories")
    parity_parser.add_argument("--csv", required=True,
                               help="CSV of periodic returns, one column per asset")
    parity_parser.add_argument("--assets", nargs="+",
                               help="Subset of asset columns")
    parity_parser.add_argument("--method", choices=["inverse_volatility", "equal_risk_contribution"],
                               help="Allocation method (defaults to the configured method)")

    return parser


async def main(argv: Optional[List[str]] = None):
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.mode:
        parser.print_help()
        return

    from ..engine import RiskEngine

    try:
        config = EngineConfig.from_env(args.config)
        if args.debug:
            config = config.with_overrides(logging=replace(config.logging, log_level="DEBUG"))
        setup_logging_from_config(config.logging)

        with RiskEngine(config) as engine:
            if args.mode == "kelly":
                handle_kelly(engine, args)
            elif args.mode == "montecarlo":
                await handle_montecarlo(engine, args)
            elif args.mode == "drawdown":
                handle_drawdown(engine, args)
            elif args.mode == "optimize":
                handle_optimize(engine, args)
            elif args.mode == "parity":
                handle_parity(engine, args)
    except KeyboardInterrupt:
        logger.info("Operation interrupted by user")
    except RiskEngineError as e:
        logger.error(f"Error: {e}", exc_info=args.debug)
        sys.exit(2)
