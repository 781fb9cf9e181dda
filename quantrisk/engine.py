"""
Risk Engine - request/response facade over the risk calculators.
"""

import asyncio
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Dict, List, Optional, Sequence

from .analytics.capital import (
    CapitalManagementMetrics,
    CapitalManager,
    FixedFractionalStrategy,
    RiskMonitorReport,
)
from .analytics.drawdown import DrawdownAnalyzer, DrawdownManagement
from .analytics.kelly import KellyCalculator, KellyResult
from .analytics.monte_carlo import MonteCarloResult, MonteCarloSimulator
from .analytics.portfolio_optimizer import PortfolioOptimizationResult, PortfolioOptimizer
from .analytics.risk_metrics import RiskAggregator, RiskManagementMetrics
from .analytics.risk_parity import RiskParityAllocator, RiskParityStrategy
from .core.cancellation import CancellationToken
from .core.config import EngineConfig
from .core.models import PortfolioSnapshot, Position
from .core.rng import RandomSource

logger = logging.getLogger(__name__)


class RiskEngine:
    """Stateless entry point: every call takes explicit inputs and returns a result object."""

    def __init__(self, config: Optional[EngineConfig] = None, env_file: str = ".env"):
        """Initialize the engine, reading QUANTRISK_* settings when no config is given."""
        if config:
            config.validate()
            self.config = config
        else:
            self.config = EngineConfig.from_env(env_file)

        cfg = self.config
        self.kelly = KellyCalculator(cfg.kelly)
        self.optimizer = PortfolioOptimizer(cfg.optimizer, cfg.risk_free_rate, cfg.periods_per_year)
        self.risk_parity = RiskParityAllocator(cfg.risk_parity, cfg.periods_per_year)
        self.monte_carlo = MonteCarloSimulator(cfg.monte_carlo)
        self.drawdown = DrawdownAnalyzer(cfg.tail_risk)
        self.aggregator = RiskAggregator(cfg.aggregator, cfg.risk_free_rate, cfg.capital)
        self.capital = CapitalManager(cfg.capital, cfg.kelly, cfg.periods_per_year)

        self._executor: Optional[ThreadPoolExecutor] = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        """Shut down the background executor used by submit_monte_carlo."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def compute_kelly(self,
                      win_rate: float,
                      avg_win: float,
                      avg_loss: float,
                      confidence_factor: float = 1.0) -> KellyResult:
        return self.kelly.calculate(win_rate, avg_win, avg_loss, confidence_factor)

    def kelly_from_returns(self, returns, confidence_factor: float = 1.0) -> KellyResult:
        return self.kelly.from_returns(returns, confidence_factor)

    def optimize_portfolio(self,
                           assets: Sequence[str],
                           expected_returns,
                           return_histories=None,
                           risk_tolerance: float = 0.5,
                           covariance=None,
                           include_frontier: bool = True,
                           cancellation: Optional[CancellationToken] = None) -> PortfolioOptimizationResult:
        return self.optimizer.optimize(
            assets, expected_returns, return_histories, risk_tolerance,
            covariance=covariance, include_frontier=include_frontier, cancellation=cancellation,
        )

    def compute_risk_parity(self,
                            assets: Sequence[str],
                            return_histories=None,
                            covariance=None,
                            current_weights=None,
                            method: Optional[str] = None) -> List[RiskParityStrategy]:
        return self.risk_parity.allocate(assets, return_histories, covariance, current_weights, method)

    def run_monte_carlo(self,
                        initial_capital: float,
                        expected_return: float,
                        volatility: float,
                        horizon_days: int,
                        num_scenarios: Optional[int] = None,
                        seed: Optional[int] = None,
                        random_source: Optional[RandomSource] = None,
                        cancellation: Optional[CancellationToken] = None) -> MonteCarloResult:
        return self.monte_carlo.run(
            initial_capital, expected_return, volatility, horizon_days,
            num_scenarios=num_scenarios, seed=seed,
            random_source=random_source, cancellation=cancellation,
        )

    def submit_monte_carlo(self, *args, **kwargs) -> Future:
        """
        Run a Monte Carlo simulation in the background.

        Takes the same arguments as run_monte_carlo. Cancel a running
        simulation through the ``cancellation`` token; Future.cancel only
        prevents a simulation that has not started yet.
        """
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="quantrisk-mc")
        return self._executor.submit(self.run_monte_carlo, *args, **kwargs)

    async def run_monte_carlo_async(self, *args, **kwargs) -> MonteCarloResult:
        """Await a Monte Carlo simulation without blocking the event loop."""
        return await asyncio.wrap_future(self.submit_monte_carlo(*args, **kwargs))

    def analyze_drawdown(self, value_series) -> DrawdownManagement:
        return self.drawdown.analyze(value_series)

    def compute_risk_metrics(self, portfolio_snapshot: PortfolioSnapshot) -> RiskManagementMetrics:
        return self.aggregator.compute(portfolio_snapshot)

    def fixed_fractional(self,
                         portfolio_value: float,
                         risk_pct: float,
                         stop_loss_pct: float,
                         returns=None) -> FixedFractionalStrategy:
        return self.capital.fixed_fractional(portfolio_value, risk_pct, stop_loss_pct, returns)

    def size_positions(self,
                       assets: Sequence[str],
                       win_rates: Sequence[float],
                       avg_wins: Sequence[float],
                       avg_losses: Sequence[float],
                       confidence_factor: float = 1.0) -> Dict[str, float]:
        return self.capital.size_positions(assets, win_rates, avg_wins, avg_losses, confidence_factor)

    def capital_metrics(self,
                        positions: Sequence[Position],
                        returns=None,
                        available_capital: float = 0.0) -> CapitalManagementMetrics:
        return self.capital.capital_metrics(positions, returns, available_capital)

    def monitor_positions(self, positions: Sequence[Position]) -> RiskMonitorReport:
        return self.capital.monitor_positions(positions)
