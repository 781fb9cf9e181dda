# quantrisk/analytics/risk_metrics.py

"""
Composite risk scoring and risk-adjusted performance ratios.
"""

import logging
from dataclasses import dataclass, asdict
from typing import Dict, Optional, Tuple

import numpy as np

from ..core.config import AggregatorConfig, CapitalConfig
from ..core.exceptions import InsufficientDataError
from ..core.models import DEFAULT_PERIODS_PER_YEAR, PortfolioSnapshot, to_float_array
from . import statistics
from .capital import CapitalManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PerformanceRatios:
    """Annualized return/risk ratios; None where a ratio is undefined."""
    annual_return: float
    annual_volatility: float
    max_drawdown: float
    sharpe_ratio: Optional[float]
    sortino_ratio: Optional[float]
    calmar_ratio: Optional[float]
    treynor_ratio: Optional[float]
    information_ratio: Optional[float]
    beta: Optional[float]
    tracking_error: Optional[float]
    benchmark_return: Optional[float] = None
    benchmark_volatility: Optional[float] = None
    benchmark_sharpe: Optional[float] = None

    def to_dict(self) -> Dict[str, Optional[float]]:
        return asdict(self)


@dataclass(frozen=True)
class RiskManagementMetrics:
    """Risk scores in [0, 1], their weighted total and the performance ratios."""
    concentration_risk: float
    liquidity_risk: float
    market_risk: float
    operational_risk: float
    total_risk: float
    overall_risk_score: str  # low / medium / high / extreme
    risk_adjusted_return: Optional[float]
    diversification_ratio: float
    ratios: PerformanceRatios
    alerts: Tuple[str, ...] = ()

    @property
    def sharpe_ratio(self) -> Optional[float]:
        return self.ratios.sharpe_ratio

    @property
    def sortino_ratio(self) -> Optional[float]:
        return self.ratios.sortino_ratio

    @property
    def calmar_ratio(self) -> Optional[float]:
        return self.ratios.calmar_ratio

    @property
    def treynor_ratio(self) -> Optional[float]:
        return self.ratios.treynor_ratio

    @property
    def information_ratio(self) -> Optional[float]:
        return self.ratios.information_ratio

    @property
    def beta(self) -> Optional[float]:
        return self.ratios.beta

    def to_dict(self) -> Dict:
        return {
            'concentration_risk': self.concentration_risk,
            'liquidity_risk': self.liquidity_risk,
            'market_risk': self.market_risk,
            'operational_risk': self.operational_risk,
            'total_risk': self.total_risk,
            'overall_risk_score': self.overall_risk_score,
            'risk_adjusted_return': self.risk_adjusted_return,
            'diversification_ratio': self.diversification_ratio,
            'ratios': self.ratios.to_dict(),
            'alerts': list(self.alerts),
        }


def performance_ratios(returns,
                       benchmark_returns=None,
                       risk_free_rate: float = 0.0,
                       periods_per_year: int = DEFAULT_PERIODS_PER_YEAR) -> PerformanceRatios:
    """
    Calculate Sharpe, Sortino, Calmar, Treynor and Information ratios.

    Args:
        returns: Periodic portfolio returns (at least 2)
        benchmark_returns: Periodic benchmark returns of the same length
        risk_free_rate: Annual risk-free rate
        periods_per_year: Periods per year used for annualization

    Returns:
        PerformanceRatios with None for every ratio whose denominator is zero
        or whose inputs are missing
    """
    arr = to_float_array(returns, "returns")
    annual_return = statistics.annualized_return(arr, periods_per_year)
    annual_vol = statistics.annualized_volatility(arr, periods_per_year)
    max_dd = statistics.max_drawdown_from_returns(arr)
    excess = annual_return - risk_free_rate

    sharpe = excess / annual_vol if annual_vol > 0 else None

    try:
        downside = statistics.downside_deviation(arr) * np.sqrt(periods_per_year)
    except InsufficientDataError as e:
        logger.debug(f"Sortino ratio undefined: {e}")
        downside = 0.0
    sortino = excess / downside if downside > 0 else None

    calmar = annual_return / abs(max_dd) if max_dd < 0 else None

    beta = treynor = information = tracking_error = None
    bench_return = bench_vol = bench_sharpe = None
    if benchmark_returns is not None:
        bench = to_float_array(benchmark_returns, "benchmark returns")
        bench_return = statistics.annualized_return(bench, periods_per_year)
        bench_vol = statistics.annualized_volatility(bench, periods_per_year)
        bench_sharpe = (bench_return - risk_free_rate) / bench_vol if bench_vol > 0 else None

        bench_var = statistics.variance(bench)
        if bench_var > 0:
            beta = statistics.covariance(arr, bench) / bench_var
            treynor = excess / beta if beta != 0 else None

        active = arr - bench
        tracking_error = statistics.annualized_volatility(active, periods_per_year)
        if tracking_error > 0:
            information = statistics.annualized_return(active, periods_per_year) / tracking_error

    return PerformanceRatios(
        annual_return=annual_return,
        annual_volatility=annual_vol,
        max_drawdown=max_dd,
        sharpe_ratio=sharpe,
        sortino_ratio=sortino,
        calmar_ratio=calmar,
        treynor_ratio=treynor,
        information_ratio=information,
        beta=beta,
        tracking_error=tracking_error,
        benchmark_return=bench_return,
        benchmark_volatility=bench_vol,
        benchmark_sharpe=bench_sharpe,
    )


class RiskAggregator:
    """Scores a portfolio snapshot on four risk dimensions and classifies the total."""

    def __init__(self,
                 config: Optional[AggregatorConfig] = None,
                 risk_free_rate: float = 0.0,
                 capital_config: Optional[CapitalConfig] = None):
        self.config = config or AggregatorConfig()
        self.risk_free_rate = risk_free_rate
        self.capital_config = capital_config or CapitalConfig()

    def compute(self, snapshot: PortfolioSnapshot) -> RiskManagementMetrics:
        logger.info(
            f"Computing risk metrics for {len(snapshot.positions)} positions "
            f"and {len(snapshot.returns)} returns"
        )
        cfg = self.config
        weights = snapshot.weights()
        total_value = snapshot.total_value

        ratios = performance_ratios(
            snapshot.returns,
            snapshot.benchmark_returns,
            self.risk_free_rate,
            snapshot.periods_per_year,
        )

        concentration = max(weights.values())
        liquidity = 1.0 - sum(p.liquidity * p.value / total_value for p in snapshot.positions)
        market = min(1.0, ratios.annual_volatility / cfg.market_volatility_ceiling)
        mean_leverage = float(np.mean([p.leverage for p in snapshot.positions]))
        operational = float(np.clip((mean_leverage - 1.0) / (cfg.leverage_ceiling - 1.0), 0.0, 1.0))

        scores = np.array([concentration, liquidity, market, operational])
        score_weights = np.array([
            cfg.concentration_weight, cfg.liquidity_weight,
            cfg.market_weight, cfg.operational_weight,
        ])
        total_risk = float(scores @ score_weights / score_weights.sum())
        overall = self.classify(total_risk)

        monitor = CapitalManager(self.capital_config).monitor_positions(snapshot.positions)
        herfindahl = sum(w * w for w in weights.values())

        return RiskManagementMetrics(
            concentration_risk=float(concentration),
            liquidity_risk=float(liquidity),
            market_risk=float(market),
            operational_risk=operational,
            total_risk=total_risk,
            overall_risk_score=overall,
            risk_adjusted_return=ratios.annual_return / total_risk if total_risk > 0 else None,
            diversification_ratio=1.0 - herfindahl,
            ratios=ratios,
            alerts=monitor.alerts,
        )

    def classify(self, total_risk: float) -> str:
        if total_risk < self.config.low_threshold:
            return 'low'
        if total_risk < self.config.medium_threshold:
            return 'medium'
        if total_risk < self.config.high_threshold:
            return 'high'
        return 'extreme'


def compute_risk_metrics(snapshot: PortfolioSnapshot,
                         config: Optional[AggregatorConfig] = None,
                         risk_free_rate: float = 0.0) -> RiskManagementMetrics:
    """Convenience wrapper around RiskAggregator.compute."""
    return RiskAggregator(config, risk_free_rate).compute(snapshot)
