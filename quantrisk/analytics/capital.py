# quantrisk/analytics/capital.py

"""
Capital management: fixed-fractional sizing, multi-asset Kelly sizing,
capital utilization metrics and a position risk monitor.
"""

import logging
from dataclasses import dataclass, asdict
from typing import Dict, List, Optional, Sequence

import numpy as np

from ..core.config import CapitalConfig, KellyConfig
from ..core.exceptions import InvalidInputError
from ..core.models import DEFAULT_PERIODS_PER_YEAR, Position, ensure_finite, to_float_array
from . import statistics
from .kelly import KellyCalculator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FixedFractionalStrategy:
    """Position size that risks a fixed fraction of capital up to the stop loss."""
    fraction: float  # Position size / portfolio value
    risk_pct: float
    risk_amount: float
    position_size: float
    stop_loss_pct: float
    min_position: float
    max_position: float
    portfolio_value: float
    within_limits: bool
    recommendations: tuple
    expected_return: Optional[float] = None  # Annualized, from the return history
    volatility: Optional[float] = None
    max_drawdown: Optional[float] = None
    win_rate: Optional[float] = None

    def to_dict(self) -> Dict:
        result = asdict(self)
        result['recommendations'] = list(self.recommendations)
        return result


@dataclass(frozen=True)
class CapitalManagementMetrics:
    """Capital utilization and diversification of a set of positions."""
    total_capital: float
    allocated_capital: float
    available_capital: float
    utilization_rate: float
    weights: Dict[str, float]
    herfindahl_index: float
    diversification_ratio: float
    concentration_risk: float
    liquidity_score: float
    risk_adjusted_return: Optional[float] = None
    capital_efficiency: Optional[float] = None

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass(frozen=True)
class RiskMonitorReport:
    """Real-time check of concentration and leverage."""
    risk_level: str  # safe / warning / danger
    alerts: tuple
    recommendations: tuple
    max_weight: float
    mean_leverage: float

    def to_dict(self) -> Dict:
        return {
            'risk_level': self.risk_level,
            'alerts': list(self.alerts),
            'recommendations': list(self.recommendations),
            'max_weight': self.max_weight,
            'mean_leverage': self.mean_leverage,
        }


def _position_weights(positions: Sequence[Position]) -> Dict[str, float]:
    if not positions:
        raise InvalidInputError("No positions given")
    total = sum(p.value for p in positions)
    if total <= 0:
        raise InvalidInputError("Positions have zero total value")
    weights: Dict[str, float] = {}
    for p in positions:
        weights[p.asset] = weights.get(p.asset, 0.0) + p.value / total
    return weights


class CapitalManager:
    """Sizing and capital metrics for a portfolio of positions."""

    def __init__(self,
                 config: Optional[CapitalConfig] = None,
                 kelly_config: Optional[KellyConfig] = None,
                 periods_per_year: int = DEFAULT_PERIODS_PER_YEAR):
        self.config = config or CapitalConfig()
        self.kelly = KellyCalculator(kelly_config)
        self.periods_per_year = periods_per_year

    def fixed_fractional(self,
                         portfolio_value: float,
                         risk_pct: float,
                         stop_loss_pct: float,
                         returns=None) -> FixedFractionalStrategy:
        """
        Size a position so that hitting the stop loses ``risk_pct`` of capital.

        Args:
            portfolio_value: Current portfolio value (> 0)
            risk_pct: Fraction of capital put at risk, in (0, 1]
            stop_loss_pct: Stop distance as a fraction of entry price, in (0, 1]
            returns: Optional periodic return history for realized metrics

        Returns:
            FixedFractionalStrategy
        """
        ensure_finite([portfolio_value, risk_pct, stop_loss_pct], "fixed fractional inputs")
        if portfolio_value <= 0:
            raise InvalidInputError(f"Portfolio value must be positive, got {portfolio_value}")
        if not 0 < risk_pct <= 1:
            raise InvalidInputError(f"Risk fraction must be in (0, 1], got {risk_pct}")
        if not 0 < stop_loss_pct <= 1:
            raise InvalidInputError(f"Stop loss fraction must be in (0, 1], got {stop_loss_pct}")

        risk_amount = portfolio_value * risk_pct
        position_size = risk_amount / stop_loss_pct
        fraction = position_size / portfolio_value
        within_limits = self.config.min_position_pct <= fraction <= self.config.max_position_pct

        if fraction > self.config.max_position_pct:
            logger.warning(
                f"Fixed fractional position {fraction:.2%} exceeds the "
                f"{self.config.max_position_pct:.0%} maximum"
            )

        recommendations = [
            f"Suggested position size: {fraction:.2%} of capital",
            f"Capital at risk: {risk_amount:.2f}",
            f"Position size: {position_size:.2f}",
            "Warning: position size is too large" if fraction > self.config.max_position_pct
            else "Position size is appropriate",
            "Always use stop-loss orders",
        ]

        realized = {}
        if returns is not None:
            arr = to_float_array(returns, "returns")
            realized = {
                'expected_return': statistics.annualized_return(arr, self.periods_per_year),
                'volatility': statistics.annualized_volatility(arr, self.periods_per_year),
                'max_drawdown': statistics.max_drawdown_from_returns(arr),
                'win_rate': float(np.mean(arr > 0)),
            }

        return FixedFractionalStrategy(
            fraction=fraction,
            risk_pct=risk_pct,
            risk_amount=risk_amount,
            position_size=position_size,
            stop_loss_pct=stop_loss_pct,
            min_position=portfolio_value * self.config.min_position_pct,
            max_position=portfolio_value * self.config.max_position_pct,
            portfolio_value=portfolio_value,
            within_limits=within_limits,
            recommendations=tuple(recommendations),
            **realized,
        )

    def size_positions(self,
                       assets: Sequence[str],
                       win_rates: Sequence[float],
                       avg_wins: Sequence[float],
                       avg_losses: Sequence[float],
                       confidence_factor: float = 1.0) -> Dict[str, float]:
        """Kelly optimal fraction per asset."""
        lengths = {len(assets), len(win_rates), len(avg_wins), len(avg_losses)}
        if len(lengths) != 1:
            raise InvalidInputError("Assets, win rates, average wins and average losses differ in length")
        if len(set(assets)) != len(assets):
            raise InvalidInputError("Duplicate assets in position sizing request")

        sizes = {}
        for asset, p, win, loss in zip(assets, win_rates, avg_wins, avg_losses):
            sizes[asset] = self.kelly.calculate(p, win, loss, confidence_factor).optimal_fraction

        total = sum(sizes.values())
        if total > 1:
            logger.warning(f"Kelly fractions sum to {total:.2%} of capital")
        return sizes

    def capital_metrics(self,
                        positions: Sequence[Position],
                        returns=None,
                        available_capital: float = 0.0) -> CapitalManagementMetrics:
        """
        Utilization, concentration and diversification of the positions.

        Args:
            positions: Current positions
            returns: Optional periodic portfolio returns for return-based metrics
            available_capital: Uninvested cash
        """
        weights = _position_weights(positions)
        if available_capital < 0:
            raise InvalidInputError("Available capital cannot be negative")

        allocated = sum(p.value for p in positions)
        total = allocated + available_capital
        utilization = allocated / total
        herfindahl = sum(w * w for w in weights.values())
        liquidity = sum(p.liquidity * p.value / allocated for p in positions)

        risk_adjusted = efficiency = None
        if returns is not None:
            annual_return = statistics.annualized_return(returns, self.periods_per_year)
            annual_vol = statistics.annualized_volatility(returns, self.periods_per_year)
            risk_adjusted = annual_return / annual_vol if annual_vol > 0 else None
            efficiency = annual_return / utilization

        return CapitalManagementMetrics(
            total_capital=total,
            allocated_capital=allocated,
            available_capital=available_capital,
            utilization_rate=utilization,
            weights=weights,
            herfindahl_index=herfindahl,
            diversification_ratio=1.0 - herfindahl,
            concentration_risk=max(weights.values()),
            liquidity_score=liquidity,
            risk_adjusted_return=risk_adjusted,
            capital_efficiency=efficiency,
        )

    def monitor_positions(self, positions: Sequence[Position]) -> RiskMonitorReport:
        """Flag concentration and leverage breaches."""
        weights = _position_weights(positions)
        max_weight = max(weights.values())
        mean_leverage = float(np.mean([p.leverage for p in positions]))

        alerts: List[str] = []
        recommendations: List[str] = []
        level = 'safe'

        if max_weight > self.config.concentration_danger:
            alerts.append(f"High concentration in a single asset ({max_weight:.0%})")
            recommendations.append("Diversify the portfolio immediately")
            level = 'danger'
        elif max_weight > self.config.concentration_warning:
            alerts.append(f"Moderate concentration in a single asset ({max_weight:.0%})")
            recommendations.append("Consider reducing the largest position")
            level = 'warning'

        if mean_leverage > self.config.leverage_danger:
            alerts.append(f"Very high leverage ({mean_leverage:.1f}x)")
            recommendations.append("Reduce leverage")
            level = 'danger'

        for alert in alerts:
            logger.warning(alert)

        return RiskMonitorReport(
            risk_level=level,
            alerts=tuple(alerts),
            recommendations=tuple(recommendations),
            max_weight=max_weight,
            mean_leverage=mean_leverage,
        )
