# quantrisk/analytics/drawdown.py

"""
Drawdown analysis and empirical tail-risk estimation for a portfolio value series.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy import stats

from ..core.config import TailRiskConfig
from ..core.exceptions import InsufficientDataError, InvalidInputError
from ..core.models import ensure_finite, to_float_array
from .statistics import simple_returns

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DrawdownPoint:
    """Drawdown of the series at one timestamp."""
    timestamp: Any
    drawdown: float  # <= 0
    value: float


@dataclass(frozen=True)
class DrawdownEpisode:
    """A period spent below a previous peak."""
    start: Any  # First timestamp below the peak
    trough: Any
    end: Optional[Any]  # Timestamp the peak was regained, None while ongoing
    depth: float
    duration: int  # Periods from start to end (or to the last point)
    recovery: Optional[int]  # Periods from trough to end

    def to_dict(self) -> Dict:
        return {
            'start': _jsonable(self.start),
            'trough': _jsonable(self.trough),
            'end': _jsonable(self.end),
            'depth': self.depth,
            'duration': self.duration,
            'recovery': self.recovery,
        }


@dataclass(frozen=True)
class TailRiskMetrics:
    """Empirical and parametric VaR/CVaR per confidence level, as positive loss fractions."""
    value_at_risk: Dict[float, float]
    conditional_value_at_risk: Dict[float, float]
    parametric_value_at_risk: Dict[float, Optional[float]]

    @property
    def var_95(self) -> Optional[float]:
        return self.value_at_risk.get(0.95)

    @property
    def var_99(self) -> Optional[float]:
        return self.value_at_risk.get(0.99)

    @property
    def cvar_95(self) -> Optional[float]:
        return self.conditional_value_at_risk.get(0.95)

    @property
    def cvar_99(self) -> Optional[float]:
        return self.conditional_value_at_risk.get(0.99)

    def to_dict(self) -> Dict:
        return {
            'value_at_risk': {str(k): v for k, v in self.value_at_risk.items()},
            'conditional_value_at_risk': {str(k): v for k, v in self.conditional_value_at_risk.items()},
            'parametric_value_at_risk': {str(k): v for k, v in self.parametric_value_at_risk.items()},
        }


@dataclass(frozen=True)
class DrawdownManagement:
    """Full drawdown report for a value series."""
    current_drawdown: float
    max_drawdown: float
    drawdown_duration: int  # Periods since the last peak
    recovery_time: Optional[int]  # Periods from the max-drawdown trough back to its peak
    history: Tuple[DrawdownPoint, ...]
    tail_risk: TailRiskMetrics
    episodes: Tuple[DrawdownEpisode, ...]
    underwater_share: float
    ulcer_index: float
    alert: bool
    recommendations: Tuple[str, ...]

    def to_dict(self, include_history: bool = False) -> Dict:
        """Convert DrawdownManagement to dictionary."""
        result = {
            'current_drawdown': self.current_drawdown,
            'max_drawdown': self.max_drawdown,
            'drawdown_duration': self.drawdown_duration,
            'recovery_time': self.recovery_time,
            'tail_risk': self.tail_risk.to_dict(),
            'episodes': [e.to_dict() for e in self.episodes],
            'underwater_share': self.underwater_share,
            'ulcer_index': self.ulcer_index,
            'alert': self.alert,
            'recommendations': list(self.recommendations),
        }
        if include_history:
            result['history'] = [
                {'timestamp': _jsonable(p.timestamp), 'drawdown': p.drawdown, 'value': p.value}
                for p in self.history
            ]
        return result


def _jsonable(value):
    if isinstance(value, (pd.Timestamp, np.datetime64)):
        return pd.Timestamp(value).isoformat()
    if isinstance(value, np.generic):
        return value.item()
    return value


def _tail_index(n: int, confidence: float) -> int:
    if not 0 < confidence < 1:
        raise InvalidInputError(f"Confidence level must be in (0, 1), got {confidence}")
    if n == 0:
        raise InsufficientDataError("Tail risk needs at least one return")
    return min(int(math.floor(n * (1 - confidence))), n - 1)


def value_at_risk(returns, confidence: float = 0.95, method: str = 'historical') -> float:
    """
    Value at Risk as a positive loss fraction.

    Args:
        returns: Periodic simple returns
        confidence: Confidence level, e.g. 0.95
        method: 'historical' (empirical quantile) or 'parametric' (normal fit)

    Returns:
        max(0, -q) where q is the (1 - confidence) return quantile
    """
    arr = to_float_array(returns, "returns")
    ensure_finite(arr, "returns")

    if method == 'historical':
        ordered = np.sort(arr)
        q = ordered[_tail_index(len(ordered), confidence)]
    elif method == 'parametric':
        _tail_index(len(arr), confidence)
        if len(arr) < 2:
            raise InsufficientDataError("Parametric VaR needs at least 2 returns")
        mu, sigma = float(np.mean(arr)), float(np.std(arr, ddof=1))
        # A zero-variance fit is a point mass at the mean
        q = stats.norm.ppf(1 - confidence, mu, sigma) if sigma > 0 else mu
    else:
        raise InvalidInputError(f"Unknown VaR method: {method}")

    ensure_finite([q], "VaR quantile")
    return max(0.0, float(-q))


def conditional_value_at_risk(returns, confidence: float = 0.95) -> float:
    """Mean of the returns at or below the VaR index, as a positive loss fraction."""
    arr = to_float_array(returns, "returns")
    ensure_finite(arr, "returns")
    ordered = np.sort(arr)
    idx = _tail_index(len(ordered), confidence)
    return max(0.0, float(-np.mean(ordered[:idx + 1])))


def _parse_series(values) -> Tuple[List[Any], np.ndarray]:
    """Split the accepted inputs into timestamps and a value array."""
    if isinstance(values, pd.Series):
        return list(values.index), to_float_array(values, "values")

    items = list(values)
    if items and isinstance(items[0], (tuple, list)):
        if any(len(item) != 2 for item in items):
            raise InvalidInputError("Expected (timestamp, value) pairs")
        timestamps = [item[0] for item in items]
        arr = to_float_array([item[1] for item in items], "values")
        return timestamps, arr

    arr = to_float_array(items, "values")
    return list(range(len(arr))), arr


def _episodes(timestamps, values, drawdowns) -> List[DrawdownEpisode]:
    episodes = []
    start = None
    for i, dd in enumerate(drawdowns):
        if dd < 0 and start is None:
            start = i
        elif dd == 0 and start is not None:
            trough = start + int(np.argmin(drawdowns[start:i]))
            episodes.append(DrawdownEpisode(
                start=timestamps[start],
                trough=timestamps[trough],
                end=timestamps[i],
                depth=float(drawdowns[trough]),
                duration=i - start,
                recovery=i - trough,
            ))
            start = None

    if start is not None:
        last = len(values) - 1
        trough = start + int(np.argmin(drawdowns[start:]))
        episodes.append(DrawdownEpisode(
            start=timestamps[start],
            trough=timestamps[trough],
            end=None,
            depth=float(drawdowns[trough]),
            duration=last - start + 1,
            recovery=None,
        ))
    return episodes


class DrawdownAnalyzer:
    """Running-peak drawdown statistics plus VaR/CVaR of the period returns."""

    def __init__(self, config: Optional[TailRiskConfig] = None):
        self.config = config or TailRiskConfig()

    def analyze(self, values) -> DrawdownManagement:
        """
        Analyze a portfolio value series.

        Args:
            values: Sequence of values, sequence of (timestamp, value) pairs,
                or a pandas Series indexed by timestamp

        Returns:
            DrawdownManagement report

        Raises:
            InvalidInputError: For non-positive values
            InsufficientDataError: For fewer than 2 points
        """
        timestamps, arr = _parse_series(values)
        ensure_finite(arr, "values")
        if len(arr) < 2:
            raise InsufficientDataError(f"Drawdown analysis needs at least 2 points, got {len(arr)}")
        if np.any(arr <= 0):
            raise InvalidInputError("Portfolio values must be strictly positive")

        logger.info(f"Analyzing drawdowns over {len(arr)} points")

        peak = np.maximum.accumulate(arr)
        drawdowns = (arr - peak) / peak

        current = float(drawdowns[-1])
        max_dd = float(drawdowns.min())

        at_peak = np.flatnonzero(drawdowns == 0)
        duration = len(arr) - 1 - int(at_peak[-1])

        recovery_time: Optional[int] = 0
        if max_dd < 0:
            trough = int(np.argmin(drawdowns))
            recovered = np.flatnonzero(arr[trough:] >= peak[trough])
            recovery_time = int(recovered[0]) if len(recovered) else None

        returns = simple_returns(arr)
        tail_risk = self.tail_risk(returns)

        alert = max_dd < self.config.drawdown_alert
        if alert:
            logger.warning(f"Max drawdown {max_dd:.2%} breaches alert level {self.config.drawdown_alert:.0%}")

        history = tuple(
            DrawdownPoint(timestamp=t, drawdown=float(d), value=float(v))
            for t, d, v in zip(timestamps, drawdowns, arr)
        )

        return DrawdownManagement(
            current_drawdown=current,
            max_drawdown=max_dd,
            drawdown_duration=duration,
            recovery_time=recovery_time,
            history=history,
            tail_risk=tail_risk,
            episodes=tuple(_episodes(timestamps, arr, drawdowns)),
            underwater_share=float(np.mean(drawdowns < 0)),
            ulcer_index=float(np.sqrt(np.mean(drawdowns ** 2))),
            alert=alert,
            recommendations=tuple(self._recommendations(current, max_dd, alert)),
        )

    def tail_risk(self, returns: Sequence[float]) -> TailRiskMetrics:
        var, cvar, parametric = {}, {}, {}
        for level in self.config.confidence_levels:
            var[level] = value_at_risk(returns, level)
            cvar[level] = conditional_value_at_risk(returns, level)
            if len(returns) >= 2:
                parametric[level] = value_at_risk(returns, level, method='parametric')
            else:
                parametric[level] = None
        return TailRiskMetrics(var, cvar, parametric)

    @staticmethod
    def _recommendations(current: float, max_dd: float, alert: bool) -> List[str]:
        recommendations = [
            f"Current drawdown: {abs(current):.2%}",
            f"Maximum historical drawdown: {abs(max_dd):.2%}",
            "Reduce position sizes" if alert else "Risk level is acceptable",
            "Use trailing stop-loss orders",
        ]
        if current < 0:
            recommendations.append("Review diversification while the portfolio is below its peak")
        return recommendations


def analyze_drawdown(values, config: Optional[TailRiskConfig] = None) -> DrawdownManagement:
    """Convenience wrapper around DrawdownAnalyzer.analyze."""
    return DrawdownAnalyzer(config).analyze(values)
