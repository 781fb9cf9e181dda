# quantrisk/analytics/statistics.py

"""
Descriptive statistics shared by every calculator in the engine.
"""

import logging
from typing import Sequence

import numpy as np
from scipy import stats

from ..core.exceptions import DataQualityError, InsufficientDataError, InvalidInputError
from ..core.models import DEFAULT_PERIODS_PER_YEAR, ensure_finite, to_float_array

logger = logging.getLogger(__name__)


def _prepare(series, name: str = "series", min_length: int = 1) -> np.ndarray:
    arr = to_float_array(series, name)
    ensure_finite(arr, name)
    if len(arr) < min_length:
        raise InsufficientDataError(
            f"{name} has {len(arr)} observations, at least {min_length} required"
        )
    return arr


def _prepare_pair(series_a, series_b):
    a = _prepare(series_a, "series_a", 2)
    b = _prepare(series_b, "series_b", 2)
    if len(a) != len(b):
        raise InvalidInputError(f"Series lengths differ: {len(a)} vs {len(b)}")
    return a, b


def mean(series) -> float:
    """Arithmetic mean of a non-empty series."""
    return float(np.mean(_prepare(series, min_length=1)))


def variance(series) -> float:
    """
    Sample variance with Bessel's correction (divides by N - 1).

    Raises:
        InsufficientDataError: If the series has fewer than two observations
    """
    return float(np.var(_prepare(series, min_length=2), ddof=1))


def std(series) -> float:
    """Sample standard deviation (N - 1)."""
    return float(np.sqrt(variance(series)))


def annualized_volatility(series, periods_per_year: int = DEFAULT_PERIODS_PER_YEAR) -> float:
    """
    Annualize the sample volatility of a periodic return series.

    Args:
        series: Periodic returns
        periods_per_year: Number of periods in a year (252 for daily data)

    Returns:
        sqrt(variance) * sqrt(periods_per_year)
    """
    if periods_per_year <= 0:
        raise InvalidInputError(f"periods_per_year must be positive, got {periods_per_year}")
    return float(np.sqrt(variance(series)) * np.sqrt(periods_per_year))


def annualized_return(series, periods_per_year: int = DEFAULT_PERIODS_PER_YEAR) -> float:
    """Arithmetic annualization of the mean periodic return."""
    if periods_per_year <= 0:
        raise InvalidInputError(f"periods_per_year must be positive, got {periods_per_year}")
    return mean(series) * periods_per_year


def covariance(series_a, series_b) -> float:
    """Sample covariance (N - 1) of two equally long series."""
    a, b = _prepare_pair(series_a, series_b)
    return float(np.sum((a - a.mean()) * (b - b.mean())) / (len(a) - 1))


def correlation(series_a, series_b) -> float:
    """
    Pearson correlation, covariance / (stdA * stdB).

    Raises:
        DataQualityError: If either series has zero variance
    """
    a, b = _prepare_pair(series_a, series_b)
    std_a = np.std(a, ddof=1)
    std_b = np.std(b, ddof=1)
    if std_a == 0 or std_b == 0:
        raise DataQualityError("Correlation is undefined for a zero-variance series")
    corr = covariance(a, b) / (std_a * std_b)
    # Rounding can push |corr| marginally past 1
    return float(np.clip(corr, -1.0, 1.0))


def downside_deviation(series) -> float:
    """
    Sample standard deviation of the strictly negative returns.

    Raises:
        InsufficientDataError: If fewer than two negative returns exist
    """
    arr = _prepare(series, min_length=1)
    negatives = arr[arr < 0]
    if len(negatives) < 2:
        raise InsufficientDataError(
            f"Downside deviation needs at least 2 negative returns, got {len(negatives)}"
        )
    return float(np.std(negatives, ddof=1))


def simple_returns(values) -> np.ndarray:
    """Period-over-period simple returns of a strictly positive value series."""
    arr = _prepare(values, "values", 2)
    if np.any(arr <= 0):
        raise InvalidInputError("Value series must be strictly positive to compute returns")
    return arr[1:] / arr[:-1] - 1.0


def cumulative_values(returns, start: float = 1.0) -> np.ndarray:
    """Compound a return series into a value path that starts at ``start``."""
    arr = _prepare(returns, "returns", 1)
    return start * np.concatenate(([1.0], np.cumprod(1.0 + arr)))


def max_drawdown_from_returns(returns) -> float:
    """Most negative peak-to-trough decline (<= 0) of the compounded return path."""
    path = cumulative_values(returns)
    peak = np.maximum.accumulate(path)
    return float(np.min((path - peak) / peak))


def population_skewness(series) -> float:
    """Population skewness; 0 for a zero-variance series."""
    arr = _prepare(series, min_length=1)
    if np.all(arr == arr[0]):
        return 0.0
    return float(stats.skew(arr, bias=True))


def excess_kurtosis(series) -> float:
    """Population excess kurtosis (normal = 0); 0 for a zero-variance series."""
    arr = _prepare(series, min_length=1)
    if np.all(arr == arr[0]):
        return 0.0
    return float(stats.kurtosis(arr, fisher=True, bias=True))


def nearest_rank_percentile(sorted_values: Sequence[float], q: float) -> float:
    """
    Percentile by index ``floor(N * q)`` into an ascending array.

    The index is clamped to the last element so q = 1 is valid.
    """
    if not 0 <= q <= 1:
        raise InvalidInputError(f"Quantile must be in [0, 1], got {q}")
    n = len(sorted_values)
    if n == 0:
        raise InsufficientDataError("Cannot take a percentile of an empty series")
    idx = min(int(np.floor(n * q)), n - 1)
    return float(sorted_values[idx])
