import math

import numpy as np
import pandas as pd
import pytest

from quantrisk.analytics import statistics
from quantrisk.core.exceptions import DataQualityError, InsufficientDataError, InvalidInputError
from quantrisk.core.models import ReturnSeries


class TestDescriptiveStatistics:
    def test_mean_and_sample_variance(self):
        """Test mean and N-1 variance."""
        assert statistics.mean([1, 2, 3]) == pytest.approx(2.0)
        # Squared deviations 2.25 + 0.25 + 0.25 + 2.25 = 5, divided by N - 1
        assert statistics.variance([1, 2, 3, 4]) == pytest.approx(5 / 3)
        assert statistics.std([1, 2, 3, 4]) == pytest.approx(math.sqrt(5 / 3))

    def test_variance_needs_two_points(self):
        with pytest.raises(InsufficientDataError):
            statistics.variance([0.01])

    def test_mean_of_empty_series(self):
        with pytest.raises(InsufficientDataError):
            statistics.mean([])

    def test_annualized_volatility(self):
        """Test volatility annualization."""
        series = [0.01, -0.01]
        expected = math.sqrt(0.0002) * math.sqrt(252)
        assert statistics.annualized_volatility(series, 252) == pytest.approx(expected)
        assert statistics.annualized_volatility(series, 52) == pytest.approx(math.sqrt(0.0002) * math.sqrt(52))

    def test_annualized_return(self):
        assert statistics.annualized_return([0.001, 0.003], 252) == pytest.approx(0.504)

    def test_non_finite_input_rejected(self):
        """Test NaN and infinite inputs raise DataQualityError."""
        with pytest.raises(DataQualityError):
            statistics.mean([0.01, float('nan')])
        with pytest.raises(DataQualityError):
            statistics.variance([0.01, float('inf'), 0.02])

    def test_accepts_common_containers(self):
        """Test lists, tuples, arrays and Series give the same result."""
        values = [0.01, 0.02, -0.01]
        expected = statistics.variance(values)
        assert statistics.variance(tuple(values)) == pytest.approx(expected)
        assert statistics.variance(np.array(values)) == pytest.approx(expected)
        assert statistics.variance(pd.Series(values)) == pytest.approx(expected)
        assert statistics.variance(ReturnSeries('X', values)) == pytest.approx(expected)


class TestCovarianceAndCorrelation:
    def test_covariance_matches_numpy(self):
        """Test sample covariance against numpy."""
        a = [0.01, 0.03, -0.02, 0.00]
        b = [0.02, 0.01, -0.01, 0.01]
        assert statistics.covariance(a, b) == pytest.approx(np.cov(a, b, ddof=1)[0, 1])

    def test_perfect_correlation(self):
        assert statistics.correlation([1, 2, 3], [2, 4, 6]) == pytest.approx(1.0)
        assert statistics.correlation([1, 2, 3], [3, 2, 1]) == pytest.approx(-1.0)

    def test_mismatched_lengths(self):
        with pytest.raises(InvalidInputError):
            statistics.covariance([1, 2, 3], [1, 2])
        with pytest.raises(ValueError):
            statistics.correlation([1, 2, 3], [1, 2])

    def test_correlation_with_constant_series(self):
        """Test correlation with a zero-variance series is rejected."""
        with pytest.raises(DataQualityError):
            statistics.correlation([1, 2, 3], [5, 5, 5])


class TestReturnHelpers:
    def test_simple_returns(self):
        np.testing.assert_allclose(statistics.simple_returns([100, 110, 99]), [0.1, -0.1])

    def test_simple_returns_need_positive_values(self):
        with pytest.raises(InvalidInputError):
            statistics.simple_returns([100, 0, 50])

    def test_cumulative_values(self):
        np.testing.assert_allclose(statistics.cumulative_values([0.1, -0.5], start=100), [100, 110, 55])

    def test_max_drawdown_from_returns(self):
        """Test max drawdown of a compounded return path."""
        assert statistics.max_drawdown_from_returns([0.1, -0.5, 0.2]) == pytest.approx(-0.5)
        assert statistics.max_drawdown_from_returns([0.01, 0.02]) == 0.0

    def test_downside_deviation(self):
        """Test downside deviation uses only negative returns."""
        assert statistics.downside_deviation([0.02, -0.01, -0.03, 0.05]) == pytest.approx(
            np.std([-0.01, -0.03], ddof=1)
        )
        with pytest.raises(InsufficientDataError):
            statistics.downside_deviation([0.01, -0.02, 0.03])

    def test_moments_of_constant_series(self):
        """Test skewness and kurtosis of a constant series are zero."""
        assert statistics.population_skewness([3.0, 3.0, 3.0]) == 0.0
        assert statistics.excess_kurtosis([3.0, 3.0, 3.0]) == 0.0

    def test_skewness_sign(self):
        assert statistics.population_skewness([0, 0, 0, 0, 10]) > 0
        assert statistics.population_skewness([0, 0, 0, 0, -10]) < 0

    def test_nearest_rank_percentile(self):
        values = list(range(1, 11))
        assert statistics.nearest_rank_percentile(values, 0.05) == 1
        assert statistics.nearest_rank_percentile(values, 0.5) == 6
        assert statistics.nearest_rank_percentile(values, 1.0) == 10
        with pytest.raises(InvalidInputError):
            statistics.nearest_rank_percentile(values, 1.5)
