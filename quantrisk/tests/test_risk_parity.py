import numpy as np
import pytest

from quantrisk.analytics import statistics
from quantrisk.analytics.risk_parity import (
    RiskParityAllocator,
    cap_and_normalize,
    compute_risk_parity,
    risk_contributions,
)
from quantrisk.core.config import RiskParityConfig
from quantrisk.core.exceptions import InvalidInputError
from quantrisk.core.models import CovarianceMatrix

UNCAPPED = RiskParityConfig(max_weight=1.0)


def adjusted(strategies):
    return np.array([s.adjusted_weight for s in strategies])


class TestInverseVolatility:
    def test_weights_inverse_to_volatility(self, diagonal_covariance):
        """Test uncapped weights are inversely proportional to volatility."""
        strategies = compute_risk_parity(['A', 'B', 'C'], covariance=diagonal_covariance, config=UNCAPPED)
        np.testing.assert_allclose(adjusted(strategies), [6 / 11, 3 / 11, 2 / 11], atol=1e-9)
        np.testing.assert_allclose(adjusted(strategies), [0.545, 0.273, 0.182], atol=1e-3)

    def test_default_cap_redistributes_excess(self, diagonal_covariance):
        """Test the default cap redistributes the excess weight."""
        strategies = compute_risk_parity(['A', 'B', 'C'], covariance=diagonal_covariance)
        np.testing.assert_allclose(adjusted(strategies), [0.5, 0.3, 0.2], atol=1e-9)

    def test_volatility_and_target(self, diagonal_covariance):
        strategies = compute_risk_parity(['A', 'B', 'C'], covariance=diagonal_covariance)
        assert [s.volatility for s in strategies] == pytest.approx([0.1, 0.2, 0.3])
        assert all(s.target_risk_contribution == pytest.approx(1 / 3) for s in strategies)

    def test_inverse_volatility_weights_are_a_fixed_point(self):
        """Test feeding the adjusted weights back leaves them unchanged."""
        cov = CovarianceMatrix(('A', 'B', 'C'), np.diag([0.1, 0.15, 0.2]) ** 2)
        strategies = compute_risk_parity(['A', 'B', 'C'], covariance=cov)

        contributions = [s.risk_contribution for s in strategies]
        assert contributions == pytest.approx([contributions[0]] * 3)
        for s in strategies:
            assert s.adjusted_weight == pytest.approx(s.current_weight)

    def test_explicit_current_weights(self, diagonal_covariance):
        strategies = compute_risk_parity(
            ['A', 'B', 'C'], covariance=diagonal_covariance,
            current_weights={'A': 0.2, 'B': 0.3, 'C': 0.5},
        )
        assert [s.current_weight for s in strategies] == [0.2, 0.3, 0.5]
        assert [s.risk_contribution for s in strategies] == pytest.approx([0.02, 0.06, 0.15])

    def test_from_return_histories(self, daily_returns):
        """Test allocation from daily return histories."""
        assets = list(daily_returns.columns)
        strategies = compute_risk_parity(assets, return_histories=daily_returns)

        for s in strategies:
            assert s.volatility == pytest.approx(statistics.annualized_volatility(daily_returns[s.asset]))
        assert adjusted(strategies).sum() == pytest.approx(1.0)
        assert adjusted(strategies).max() <= 0.5 + 1e-12
        # Lowest volatility asset gets the largest weight
        assert max(strategies, key=lambda s: s.adjusted_weight).asset == 'SOL'

    def test_correlation_diagnostics(self):
        """Test mean pairwise correlations per asset."""
        cov = CovarianceMatrix(('A', 'B', 'C'), np.array([
            [0.04, 0.006, 0.0],
            [0.006, 0.09, 0.0],
            [0.0, 0.0, 0.01],
        ]))
        strategies = {s.asset: s for s in compute_risk_parity(['A', 'B', 'C'], covariance=cov)}

        assert strategies['A'].correlations == pytest.approx({'B': 0.1, 'C': 0.0})
        assert strategies['A'].correlation == pytest.approx(0.05)
        assert strategies['C'].correlation == pytest.approx(0.0)

    def test_single_asset_has_no_correlation(self):
        cov = CovarianceMatrix(('A',), np.array([[0.04]]))
        (strategy,) = compute_risk_parity(['A'], covariance=cov, config=UNCAPPED)
        assert strategy.adjusted_weight == pytest.approx(1.0)
        assert strategy.correlation is None

    def test_zero_volatility_rejected(self):
        cov = CovarianceMatrix(('A', 'B'), np.diag([0.04, 0.0]))
        with pytest.raises(InvalidInputError):
            compute_risk_parity(['A', 'B'], covariance=cov)

    def test_infeasible_cap(self, diagonal_covariance):
        """Test a cap too small for the asset count is rejected."""
        with pytest.raises(InvalidInputError):
            compute_risk_parity(['A', 'B', 'C'], covariance=diagonal_covariance,
                                config=RiskParityConfig(max_weight=0.3))


class TestCapAndNormalize:
    def test_no_cap_binding(self):
        np.testing.assert_allclose(cap_and_normalize(np.array([1.0, 1.0, 2.0]), 0.5), [0.25, 0.25, 0.5])

    def test_cascading_cap(self):
        """Test redistribution that pushes another asset over the cap."""
        weights = cap_and_normalize(np.array([10.0, 5.0, 1.0, 1.0]), 0.4)
        assert weights.sum() == pytest.approx(1.0)
        assert weights.max() <= 0.4 + 1e-12
        assert weights[0] == pytest.approx(0.4)


class TestEqualRiskContribution:
    def test_equal_risk_shares_with_correlation(self, correlated_covariance):
        """Test equal risk contributions for correlated assets."""
        allocator = RiskParityAllocator(UNCAPPED)
        strategies = allocator.allocate(['A', 'B', 'C'], covariance=correlated_covariance,
                                        method='equal_risk_contribution')
        weights = adjusted(strategies)

        analysis = risk_contributions(weights, correlated_covariance)
        shares = list(analysis.percentage_contribution.values())
        assert shares == pytest.approx([1 / 3] * 3, abs=1e-3)
        assert weights.sum() == pytest.approx(1.0)

    def test_matches_inverse_volatility_without_correlation(self, diagonal_covariance):
        allocator = RiskParityAllocator(UNCAPPED)
        erc = allocator.allocate(['A', 'B', 'C'], covariance=diagonal_covariance,
                                 method='equal_risk_contribution')
        np.testing.assert_allclose(adjusted(erc), [6 / 11, 3 / 11, 2 / 11], atol=1e-4)

    def test_unknown_method(self, diagonal_covariance):
        with pytest.raises(InvalidInputError):
            RiskParityAllocator().allocate(['A', 'B', 'C'], covariance=diagonal_covariance, method='magic')


class TestRiskContributions:
    def test_components_sum_to_portfolio_volatility(self, correlated_covariance):
        """Test component contributions add up to portfolio volatility."""
        analysis = risk_contributions({'A': 0.5, 'B': 0.3, 'C': 0.2}, correlated_covariance)

        assert sum(analysis.component_contribution.values()) == pytest.approx(analysis.portfolio_volatility)
        assert sum(analysis.percentage_contribution.values()) == pytest.approx(1.0)

    def test_diagonal_case(self, diagonal_covariance):
        analysis = risk_contributions([1 / 3, 1 / 3, 1 / 3], diagonal_covariance)
        total_variance = (0.01 + 0.04 + 0.09) / 9
        assert analysis.portfolio_volatility == pytest.approx(np.sqrt(total_variance))
        assert analysis.percentage_contribution['C'] == pytest.approx(0.09 / 0.14)
