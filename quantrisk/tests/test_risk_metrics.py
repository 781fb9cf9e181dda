import numpy as np
import pytest

from quantrisk.analytics import statistics
from quantrisk.analytics.risk_metrics import RiskAggregator, compute_risk_metrics, performance_ratios
from quantrisk.core.config import AggregatorConfig
from quantrisk.core.exceptions import InvalidInputError
from quantrisk.core.models import PortfolioSnapshot, Position

ALTERNATING = [0.01, -0.01] * 50


@pytest.fixture
def positions():
    """Create three positions with decreasing liquidity."""
    return (
        Position('BTC', 50.0, liquidity=1.0),
        Position('ETH', 30.0, liquidity=0.5),
        Position('ART', 20.0, liquidity=0.0),
    )


class TestRiskScores:
    def test_component_scores(self, positions):
        """Test the four risk scores and their weighted total."""
        metrics = compute_risk_metrics(PortfolioSnapshot(positions, ALTERNATING))
        annual_vol = statistics.annualized_volatility(ALTERNATING)

        assert metrics.concentration_risk == pytest.approx(0.5)
        assert metrics.liquidity_risk == pytest.approx(0.35)
        assert metrics.market_risk == pytest.approx(annual_vol / 0.5)
        assert metrics.operational_risk == 0.0

        expected_total = 0.25 * 0.5 + 0.20 * 0.35 + 0.40 * annual_vol / 0.5
        assert metrics.total_risk == pytest.approx(expected_total)
        assert metrics.overall_risk_score == 'medium'

    def test_scores_within_unit_interval(self, positions):
        """Test every score stays within [0, 1]."""
        np.random.seed(3)
        wild = np.random.normal(0, 0.2, 100)
        metrics = compute_risk_metrics(PortfolioSnapshot(positions, wild))
        for score in (metrics.concentration_risk, metrics.liquidity_risk,
                      metrics.market_risk, metrics.operational_risk, metrics.total_risk):
            assert 0.0 <= score <= 1.0
        assert metrics.market_risk == 1.0

    def test_operational_risk_from_leverage(self):
        """Test operational risk is derived from leverage."""
        levered = tuple(Position(a, 10.0, leverage=5.5) for a in ('A', 'B', 'C', 'D'))
        metrics = compute_risk_metrics(PortfolioSnapshot(levered, ALTERNATING))
        assert metrics.operational_risk == pytest.approx(0.5)

    def test_diversification_ratio(self, positions):
        metrics = compute_risk_metrics(PortfolioSnapshot(positions, ALTERNATING))
        assert metrics.diversification_ratio == pytest.approx(1 - (0.25 + 0.09 + 0.04))

    def test_concentration_alerts(self):
        """Test concentrated portfolios carry monitor alerts."""
        concentrated = (Position('A', 70.0), Position('B', 30.0))
        metrics = compute_risk_metrics(PortfolioSnapshot(concentrated, ALTERNATING))
        assert metrics.alerts
        assert metrics.overall_risk_score in ('medium', 'high')

    @pytest.mark.parametrize("total,label", [
        (0.1, 'low'), (0.3, 'medium'), (0.5, 'high'), (0.8, 'extreme'), (0.2, 'medium'),
    ])
    def test_classification(self, total, label):
        """Test risk classification thresholds."""
        assert RiskAggregator().classify(total) == label

    def test_weights_are_normalized(self, positions):
        doubled = AggregatorConfig(
            concentration_weight=0.5, liquidity_weight=0.4,
            market_weight=0.8, operational_weight=0.3,
        )
        snapshot = PortfolioSnapshot(positions, ALTERNATING)
        assert RiskAggregator(doubled).compute(snapshot).total_risk == pytest.approx(
            compute_risk_metrics(snapshot).total_risk
        )

    def test_empty_snapshot_rejected(self):
        with pytest.raises(InvalidInputError):
            PortfolioSnapshot((), ALTERNATING)

    def test_benchmark_length_must_match(self, positions):
        with pytest.raises(InvalidInputError):
            PortfolioSnapshot(positions, ALTERNATING, benchmark_returns=[0.01, 0.02])


class TestPerformanceRatios:
    def test_ratios_without_benchmark(self):
        """Test Sharpe, Sortino and Calmar ratios."""
        np.random.seed(42)
        returns = np.random.normal(0.001, 0.01, 252)
        ratios = performance_ratios(returns, risk_free_rate=0.02)

        annual_return = statistics.annualized_return(returns)
        annual_vol = statistics.annualized_volatility(returns)
        downside = statistics.downside_deviation(returns) * np.sqrt(252)

        assert ratios.sharpe_ratio == pytest.approx((annual_return - 0.02) / annual_vol)
        assert ratios.sortino_ratio == pytest.approx((annual_return - 0.02) / downside)
        assert ratios.calmar_ratio == pytest.approx(annual_return / abs(ratios.max_drawdown))
        assert ratios.beta is None
        assert ratios.treynor_ratio is None
        assert ratios.information_ratio is None

    def test_undefined_ratios_are_none(self):
        """Test ratios with a zero denominator are None."""
        ratios = performance_ratios([0.0] * 30)
        assert ratios.sharpe_ratio is None
        assert ratios.sortino_ratio is None
        assert ratios.calmar_ratio is None

    def test_benchmark_ratios(self):
        """Test beta, Treynor and Information ratios."""
        np.random.seed(1)
        bench = np.random.normal(0.0005, 0.01, 252)
        portfolio = 2 * bench
        ratios = performance_ratios(portfolio, bench, risk_free_rate=0.01)

        assert ratios.beta == pytest.approx(2.0)
        annual_return = statistics.annualized_return(portfolio)
        assert ratios.treynor_ratio == pytest.approx((annual_return - 0.01) / 2.0)
        # Active returns equal the benchmark returns here
        assert ratios.tracking_error == pytest.approx(statistics.annualized_volatility(bench))
        assert ratios.information_ratio == pytest.approx(
            statistics.annualized_return(bench) / statistics.annualized_volatility(bench)
        )

    def test_risk_adjusted_return(self, positions):
        snapshot = PortfolioSnapshot(positions, [0.002, 0.001] * 20)
        metrics = RiskAggregator(risk_free_rate=0.0).compute(snapshot)
        assert metrics.risk_adjusted_return == pytest.approx(
            metrics.ratios.annual_return / metrics.total_risk
        )
        assert metrics.sharpe_ratio == metrics.ratios.sharpe_ratio
        assert metrics.to_dict()['overall_risk_score'] == metrics.overall_risk_score
