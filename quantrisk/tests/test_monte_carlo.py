import numpy as np
import pytest

from quantrisk.analytics.monte_carlo import (
    MonteCarloSimulator,
    box_muller,
    run_monte_carlo,
    summarize_final_values,
)
from quantrisk.core.cancellation import CancellationToken
from quantrisk.core.config import MonteCarloConfig
from quantrisk.core.exceptions import ComputationTimeoutError, InvalidInputError
from quantrisk.core.rng import NumpyRandomSource, RandomSource


class ConstantSource(RandomSource):
    """Returns 0.5 forever and cancels a token after a fixed number of draws."""

    def __init__(self, token=None, cancel_after=None):
        self.draws = 0
        self.token = token
        self.cancel_after = cancel_after

    def next(self):
        self.draws += 1
        if self.token is not None and self.draws == self.cancel_after:
            self.token.cancel()
        return 0.5


class TestBoxMuller:
    def test_known_values(self):
        """Test the Box-Muller transform on known uniforms."""
        assert box_muller(0.0, 0.0) == pytest.approx(0.0)
        assert box_muller(1 - np.exp(-0.5), 0.0) == pytest.approx(1.0)
        assert box_muller(1 - np.exp(-0.5), 0.5) == pytest.approx(-1.0)

    def test_standard_normal_moments(self):
        """Test Box-Muller output has standard normal moments."""
        source = NumpyRandomSource(1)
        z = box_muller(source.uniforms(20000), source.uniforms(20000))
        assert abs(z.mean()) < 0.05
        assert abs(z.std() - 1.0) < 0.05


class TestMonteCarloSimulator:
    def test_degenerate_distribution(self):
        """Test zero volatility and zero return keep the initial capital."""
        result = run_monte_carlo(10000.0, 0.0, 0.0, horizon_days=20, num_scenarios=50, seed=3)

        assert all(v == 10000.0 for v in result.final_values)
        assert all(p == 10000.0 for p in result.percentiles.values())
        assert result.expected_value == 10000.0
        assert result.standard_deviation == 0.0
        assert result.skewness == 0.0
        assert result.kurtosis == 0.0
        assert result.probability_of_loss == 0.0
        assert result.probability_of_gain == 1.0
        assert result.value_at_risk_95 == 0.0
        assert result.conditional_value_at_risk_95 == 0.0
        assert result.mean_max_drawdown == 0.0

    def test_loss_and_gain_partition(self):
        """Test loss and gain probabilities sum to one."""
        result = run_monte_carlo(1000.0, 0.05, 0.3, horizon_days=60, num_scenarios=500, seed=11)
        assert result.probability_of_loss + result.probability_of_gain == pytest.approx(1.0)
        assert 0 < result.probability_of_loss < 1

    def test_summary_consistency(self):
        result = run_monte_carlo(1000.0, 0.08, 0.2, horizon_days=30, num_scenarios=400, seed=5)
        p = result.percentiles

        assert p[5] <= p[25] <= p[50] <= p[75] <= p[95]
        assert result.value_at_risk_95 == pytest.approx(1000.0 - p[5])
        assert result.conditional_value_at_risk_95 >= result.value_at_risk_95
        assert result.max_loss == pytest.approx(1000.0 - result.final_values[0])
        assert result.max_gain == pytest.approx(result.final_values[-1] - 1000.0)
        assert list(result.final_values) == sorted(result.final_values)
        assert result.mean_max_drawdown <= 0.0
        assert result.complete
        assert result.scenarios_completed == 400

    def test_same_seed_same_result(self):
        """Test the same seed reproduces the simulation."""
        first = run_monte_carlo(1000.0, 0.1, 0.25, horizon_days=10, num_scenarios=600, seed=42)
        second = run_monte_carlo(1000.0, 0.1, 0.25, horizon_days=10, num_scenarios=600, seed=42)
        assert first.final_values == second.final_values

    def test_result_independent_of_worker_count(self):
        """Test results do not depend on the number of workers."""
        single = MonteCarloSimulator(MonteCarloConfig(batch_size=50, max_workers=1))
        pooled = MonteCarloSimulator(MonteCarloConfig(batch_size=50, max_workers=4))

        a = single.run(1000.0, 0.1, 0.25, 10, num_scenarios=300, seed=9)
        b = pooled.run(1000.0, 0.1, 0.25, 10, num_scenarios=300, seed=9)
        assert a.final_values == b.final_values
        assert a.expected_value == b.expected_value

    def test_sample_scenarios_retained(self):
        """Test only the first sample_size paths are kept."""
        result = run_monte_carlo(500.0, 0.1, 0.2, horizon_days=15, num_scenarios=300, seed=2)

        assert len(result.scenarios) == 100
        scenario = result.scenarios[0]
        assert len(scenario.path) == 16
        assert scenario.path[0] == pytest.approx(500.0)
        assert scenario.final_value == scenario.path[-1]
        assert scenario.max_drawdown <= 0.0

    def test_injected_source_runs_sequentially(self):
        source = ConstantSource()
        result = run_monte_carlo(100.0, 0.0, 0.2, horizon_days=5, num_scenarios=4, random_source=source)

        assert source.draws == 4 * 5 * 2
        # Every draw is 0.5, so every scenario is identical
        assert len(set(result.final_values)) == 1

    @pytest.mark.parametrize("kwargs", [
        dict(initial_capital=0.0),
        dict(volatility=-0.1),
        dict(horizon_days=0),
        dict(num_scenarios=0),
    ])
    def test_invalid_inputs(self, kwargs):
        """Test invalid simulation inputs are rejected."""
        params = dict(initial_capital=1000.0, expected_return=0.1, volatility=0.2,
                      horizon_days=10, num_scenarios=10, seed=1)
        params.update(kwargs)
        with pytest.raises(InvalidInputError):
            run_monte_carlo(**params)


class TestCancellation:
    def test_cancelled_before_any_scenario(self):
        """Test cancelling before any scenario raises a timeout."""
        token = CancellationToken()
        token.cancel()
        with pytest.raises(ComputationTimeoutError):
            run_monte_carlo(1000.0, 0.1, 0.2, 10, num_scenarios=100, seed=1, cancellation=token)

    def test_partial_result_is_flagged(self):
        """Test a partially finished run is flagged incomplete."""
        token = CancellationToken()
        # 5 days x 2 uniforms per scenario: the token fires on the last draw of scenario 3
        source = ConstantSource(token, cancel_after=30)
        result = run_monte_carlo(1000.0, 0.1, 0.2, horizon_days=5, num_scenarios=10,
                                 random_source=source, cancellation=token)

        assert not result.complete
        assert result.scenarios_completed == 3
        assert result.scenarios_requested == 10

    def test_expired_deadline(self):
        token = CancellationToken(timeout=0.0)
        assert token.cancelled
        assert token.remaining() == 0.0


class TestSummarizeFinalValues:
    def test_order_independent(self):
        """Test summary statistics ignore scenario order."""
        values = list(np.random.RandomState(0).lognormal(0, 0.2, 1000) * 1000)
        shuffled = list(values)
        np.random.RandomState(1).shuffle(shuffled)

        assert summarize_final_values(1000.0, values) == summarize_final_values(1000.0, shuffled)

    def test_nearest_rank_percentiles(self):
        """Test percentiles use the nearest-rank rule."""
        summary = summarize_final_values(100.0, list(range(1, 101)))
        assert summary['percentiles'][5] == 6
        assert summary['percentiles'][50] == 51
        assert summary['probability_of_loss'] == pytest.approx(0.99)
        assert summary['conditional_value_at_risk_95'] == pytest.approx(100.0 - 3.5)

    def test_empty_values(self):
        with pytest.raises(InvalidInputError):
            summarize_final_values(100.0, [])
