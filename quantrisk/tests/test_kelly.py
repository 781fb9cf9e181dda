import math

import pytest

from quantrisk.analytics.kelly import KellyCalculator, compute_kelly, kelly_from_returns
from quantrisk.core.config import KellyConfig
from quantrisk.core.exceptions import DataQualityError, InsufficientDataError, InvalidInputError


class TestKellyCalculator:
    def test_even_payoff_with_edge(self):
        """60% win rate at 1:1 payoff gives a 20% fraction."""
        result = compute_kelly(0.6, 1.0, 1.0)

        assert result.optimal_fraction == pytest.approx(0.2)
        assert result.kelly_criterion == pytest.approx(0.2)
        assert result.expected_return == pytest.approx(0.2)
        assert result.payoff_ratio == pytest.approx(1.0)
        assert result.risk_level == 'aggressive'
        assert result.take_position

    def test_max_drawdown_estimate(self):
        """Test the drawdown estimate from the losing-streak length."""
        result = compute_kelly(0.6, 1.0, 1.0)
        streak = math.log(0.01) / math.log(0.4)
        assert result.max_drawdown_estimate == pytest.approx(0.2 * 1.0 * streak)

    def test_fraction_is_capped(self):
        """Test large Kelly fractions are capped."""
        result = compute_kelly(0.9, 2.0, 1.0)
        assert result.kelly_criterion == pytest.approx(0.85)
        assert result.optimal_fraction == pytest.approx(0.25)

    def test_negative_edge_clamps_to_zero(self):
        """Test a negative edge gives no position."""
        result = compute_kelly(0.3, 1.0, 1.0)
        assert result.kelly_criterion == pytest.approx(-0.4)
        assert result.optimal_fraction == 0.0
        assert result.risk_level == 'conservative'
        assert not result.take_position

    def test_confidence_factor_scales_fraction(self):
        result = compute_kelly(0.6, 1.0, 1.0, confidence_factor=0.5)
        assert result.adjusted_kelly == pytest.approx(0.1)
        assert result.optimal_fraction == pytest.approx(0.1)
        assert result.risk_level == 'moderate'

    def test_custom_cap(self):
        calculator = KellyCalculator(KellyConfig(fraction_cap=0.1))
        assert calculator.calculate(0.6, 1.0, 1.0).optimal_fraction == pytest.approx(0.1)

    @pytest.mark.parametrize("win_rate", [0.0, 1.0, 1.2, -0.1])
    def test_invalid_win_rate(self, win_rate):
        """Test win rates outside (0, 1) are rejected."""
        with pytest.raises(InvalidInputError):
            compute_kelly(win_rate, 1.0, 1.0)

    def test_invalid_payoffs(self):
        with pytest.raises(InvalidInputError):
            compute_kelly(0.6, 0.0, 1.0)
        with pytest.raises(InvalidInputError):
            compute_kelly(0.6, 1.0, 0.0)
        with pytest.raises(ValueError):
            compute_kelly(0.6, 1.0, 1.0, confidence_factor=1.5)

    def test_nan_input(self):
        with pytest.raises(DataQualityError):
            compute_kelly(float('nan'), 1.0, 1.0)

    def test_fraction_always_within_bounds(self):
        """Test the fraction stays within [0, cap] over a grid of inputs."""
        calculator = KellyCalculator()
        for p in (0.05, 0.25, 0.5, 0.75, 0.95):
            for win in (0.5, 1.0, 3.0):
                result = calculator.calculate(p, win, 1.0)
                assert 0.0 <= result.optimal_fraction <= 0.25

    def test_to_dict(self):
        data = compute_kelly(0.6, 1.0, 1.0).to_dict()
        assert data['optimal_fraction'] == pytest.approx(0.2)
        assert data['risk_level'] == 'aggressive'
        assert 'recommendation' in data


class TestKellyFromReturns:
    def test_derives_win_rate_and_payoffs(self):
        """Test win rate and payoffs derived from returns."""
        result = kelly_from_returns([0.02, -0.01, 0.03, -0.01, 0.0])

        assert result.win_probability == pytest.approx(0.4)
        assert result.avg_win == pytest.approx(0.025)
        assert result.avg_loss == pytest.approx(0.01)
        # R = 2.5, kelly = (0.4 * 2.5 - 0.6) / 2.5
        assert result.optimal_fraction == pytest.approx(0.16)

    def test_needs_wins_and_losses(self):
        with pytest.raises(InsufficientDataError):
            kelly_from_returns([0.01, 0.02, 0.03])
