# quantrisk/analytics/monte_carlo.py

"""
Monte Carlo simulation of portfolio value paths.
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..core.cancellation import CancellationToken
from ..core.config import MonteCarloConfig
from ..core.exceptions import ComputationTimeoutError, InvalidInputError
from ..core.models import ensure_finite, to_float_array
from ..core.rng import NumpyRandomSource, RandomSource
from .statistics import excess_kurtosis, nearest_rank_percentile, population_skewness

logger = logging.getLogger(__name__)

PERCENTILES = (5, 25, 50, 75, 95)


@dataclass(frozen=True)
class MonteCarloScenario:
    """A single simulated value path."""
    path: Tuple[float, ...]  # Starts at the initial capital
    final_value: float
    max_drawdown: float  # Fraction, <= 0

    def to_dict(self) -> Dict:
        return {
            'path': list(self.path),
            'final_value': self.final_value,
            'max_drawdown': self.max_drawdown,
        }


@dataclass(frozen=True)
class MonteCarloResult:
    """Distribution of final portfolio values across simulated scenarios."""
    initial_capital: float
    percentiles: Dict[int, float]
    expected_value: float
    standard_deviation: float
    probability_of_loss: float
    probability_of_gain: float  # Final value >= initial capital
    value_at_risk_95: float
    conditional_value_at_risk_95: float
    skewness: float
    kurtosis: float  # Excess
    max_loss: float
    max_gain: float
    mean_max_drawdown: float
    final_values: Tuple[float, ...]  # Ascending
    scenarios: Tuple[MonteCarloScenario, ...]
    scenarios_requested: int
    scenarios_completed: int
    complete: bool

    def to_dict(self, include_paths: bool = False) -> Dict:
        """Convert MonteCarloResult to dictionary (without the raw final values)."""
        result = {
            'initial_capital': self.initial_capital,
            'percentiles': {str(k): v for k, v in self.percentiles.items()},
            'expected_value': self.expected_value,
            'standard_deviation': self.standard_deviation,
            'probability_of_loss': self.probability_of_loss,
            'probability_of_gain': self.probability_of_gain,
            'value_at_risk_95': self.value_at_risk_95,
            'conditional_value_at_risk_95': self.conditional_value_at_risk_95,
            'skewness': self.skewness,
            'kurtosis': self.kurtosis,
            'max_loss': self.max_loss,
            'max_gain': self.max_gain,
            'mean_max_drawdown': self.mean_max_drawdown,
            'scenarios_requested': self.scenarios_requested,
            'scenarios_completed': self.scenarios_completed,
            'complete': self.complete,
        }
        if include_paths:
            result['scenarios'] = [s.to_dict() for s in self.scenarios]
        return result


def box_muller(u1, u2) -> np.ndarray:
    """
    Standard normal draws from pairs of uniforms in [0, 1).

    ``1 - u1`` lies in (0, 1], so the logarithm is always finite.
    """
    u1 = np.asarray(u1, dtype=float)
    u2 = np.asarray(u2, dtype=float)
    return np.sqrt(-2.0 * np.log(1.0 - u1)) * np.cos(2.0 * np.pi * u2)


def simulate_path(initial_capital: float,
                  expected_return: float,
                  volatility: float,
                  horizon_days: int,
                  source: RandomSource,
                  trading_days_per_year: int = 252) -> MonteCarloScenario:
    """
    Simulate one daily value path.

    Two uniforms are drawn per day; the daily return is
    mu/D + sigma/sqrt(D) * z with z from Box-Muller.
    """
    draws = source.uniforms(2 * horizon_days)
    z = box_muller(draws[0::2], draws[1::2])
    daily = (expected_return / trading_days_per_year
             + volatility / math.sqrt(trading_days_per_year) * z)

    path = initial_capital * np.concatenate(([1.0], np.cumprod(1.0 + daily)))
    peak = np.maximum.accumulate(path)
    drawdowns = (path - peak) / peak

    return MonteCarloScenario(
        path=tuple(path.tolist()),
        final_value=float(path[-1]),
        max_drawdown=float(drawdowns.min()),
    )


def summarize_final_values(initial_capital: float,
                           final_values: Sequence[float],
                           max_drawdowns: Optional[Sequence[float]] = None) -> Dict:
    """
    Aggregate statistics of a set of final values.

    Everything is computed from the sorted values, so the result does not
    depend on the order in which scenarios finished.
    """
    values = np.sort(to_float_array(final_values, "final values"))
    if len(values) == 0:
        raise InvalidInputError("No final values to summarize")
    ensure_finite(values, "final values")
    n = len(values)

    percentiles = {p: nearest_rank_percentile(values, p / 100) for p in PERCENTILES}
    p5 = percentiles[5]
    tail = values[values <= p5]

    losses = int(np.count_nonzero(values < initial_capital))
    if max_drawdowns is not None and len(max_drawdowns) > 0:
        mean_max_drawdown = float(np.mean(np.sort(to_float_array(max_drawdowns, "max drawdowns"))))
    else:
        mean_max_drawdown = 0.0

    summary = {
        'percentiles': percentiles,
        'expected_value': float(np.mean(values)),
        'standard_deviation': float(np.std(values)),
        'probability_of_loss': losses / n,
        'probability_of_gain': (n - losses) / n,
        'value_at_risk_95': initial_capital - p5,
        'conditional_value_at_risk_95': initial_capital - float(np.mean(tail)),
        'skewness': population_skewness(values),
        'kurtosis': excess_kurtosis(values),
        'max_loss': initial_capital - float(values[0]),
        'max_gain': float(values[-1]) - initial_capital,
        'mean_max_drawdown': mean_max_drawdown,
        'final_values': tuple(values.tolist()),
    }
    ensure_finite(
        [v for k, v in summary.items() if k not in ('percentiles', 'final_values')]
        + list(percentiles.values()),
        "Monte Carlo aggregates",
    )
    return summary


class MonteCarloSimulator:
    """Runs scenarios in batches on a thread pool and aggregates the outcome."""

    def __init__(self, config: Optional[MonteCarloConfig] = None):
        self.config = config or MonteCarloConfig()

    def run(self,
            initial_capital: float,
            expected_return: float,
            volatility: float,
            horizon_days: int,
            num_scenarios: Optional[int] = None,
            seed: Optional[int] = None,
            random_source: Optional[RandomSource] = None,
            cancellation: Optional[CancellationToken] = None) -> MonteCarloResult:
        """
        Run a Monte Carlo simulation.

        Args:
            initial_capital: Starting portfolio value (> 0)
            expected_return: Annual expected return (mu)
            volatility: Annual volatility (sigma >= 0)
            horizon_days: Number of trading days to simulate (>= 1)
            num_scenarios: Scenario count, defaults to the configured value
            seed: Seed for the default numpy source (ignored with random_source)
            random_source: Injected source of uniforms
            cancellation: Token checked between scenarios

        Returns:
            MonteCarloResult; ``complete`` is False when cancelled early

        Raises:
            InvalidInputError: On out-of-range inputs
            ComputationTimeoutError: If cancelled before any scenario finished
        """
        num_scenarios = self.config.num_scenarios if num_scenarios is None else num_scenarios
        self._validate(initial_capital, expected_return, volatility, horizon_days, num_scenarios)
        horizon_days, num_scenarios = int(horizon_days), int(num_scenarios)

        source = random_source or NumpyRandomSource(seed)
        if cancellation is None and self.config.timeout is not None:
            cancellation = CancellationToken(self.config.timeout)

        logger.info(
            f"Running {num_scenarios} Monte Carlo scenarios over {horizon_days} days "
            f"(mu={expected_return}, sigma={volatility})"
        )

        batch_starts = list(range(0, num_scenarios, self.config.batch_size))
        batch_sizes = [min(self.config.batch_size, num_scenarios - s) for s in batch_starts]
        params = (initial_capital, expected_return, volatility, horizon_days)

        if source.can_spawn and len(batch_starts) > 1:
            streams = source.spawn(len(batch_starts))
            with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
                futures = [
                    executor.submit(self._run_batch, stream, start, size, params, cancellation)
                    for stream, start, size in zip(streams, batch_starts, batch_sizes)
                ]
                batches = [future.result() for future in futures]
        else:
            batches = [
                self._run_batch(source, start, size, params, cancellation)
                for start, size in zip(batch_starts, batch_sizes)
            ]

        final_values: List[float] = []
        drawdowns: List[float] = []
        samples: List[MonteCarloScenario] = []
        for batch in batches:
            for final_value, max_drawdown, scenario in batch:
                final_values.append(final_value)
                drawdowns.append(max_drawdown)
                if scenario is not None:
                    samples.append(scenario)

        completed = len(final_values)
        if completed == 0:
            raise ComputationTimeoutError(
                "Monte Carlo simulation was cancelled before any scenario completed"
            )
        if completed < num_scenarios:
            logger.warning(
                f"Monte Carlo simulation cancelled after {completed}/{num_scenarios} scenarios"
            )

        summary = summarize_final_values(initial_capital, final_values, drawdowns)
        return MonteCarloResult(
            initial_capital=initial_capital,
            scenarios=tuple(samples[:self.config.sample_size]),
            scenarios_requested=num_scenarios,
            scenarios_completed=completed,
            complete=completed == num_scenarios,
            **summary,
        )

    def _run_batch(self, source: RandomSource, start: int, size: int, params, cancellation):
        initial_capital, expected_return, volatility, horizon_days = params
        results = []
        for offset in range(size):
            if cancellation is not None and cancellation.cancelled:
                break
            scenario = simulate_path(
                initial_capital, expected_return, volatility, horizon_days,
                source, self.config.trading_days_per_year,
            )
            keep = scenario if start + offset < self.config.sample_size else None
            results.append((scenario.final_value, scenario.max_drawdown, keep))
        return results

    @staticmethod
    def _validate(initial_capital, expected_return, volatility, horizon_days, num_scenarios):
        ensure_finite([initial_capital, expected_return, volatility], "Monte Carlo inputs")
        if initial_capital <= 0:
            raise InvalidInputError(f"Initial capital must be positive, got {initial_capital}")
        if volatility < 0:
            raise InvalidInputError(f"Volatility cannot be negative, got {volatility}")
        if int(horizon_days) != horizon_days or horizon_days < 1:
            raise InvalidInputError(f"Horizon must be a positive number of days, got {horizon_days}")
        if int(num_scenarios) != num_scenarios or num_scenarios < 1:
            raise InvalidInputError(f"Scenario count must be a positive integer, got {num_scenarios}")


def run_monte_carlo(initial_capital: float,
                    expected_return: float,
                    volatility: float,
                    horizon_days: int,
                    num_scenarios: Optional[int] = None,
                    seed: Optional[int] = None,
                    random_source: Optional[RandomSource] = None,
                    cancellation: Optional[CancellationToken] = None,
                    config: Optional[MonteCarloConfig] = None) -> MonteCarloResult:
    """Convenience wrapper around MonteCarloSimulator.run."""
    return MonteCarloSimulator(config).run(
        initial_capital, expected_return, volatility, horizon_days,
        num_scenarios=num_scenarios, seed=seed,
        random_source=random_source, cancellation=cancellation,
    )
