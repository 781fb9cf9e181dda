# quantrisk/analytics/portfolio_optimizer.py

"""
Mean-variance portfolio optimization by projected gradient ascent.

The iteration is a heuristic approximation of the quadratic-programming
solution: a fixed number of small gradient steps, each followed by a
projection back onto the bounded simplex {sum(w) = 1, lower <= w <= upper}.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from ..core.cancellation import CancellationToken
from ..core.config import OptimizerConfig
from ..core.exceptions import ComputationTimeoutError, InvalidInputError
from ..core.models import (
    CovarianceMatrix,
    DEFAULT_PERIODS_PER_YEAR,
    MarketStatistics,
    PortfolioWeights,
    ensure_finite,
    to_float_array,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FrontierPoint:
    """One portfolio on the efficient frontier."""
    risk: float
    expected_return: float
    weights: Dict[str, float]
    risk_tolerance: float

    def to_dict(self) -> Dict:
        return {
            "risk": self.risk,
            "return": self.expected_return,
            "weights": dict(self.weights),
            "risk_tolerance": self.risk_tolerance,
        }


@dataclass(frozen=True)
class PortfolioOptimizationResult:
    """
    Optimal weights together with their risk/return profile.

    ``utility`` and ``utility_history`` report the ascended objective
    w'r - (lambda / 2) * w'Sigma w, half the variance penalty of the plain
    mean-variance utility w'r - lambda * w'Sigma w. ``complete`` is False when
    the ascent or the frontier sweep was cancelled.
    """
    optimal_weights: PortfolioWeights
    expected_return: float
    expected_volatility: float
    sharpe_ratio: Optional[float]
    risk_tolerance: float
    utility: float  # w'r - (lambda / 2) * w'Sigma w at the optimal weights
    iterations: int
    converged: bool
    complete: bool = True
    utility_history: Tuple[float, ...] = ()
    efficient_frontier: Tuple[FrontierPoint, ...] = ()
    recommendations: Tuple[str, ...] = ()

    def to_dict(self) -> Dict:
        """Convert the optimization result to dictionary."""
        return {
            "optimal_weights": self.optimal_weights.to_dict(),
            "expected_return": self.expected_return,
            "expected_volatility": self.expected_volatility,
            "sharpe_ratio": self.sharpe_ratio,
            "risk_tolerance": self.risk_tolerance,
            "utility": self.utility,
            "iterations": self.iterations,
            "converged": self.converged,
            "complete": self.complete,
            "efficient_frontier": [p.to_dict() for p in self.efficient_frontier],
            "recommendations": list(self.recommendations),
        }


def project_to_bounded_simplex(values: np.ndarray, lower: float = 0.0, upper: float = 1.0) -> np.ndarray:
    """
    Euclidean projection of ``values`` onto {sum(w) = 1, lower <= w <= upper}.

    The projection clamps ``values - tau`` to the bounds, with the shift tau
    found by bisection so the clamped weights sum to one.
    """
    n = len(values)
    if n * lower > 1 + 1e-12 or n * upper < 1 - 1e-12:
        raise InvalidInputError(
            f"Bounds [{lower}, {upper}] cannot hold {n} weights summing to 1"
        )
    tau_low = float(np.min(values)) - upper  # Every weight at the upper bound
    tau_high = float(np.max(values)) - lower  # Every weight at the lower bound
    for _ in range(200):
        tau = 0.5 * (tau_low + tau_high)
        total = np.clip(values - tau, lower, upper).sum()
        if total > 1:
            tau_low = tau
        else:
            tau_high = tau
        if tau_high - tau_low < 1e-15:
            break
    return np.clip(values - 0.5 * (tau_low + tau_high), lower, upper)


class PortfolioOptimizer:
    """Mean-variance optimizer with efficient-frontier generation."""

    def __init__(self,
                 config: Optional[OptimizerConfig] = None,
                 risk_free_rate: float = 0.0,
                 periods_per_year: int = DEFAULT_PERIODS_PER_YEAR):
        """
        Initialize optimizer.

        Args:
            config: Iteration schedule and weight bounds
            risk_free_rate: Annual risk-free rate used for the Sharpe ratio
            periods_per_year: Used to annualize covariance built from return histories
        """
        self.config = config or OptimizerConfig()
        self.risk_free_rate = risk_free_rate
        self.periods_per_year = periods_per_year

    def optimize(self,
                 assets: Sequence[str],
                 expected_returns: Union[Sequence[float], Mapping[str, float]],
                 return_histories=None,
                 risk_tolerance: float = 0.5,
                 covariance: Optional[Union[CovarianceMatrix, np.ndarray]] = None,
                 include_frontier: bool = True,
                 cancellation: Optional[CancellationToken] = None) -> PortfolioOptimizationResult:
        """
        Find weights maximizing expected return minus a risk penalty.

        Args:
            assets: Asset ids, defining the order of every vector
            expected_returns: Annual expected return per asset (sequence or mapping)
            return_histories: Periodic return histories (mapping, DataFrame or
                MarketStatistics); their covariance is annualized
            risk_tolerance: Risk-aversion scalar lambda (>= 0)
            covariance: Covariance matrix used as-is instead of histories
            include_frontier: Also sweep lambda to build the efficient frontier
            cancellation: Optional token; on expiry the result is flagged incomplete

        Returns:
            PortfolioOptimizationResult

        Raises:
            InvalidInputError: Mismatched inputs or infeasible bounds
            DataQualityError: Malformed covariance matrix
        """
        assets = list(assets)
        returns_vec = self._returns_vector(assets, expected_returns)
        cov = self._covariance(assets, return_histories, covariance)
        if risk_tolerance < 0 or not np.isfinite(risk_tolerance):
            raise InvalidInputError(f"Risk tolerance must be a non-negative number, got {risk_tolerance}")

        logger.info(f"Optimizing portfolio of {len(assets)} assets (risk tolerance {risk_tolerance})")
        self._check_step_size(cov.values, risk_tolerance)

        weights, history, iterations, converged, complete = self._ascend(
            returns_vec, cov.values, risk_tolerance, cancellation
        )

        exp_return, exp_vol = self._profile(weights, returns_vec, cov.values)
        sharpe = (exp_return - self.risk_free_rate) / exp_vol if exp_vol > 0 else None

        frontier: Tuple[FrontierPoint, ...] = ()
        if include_frontier and complete:
            points, complete = self._sweep_frontier(assets, returns_vec, cov, cancellation)
            frontier = tuple(points)

        result = PortfolioOptimizationResult(
            optimal_weights=PortfolioWeights(
                dict(zip(assets, weights.tolist())),
                lower=self.config.min_weight,
                upper=self.config.max_weight,
            ),
            expected_return=exp_return,
            expected_volatility=exp_vol,
            sharpe_ratio=sharpe,
            risk_tolerance=risk_tolerance,
            utility=history[-1],
            iterations=iterations,
            converged=converged,
            complete=complete,
            utility_history=tuple(history),
            efficient_frontier=frontier,
            recommendations=tuple(self._recommendations(exp_return, exp_vol, sharpe)),
        )
        return result

    def efficient_frontier(self,
                           assets: Sequence[str],
                           expected_returns,
                           covariance: Union[CovarianceMatrix, np.ndarray],
                           cancellation: Optional[CancellationToken] = None) -> List[FrontierPoint]:
        """
        Sweep the risk tolerance and collect (risk, return, weights), sorted by risk.

        A cancelled sweep returns the points finished so far.
        """
        assets = list(assets)
        returns_vec = self._returns_vector(assets, expected_returns)
        cov = self._covariance(assets, None, covariance)
        points, _ = self._sweep_frontier(assets, returns_vec, cov, cancellation)
        return points

    def _sweep_frontier(self, assets, returns_vec, cov, cancellation) -> Tuple[List[FrontierPoint], bool]:
        points = []
        finished = True
        for lam in self._frontier_lambdas():
            if cancellation is not None and cancellation.cancelled:
                logger.warning(f"Efficient frontier cut short after {len(points)} points")
                finished = False
                break
            weights, _, _, _, _ = self._ascend(returns_vec, cov.values, lam, None)
            exp_return, exp_vol = self._profile(weights, returns_vec, cov.values)
            points.append(FrontierPoint(
                risk=exp_vol,
                expected_return=exp_return,
                weights=dict(zip(assets, weights.tolist())),
                risk_tolerance=lam,
            ))
        return sorted(points, key=lambda p: p.risk), finished

    def utility(self, weights: np.ndarray, returns_vec: np.ndarray, cov: np.ndarray, risk_tolerance: float) -> float:
        """
        Objective ascended by the optimizer: w'r - (lambda / 2) * w'Sigma w.

        Its gradient is r - lambda * Sigma w, the step direction used by the iteration.
        """
        return float(weights @ returns_vec - 0.5 * risk_tolerance * weights @ cov @ weights)

    def _ascend(self, returns_vec, cov, risk_tolerance, cancellation):
        lower, upper = self.config.min_weight, self.config.max_weight
        n = len(returns_vec)
        weights = project_to_bounded_simplex(np.full(n, 1.0 / n), lower, upper)
        history = [self.utility(weights, returns_vec, cov, risk_tolerance)]

        converged = False
        complete = True
        iterations = 0
        for _ in range(self.config.iterations):
            if cancellation is not None and cancellation.cancelled:
                complete = False
                break
            gradient = returns_vec - risk_tolerance * (cov @ weights)
            updated = project_to_bounded_simplex(weights + self.config.step_size * gradient, lower, upper)
            change = float(np.max(np.abs(updated - weights)))
            weights = updated
            iterations += 1
            history.append(self.utility(weights, returns_vec, cov, risk_tolerance))
            if change < self.config.epsilon:
                converged = True
                break

        if not complete:
            if iterations == 0:
                raise ComputationTimeoutError("Portfolio optimization cancelled before the first iteration")
            logger.warning(f"Portfolio optimization stopped after {iterations} iterations")

        ensure_finite(weights, "optimized weights")
        return weights, history, iterations, converged, complete

    @staticmethod
    def _profile(weights, returns_vec, cov) -> Tuple[float, float]:
        exp_return = float(weights @ returns_vec)
        variance = float(weights @ cov @ weights)
        exp_vol = float(np.sqrt(max(variance, 0.0)))
        ensure_finite([exp_return, exp_vol], "portfolio return/volatility")
        return exp_return, exp_vol

    def _frontier_lambdas(self) -> List[float]:
        c = self.config
        count = int(round((c.frontier_stop - c.frontier_start) / c.frontier_step)) + 1
        return [round(c.frontier_start + k * c.frontier_step, 10) for k in range(count)]

    def _check_step_size(self, cov: np.ndarray, risk_tolerance: float):
        lipschitz = risk_tolerance * float(np.max(np.linalg.eigvalsh(cov)))
        if self.config.step_size * lipschitz > 1:
            logger.warning(
                f"Step size {self.config.step_size} exceeds 1/L = {1 / lipschitz:.4g}; "
                f"utility may not improve monotonically"
            )

    @staticmethod
    def _returns_vector(assets: List[str], expected_returns) -> np.ndarray:
        if not assets:
            raise InvalidInputError("No assets to optimize")
        if len(set(assets)) != len(assets):
            raise InvalidInputError(f"Duplicate assets: {assets}")
        if isinstance(expected_returns, Mapping):
            missing = [a for a in assets if a not in expected_returns]
            if missing:
                raise InvalidInputError(f"No expected return for {missing}")
            vec = np.array([float(expected_returns[a]) for a in assets])
        else:
            vec = to_float_array(expected_returns, "expected returns")
        if len(vec) != len(assets):
            raise InvalidInputError(
                f"{len(vec)} expected returns for {len(assets)} assets"
            )
        ensure_finite(vec, "expected returns")
        return vec

    def _covariance(self, assets, return_histories, covariance) -> CovarianceMatrix:
        if covariance is not None:
            if isinstance(covariance, CovarianceMatrix):
                return covariance.subset(assets)
            if isinstance(covariance, pd.DataFrame):
                return CovarianceMatrix(tuple(covariance.index), covariance.to_numpy()).subset(assets)
            return CovarianceMatrix(tuple(assets), covariance)

        if return_histories is None:
            raise InvalidInputError("Either return histories or a covariance matrix is required")
        if isinstance(return_histories, MarketStatistics):
            stats = return_histories
        else:
            stats = MarketStatistics.from_returns(return_histories, self.periods_per_year)
        missing = [a for a in assets if a not in stats.assets]
        if missing:
            raise InvalidInputError(f"No return history for {missing}")
        return stats.annualized_covariance().subset(assets)

    @staticmethod
    def _recommendations(exp_return: float, exp_vol: float, sharpe: Optional[float]) -> List[str]:
        recs = []
        if sharpe is not None:
            recs.append(f"Optimal portfolio Sharpe ratio: {sharpe:.2f}")
        recs.extend([
            f"Expected annual return: {exp_return * 100:.2f}%",
            f"Expected annual volatility: {exp_vol * 100:.2f}%",
            "Rebalance the portfolio monthly",
            "Monitor correlations between assets continuously",
        ])
        return recs


def optimize_portfolio(assets: Sequence[str],
                       expected_returns,
                       return_histories=None,
                       risk_tolerance: float = 0.5,
                       covariance=None,
                       config: Optional[OptimizerConfig] = None,
                       risk_free_rate: float = 0.0,
                       periods_per_year: int = DEFAULT_PERIODS_PER_YEAR) -> PortfolioOptimizationResult:
    """Convenience wrapper around PortfolioOptimizer.optimize."""
    optimizer = PortfolioOptimizer(config, risk_free_rate, periods_per_year)
    return optimizer.optimize(assets, expected_returns, return_histories, risk_tolerance, covariance)
