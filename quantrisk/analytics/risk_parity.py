# quantrisk/analytics/risk_parity.py

"""
Risk parity allocation.

The default method weights assets inversely to their volatility, which
equalizes risk contributions when assets are uncorrelated. The
"equal_risk_contribution" method solves exact risk parity for correlated
assets using Spinu's convex formulation.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Union

import numpy as np
from scipy.optimize import minimize

from ..core.config import RiskParityConfig
from ..core.exceptions import DataQualityError, InvalidInputError
from ..core.models import (
    CovarianceMatrix,
    DEFAULT_PERIODS_PER_YEAR,
    MarketStatistics,
    ensure_finite,
    to_float_array,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RiskParityStrategy:
    """Per-asset risk parity allocation and diagnostics."""
    asset: str
    current_weight: float
    risk_contribution: float
    target_risk_contribution: float
    adjusted_weight: float
    volatility: float
    correlation: Optional[float]  # Mean pairwise correlation with the other assets
    correlations: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            "asset": self.asset,
            "current_weight": self.current_weight,
            "risk_contribution": self.risk_contribution,
            "target_risk_contribution": self.target_risk_contribution,
            "adjusted_weight": self.adjusted_weight,
            "volatility": self.volatility,
            "correlation": self.correlation,
            "correlations": dict(self.correlations),
        }


@dataclass(frozen=True)
class RiskContributionAnalysis:
    """Decomposition of portfolio volatility into per-asset contributions."""
    portfolio_volatility: float
    marginal_contribution: Dict[str, float]
    component_contribution: Dict[str, float]
    percentage_contribution: Dict[str, float]

    def to_dict(self) -> Dict:
        return {
            "portfolio_volatility": self.portfolio_volatility,
            "marginal_contribution": dict(self.marginal_contribution),
            "component_contribution": dict(self.component_contribution),
            "percentage_contribution": dict(self.percentage_contribution),
        }


def risk_contributions(weights: Union[Mapping[str, float], Sequence[float]],
                       covariance: CovarianceMatrix) -> RiskContributionAnalysis:
    """
    Analyze the risk contribution of each asset in a weighted portfolio.

    Args:
        weights: Weight per asset (mapping, or sequence in covariance order)
        covariance: Covariance matrix of the assets

    Returns:
        Marginal (dSigma_p/dw_i), component (w_i * marginal) and percentage
        (component / Sigma_p) contributions
    """
    assets = list(covariance.assets)
    if isinstance(weights, Mapping):
        w = np.array([float(weights[a]) for a in assets])
    else:
        w = to_float_array(weights, "weights")
    if len(w) != len(assets):
        raise InvalidInputError(f"{len(w)} weights for {len(assets)} assets")
    ensure_finite(w, "weights")

    port_var = float(w @ covariance.values @ w)
    if port_var <= 0:
        raise DataQualityError("Portfolio has zero variance; risk contributions are undefined")
    port_vol = np.sqrt(port_var)

    mcr = covariance.values @ w / port_vol
    ccr = w * mcr
    pcr = ccr / port_vol

    return RiskContributionAnalysis(
        portfolio_volatility=float(port_vol),
        marginal_contribution=dict(zip(assets, mcr.tolist())),
        component_contribution=dict(zip(assets, ccr.tolist())),
        percentage_contribution=dict(zip(assets, pcr.tolist())),
    )


def cap_and_normalize(weights: np.ndarray, max_weight: float) -> np.ndarray:
    """
    Normalize weights to sum to one with no weight above ``max_weight``.

    Excess over the cap is redistributed to the uncapped assets in proportion
    to their weights, repeating until no asset breaches the cap.
    """
    w = np.asarray(weights, dtype=float)
    n = len(w)
    if max_weight * n < 1 - 1e-12:
        raise InvalidInputError(
            f"A cap of {max_weight} cannot hold {n} weights summing to 1"
        )
    total = w.sum()
    if total <= 0:
        raise InvalidInputError("Weights must have a positive sum")
    w = w / total

    capped = np.zeros(n, dtype=bool)
    for _ in range(n):
        over = (w > max_weight) & ~capped
        if not over.any():
            break
        capped |= over
        w[capped] = max_weight
        free = ~capped
        free_total = w[free].sum()
        if free_total > 0:
            w[free] *= (1.0 - max_weight * capped.sum()) / free_total
    return w


class RiskParityAllocator:
    """Allocate capital so each asset contributes the same share of risk."""

    def __init__(self,
                 config: Optional[RiskParityConfig] = None,
                 periods_per_year: int = DEFAULT_PERIODS_PER_YEAR):
        self.config = config or RiskParityConfig()
        self.periods_per_year = periods_per_year

    def allocate(self,
                 assets: Sequence[str],
                 return_histories=None,
                 covariance: Optional[CovarianceMatrix] = None,
                 current_weights: Optional[Union[Mapping[str, float], Sequence[float]]] = None,
                 method: Optional[str] = None) -> List[RiskParityStrategy]:
        """
        Compute risk parity weights.

        Args:
            assets: Asset ids
            return_histories: Periodic return histories; volatilities are annualized
            covariance: Covariance matrix used as-is instead of histories
            current_weights: Weights currently held; defaults to inverse volatility
            method: "inverse_volatility" or "equal_risk_contribution"
                (defaults to the configured method)

        Returns:
            One RiskParityStrategy per asset, in input order
        """
        assets = list(assets)
        if not assets:
            raise InvalidInputError("No assets to allocate")
        method = method or self.config.method
        cov = self._covariance(assets, return_histories, covariance)

        vols = cov.volatilities()
        non_positive = [a for a, v in zip(assets, vols) if v <= 0]
        if non_positive:
            raise InvalidInputError(f"Volatility must be positive for {non_positive}")
        corr = cov.correlation_matrix()

        logger.info(f"Computing risk parity for {len(assets)} assets ({method})")

        inverse_vol = (1.0 / vols) / np.sum(1.0 / vols)
        current = self._current_weights(assets, current_weights, inverse_vol)
        n = len(assets)
        target = 1.0 / n

        if method == "inverse_volatility":
            contributions = current * vols
            raw = target / vols
        elif method == "equal_risk_contribution":
            contributions = self._risk_shares(current, cov.values)
            raw = self._solve_equal_risk(cov.values, inverse_vol)
        else:
            raise InvalidInputError(f"Unknown risk parity method: {method}")

        adjusted = cap_and_normalize(raw, self.config.max_weight)
        if np.any(np.isclose(adjusted, self.config.max_weight)) and self.config.max_weight < 1:
            logger.info(f"Risk parity cap of {self.config.max_weight} is binding")
        ensure_finite(adjusted, "risk parity weights")

        strategies = []
        for i, asset in enumerate(assets):
            others = {assets[j]: float(corr[i, j]) for j in range(n) if j != i}
            strategies.append(RiskParityStrategy(
                asset=asset,
                current_weight=float(current[i]),
                risk_contribution=float(contributions[i]),
                target_risk_contribution=target,
                adjusted_weight=float(adjusted[i]),
                volatility=float(vols[i]),
                correlation=float(np.mean(list(others.values()))) if others else None,
                correlations=others,
            ))
        return strategies

    def _covariance(self, assets, return_histories, covariance) -> CovarianceMatrix:
        if covariance is not None:
            if not isinstance(covariance, CovarianceMatrix):
                covariance = CovarianceMatrix(tuple(assets), covariance)
            return covariance.subset(assets)
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
    def _current_weights(assets, current_weights, default) -> np.ndarray:
        if current_weights is None:
            return default
        if isinstance(current_weights, Mapping):
            missing = [a for a in assets if a not in current_weights]
            if missing:
                raise InvalidInputError(f"No current weight for {missing}")
            current = np.array([float(current_weights[a]) for a in assets])
        else:
            current = to_float_array(current_weights, "current weights")
        if len(current) != len(assets):
            raise InvalidInputError(f"{len(current)} current weights for {len(assets)} assets")
        ensure_finite(current, "current weights")
        if np.any(current < 0):
            raise InvalidInputError("Current weights cannot be negative")
        return current

    @staticmethod
    def _risk_shares(weights: np.ndarray, cov: np.ndarray) -> np.ndarray:
        """Share of portfolio volatility contributed by each asset."""
        port_var = float(weights @ cov @ weights)
        if port_var <= 0:
            raise DataQualityError("Current portfolio has zero variance")
        return weights * (cov @ weights) / port_var

    def _solve_equal_risk(self, cov: np.ndarray, start: np.ndarray) -> np.ndarray:
        """
        Minimize 0.5 * y'Sigma y - sum(b_i * ln y_i) with b_i = 1/N.

        At the optimum y_i * (Sigma y)_i = b_i, so y / sum(y) has equal risk
        contributions.
        """
        n = len(start)
        budget = np.full(n, 1.0 / n)

        def objective(y):
            sigma_y = cov @ y
            value = 0.5 * y @ sigma_y - budget @ np.log(y)
            grad = sigma_y - budget / y
            return value, grad

        result = minimize(
            objective,
            x0=start / np.sqrt(start @ cov @ start),
            jac=True,
            method="L-BFGS-B",
            bounds=[(1e-12, None)] * n,
            options={
                "maxiter": self.config.max_iterations,
                "gtol": self.config.tolerance,
                "ftol": self.config.tolerance,
            },
        )
        if not result.success:
            logger.warning(f"Equal risk contribution solver did not converge: {result.message}")
        y = np.asarray(result.x, dtype=float)
        ensure_finite(y, "equal risk contribution solution")
        return y / y.sum()


def compute_risk_parity(assets: Sequence[str],
                        return_histories=None,
                        covariance: Optional[CovarianceMatrix] = None,
                        current_weights=None,
                        config: Optional[RiskParityConfig] = None,
                        periods_per_year: int = DEFAULT_PERIODS_PER_YEAR) -> List[RiskParityStrategy]:
    """Convenience wrapper around RiskParityAllocator.allocate."""
    allocator = RiskParityAllocator(config, periods_per_year)
    return allocator.allocate(assets, return_histories, covariance, current_weights)
