"""
Core data models for the risk engine.

Every model here is an immutable snapshot: built once per request from the
market-data collaborator and passed by value into the computations.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .exceptions import DataQualityError, InsufficientDataError, InvalidInputError

ArrayLike = Union[Sequence[float], np.ndarray, pd.Series]

DEFAULT_PERIODS_PER_YEAR = 252


def to_float_array(values, name: str = "values") -> np.ndarray:
    """
    Convert a sequence-like input to a 1-D float array.

    Accepts lists, tuples, numpy arrays, pandas Series and ReturnSeries.
    """
    if isinstance(values, ReturnSeries):
        values = values.values
    elif isinstance(values, pd.Series):
        values = values.to_numpy()
    try:
        arr = np.asarray(values, dtype=float)
    except (TypeError, ValueError) as e:
        raise InvalidInputError(f"{name} must be numeric: {e}") from e
    if arr.ndim != 1:
        raise InvalidInputError(f"{name} must be one-dimensional, got shape {arr.shape}")
    return arr


def ensure_finite(values, name: str = "values"):
    """Raise DataQualityError if any entry is NaN or infinite."""
    arr = np.asarray(values, dtype=float)
    if not np.all(np.isfinite(arr)):
        raise DataQualityError(f"{name} contains NaN or infinite values")
    return values


@dataclass(frozen=True)
class ReturnSeries:
    """Ordered, equally spaced periodic returns for one asset."""
    asset_id: str
    values: Tuple[float, ...]
    periodicity: str = "daily"

    def __post_init__(self):
        arr = to_float_array(self.values, f"returns of {self.asset_id}")
        ensure_finite(arr, f"returns of {self.asset_id}")
        object.__setattr__(self, 'values', tuple(float(v) for v in arr))

    def __len__(self) -> int:
        return len(self.values)

    def to_array(self) -> np.ndarray:
        return np.array(self.values, dtype=float)

    def to_series(self) -> pd.Series:
        return pd.Series(self.values, name=self.asset_id)


@dataclass(frozen=True, eq=False)
class CovarianceMatrix:
    """
    Symmetric, positive semi-definite covariance matrix indexed by asset id.

    Construction validates the matrix; anything that cannot be a covariance
    matrix raises DataQualityError.
    """
    assets: Tuple[str, ...]
    values: np.ndarray
    symmetry_tolerance: float = 1e-10
    correlation_tolerance: float = 1e-9
    eigenvalue_tolerance: float = 1e-10

    def __post_init__(self):
        assets = tuple(str(a) for a in self.assets)
        try:
            values = np.array(self.values, dtype=float)
        except (TypeError, ValueError) as e:
            raise DataQualityError(f"Covariance matrix is not numeric: {e}") from e
        values = np.atleast_2d(values)
        values.setflags(write=False)
        object.__setattr__(self, 'assets', assets)
        object.__setattr__(self, 'values', values)
        self.validate()

    def validate(self):
        """Check shape, finiteness, symmetry, diagonal and Cauchy-Schwarz bounds."""
        n = len(self.assets)
        if n == 0:
            raise InvalidInputError("Covariance matrix needs at least one asset")
        if len(set(self.assets)) != n:
            raise InvalidInputError(f"Duplicate asset ids in {self.assets}")
        if self.values.shape != (n, n):
            raise InvalidInputError(
                f"Covariance matrix shape {self.values.shape} does not match {n} assets"
            )
        ensure_finite(self.values, "covariance matrix")

        diag = np.diag(self.values)
        if np.any(diag < 0):
            bad = [a for a, v in zip(self.assets, diag) if v < 0]
            raise DataQualityError(f"Negative variance on the diagonal for {bad}")

        scale = max(1.0, float(np.max(np.abs(self.values))))
        if not np.allclose(self.values, self.values.T, rtol=0, atol=self.symmetry_tolerance * scale):
            raise DataQualityError("Covariance matrix is not symmetric")

        bound = np.sqrt(np.outer(diag, diag))
        excess = np.abs(self.values) - bound * (1 + self.correlation_tolerance)
        if np.any(excess > 1e-15):
            i, j = np.unravel_index(np.argmax(excess), excess.shape)
            raise DataQualityError(
                f"Implied correlation between {self.assets[i]} and {self.assets[j]} exceeds 1 in magnitude"
            )

        min_eig = float(np.min(np.linalg.eigvalsh(self.values)))
        if min_eig < -self.eigenvalue_tolerance * max(1.0, float(np.trace(self.values))):
            raise DataQualityError(
                f"Covariance matrix is not positive semi-definite (min eigenvalue {min_eig:.3e})"
            )

    @classmethod
    def from_return_series(cls, histories: Union[Mapping[str, ArrayLike], Iterable["ReturnSeries"], pd.DataFrame]) -> "CovarianceMatrix":
        """Build a Bessel-corrected sample covariance matrix from return histories."""
        named = _named_histories(histories)
        if not named:
            raise InvalidInputError("No return histories supplied")
        lengths = {asset: len(values) for asset, values in named.items()}
        if len(set(lengths.values())) != 1:
            raise InvalidInputError(f"Return histories have mismatched lengths: {lengths}")
        n_obs = next(iter(lengths.values()))
        if n_obs < 2:
            raise InsufficientDataError(f"Need at least 2 observations per asset, got {n_obs}")

        matrix = np.vstack(list(named.values()))
        cov = np.atleast_2d(np.cov(matrix, ddof=1))
        return cls(assets=tuple(named.keys()), values=cov)

    def index(self, asset: str) -> int:
        try:
            return self.assets.index(asset)
        except ValueError:
            raise InvalidInputError(f"Unknown asset: {asset}") from None

    def variance(self, asset: str) -> float:
        i = self.index(asset)
        return float(self.values[i, i])

    def covariance(self, asset_a: str, asset_b: str) -> float:
        return float(self.values[self.index(asset_a), self.index(asset_b)])

    def volatilities(self) -> np.ndarray:
        return np.sqrt(np.diag(self.values))

    def correlation_matrix(self) -> np.ndarray:
        vols = self.volatilities()
        if np.any(vols == 0):
            flat = [a for a, v in zip(self.assets, vols) if v == 0]
            raise DataQualityError(f"Correlation undefined for zero-variance assets {flat}")
        corr = self.values / np.outer(vols, vols)
        return np.clip(corr, -1.0, 1.0)

    def scaled(self, factor: float) -> "CovarianceMatrix":
        """Return the matrix multiplied by a scalar (e.g. periods per year)."""
        return CovarianceMatrix(assets=self.assets, values=self.values * factor)

    def subset(self, assets: Sequence[str]) -> "CovarianceMatrix":
        """Return the sub-matrix for the given assets, in the given order."""
        idx = [self.index(a) for a in assets]
        return CovarianceMatrix(assets=tuple(assets), values=self.values[np.ix_(idx, idx)])

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.values, index=list(self.assets), columns=list(self.assets))


@dataclass(frozen=True, eq=False)
class MarketStatistics:
    """
    Read-only market context passed into every computation.

    Holds the return histories and their covariance; built per request by the
    market-data collaborator instead of living as long-lived engine state.
    """
    histories: Mapping[str, ReturnSeries]
    covariance: CovarianceMatrix
    periods_per_year: int = DEFAULT_PERIODS_PER_YEAR

    def __post_init__(self):
        object.__setattr__(self, 'histories', MappingProxyType(dict(self.histories)))
        if tuple(self.histories.keys()) != self.covariance.assets:
            raise InvalidInputError("Histories and covariance matrix list different assets")
        if self.periods_per_year <= 0:
            raise InvalidInputError(f"periods_per_year must be positive, got {self.periods_per_year}")

    @classmethod
    def from_returns(cls,
                     returns: Union[Mapping[str, ArrayLike], Iterable[ReturnSeries], pd.DataFrame],
                     periods_per_year: int = DEFAULT_PERIODS_PER_YEAR,
                     periodicity: str = "daily") -> "MarketStatistics":
        named = _named_histories(returns)
        histories = {
            asset: ReturnSeries(asset_id=asset, values=values, periodicity=periodicity)
            for asset, values in named.items()
        }
        covariance = CovarianceMatrix.from_return_series(histories.values())
        return cls(histories=histories, covariance=covariance, periods_per_year=periods_per_year)

    @property
    def assets(self) -> Tuple[str, ...]:
        return self.covariance.assets

    def annualized_covariance(self) -> CovarianceMatrix:
        return self.covariance.scaled(self.periods_per_year)

    def annualized_volatilities(self) -> np.ndarray:
        return self.covariance.volatilities() * np.sqrt(self.periods_per_year)

    def annualized_mean_returns(self) -> np.ndarray:
        return np.array([np.mean(self.histories[a].values) for a in self.assets]) * self.periods_per_year


@dataclass(frozen=True)
class PortfolioWeights:
    """Asset -> weight mapping that sums to one and respects per-asset bounds."""
    weights: Mapping[str, float]
    lower: float = 0.0
    upper: float = 1.0
    tolerance: float = 1e-6

    def __post_init__(self):
        weights = {str(k): float(v) for k, v in dict(self.weights).items()}
        object.__setattr__(self, 'weights', MappingProxyType(weights))
        self.validate()

    def validate(self):
        if not self.weights:
            raise InvalidInputError("Portfolio weights are empty")
        ensure_finite(list(self.weights.values()), "portfolio weights")
        total = sum(self.weights.values())
        if abs(total - 1.0) > self.tolerance:
            raise InvalidInputError(f"Weights sum to {total:.8f}, expected 1")
        for asset, w in self.weights.items():
            if w < self.lower - self.tolerance or w > self.upper + self.tolerance:
                raise InvalidInputError(
                    f"Weight {w:.6f} for {asset} outside [{self.lower}, {self.upper}]"
                )

    def __getitem__(self, asset: str) -> float:
        return self.weights[asset]

    def __iter__(self):
        return iter(self.weights)

    def __len__(self) -> int:
        return len(self.weights)

    def as_array(self, assets: Sequence[str]) -> np.ndarray:
        return np.array([self.weights[a] for a in assets], dtype=float)

    def to_dict(self) -> Dict[str, float]:
        return dict(self.weights)


@dataclass(frozen=True)
class Position:
    """A holding as seen by the risk aggregator."""
    asset: str
    value: float
    liquidity: float = 1.0  # 0 = illiquid, 1 = fully liquid
    leverage: float = 1.0

    def __post_init__(self):
        self.validate()

    def validate(self):
        ensure_finite([self.value, self.liquidity, self.leverage], f"position {self.asset}")
        if self.value < 0:
            raise InvalidInputError(f"Position value cannot be negative: {self.asset}")
        if not 0.0 <= self.liquidity <= 1.0:
            raise InvalidInputError(f"Liquidity for {self.asset} must be in [0, 1], got {self.liquidity}")
        if self.leverage <= 0:
            raise InvalidInputError(f"Leverage for {self.asset} must be positive, got {self.leverage}")


@dataclass(frozen=True)
class PortfolioSnapshot:
    """Positions plus return history handed to the risk aggregator."""
    positions: Tuple[Position, ...]
    returns: Tuple[float, ...]
    benchmark_returns: Optional[Tuple[float, ...]] = None
    periods_per_year: int = DEFAULT_PERIODS_PER_YEAR

    def __post_init__(self):
        object.__setattr__(self, 'positions', tuple(self.positions))
        returns = to_float_array(self.returns, "portfolio returns")
        ensure_finite(returns, "portfolio returns")
        object.__setattr__(self, 'returns', tuple(float(r) for r in returns))
        if self.benchmark_returns is not None:
            bench = to_float_array(self.benchmark_returns, "benchmark returns")
            ensure_finite(bench, "benchmark returns")
            if len(bench) != len(returns):
                raise InvalidInputError(
                    f"Benchmark has {len(bench)} returns, portfolio has {len(returns)}"
                )
            object.__setattr__(self, 'benchmark_returns', tuple(float(r) for r in bench))
        if not self.positions:
            raise InvalidInputError("Portfolio snapshot has no positions")
        if self.periods_per_year <= 0:
            raise InvalidInputError(f"periods_per_year must be positive, got {self.periods_per_year}")

    @property
    def total_value(self) -> float:
        return sum(p.value for p in self.positions)

    def weights(self) -> Dict[str, float]:
        total = self.total_value
        if total <= 0:
            raise InvalidInputError("Portfolio snapshot has zero total value")
        weights: Dict[str, float] = {}
        for p in self.positions:
            weights[p.asset] = weights.get(p.asset, 0.0) + p.value / total
        return weights


def _named_histories(histories) -> Dict[str, np.ndarray]:
    """Normalize the accepted history containers to an ordered asset -> array dict."""
    if isinstance(histories, pd.DataFrame):
        named = {str(col): histories[col].to_numpy(dtype=float) for col in histories.columns}
    elif isinstance(histories, Mapping):
        named = {str(k): to_float_array(v, f"returns of {k}") for k, v in histories.items()}
    else:
        named = {}
        for series in histories:
            if not isinstance(series, ReturnSeries):
                raise InvalidInputError(
                    f"Expected ReturnSeries, got {type(series).__name__}"
                )
            if series.asset_id in named:
                raise InvalidInputError(f"Duplicate return series for {series.asset_id}")
            named[series.asset_id] = series.to_array()
    for asset, values in named.items():
        ensure_finite(values, f"returns of {asset}")
    return named
