# quantrisk/core/config.py
"""
Configuration management for the risk engine.

Every tunable limit (Kelly cap, risk-parity weight cap, optimizer schedule,
aggregator weights) lives here instead of being hard-coded in the calculators.
"""

import os
import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from dotenv import load_dotenv

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "QUANTRISK_"


@dataclass(frozen=True)
class KellyConfig:
    """Configuration for Kelly position sizing."""
    fraction_cap: float = 0.25
    conservative_threshold: float = 0.05
    moderate_threshold: float = 0.15
    ruin_probability: float = 0.01


@dataclass(frozen=True)
class OptimizerConfig:
    """Configuration for the mean-variance optimizer."""
    iterations: int = 100
    step_size: float = 0.01
    epsilon: float = 1e-10
    min_weight: float = 0.0
    max_weight: float = 1.0
    frontier_start: float = 0.1
    frontier_stop: float = 2.0
    frontier_step: float = 0.1


@dataclass(frozen=True)
class RiskParityConfig:
    """Configuration for the risk parity allocator."""
    max_weight: float = 0.5
    method: str = "inverse_volatility"  # or "equal_risk_contribution"
    max_iterations: int = 500
    tolerance: float = 1e-10


@dataclass(frozen=True)
class MonteCarloConfig:
    """Configuration for Monte Carlo path simulation."""
    num_scenarios: int = 10000
    trading_days_per_year: int = 252
    batch_size: int = 250
    max_workers: Optional[int] = None
    sample_size: int = 100
    timeout: Optional[float] = None  # Seconds


@dataclass(frozen=True)
class TailRiskConfig:
    """Configuration for VaR/CVaR estimation."""
    confidence_levels: Tuple[float, ...] = (0.95, 0.99)
    drawdown_alert: float = -0.10


@dataclass(frozen=True)
class AggregatorConfig:
    """Configuration for the composite risk score."""
    concentration_weight: float = 0.25
    liquidity_weight: float = 0.20
    market_weight: float = 0.40
    operational_weight: float = 0.15
    low_threshold: float = 0.2
    medium_threshold: float = 0.4
    high_threshold: float = 0.7
    market_volatility_ceiling: float = 0.5
    leverage_ceiling: float = 10.0


@dataclass(frozen=True)
class CapitalConfig:
    """Configuration for capital management and position monitoring."""
    min_position_pct: float = 0.01
    max_position_pct: float = 0.25
    concentration_warning: float = 0.3
    concentration_danger: float = 0.5
    leverage_danger: float = 10.0


@dataclass(frozen=True)
class LoggingConfig:
    """Configuration for logging."""
    log_level: str = "INFO"
    log_file: Optional[Path] = None
    console_logging: bool = True


@dataclass(frozen=True)
class EngineConfig:
    """Main configuration object handed to the engine and its calculators."""
    risk_free_rate: float = 0.02
    periods_per_year: int = 252
    kelly: KellyConfig = field(default_factory=KellyConfig)
    optimizer: OptimizerConfig = field(default_factory=OptimizerConfig)
    risk_parity: RiskParityConfig = field(default_factory=RiskParityConfig)
    monte_carlo: MonteCarloConfig = field(default_factory=MonteCarloConfig)
    tail_risk: TailRiskConfig = field(default_factory=TailRiskConfig)
    aggregator: AggregatorConfig = field(default_factory=AggregatorConfig)
    capital: CapitalConfig = field(default_factory=CapitalConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls, env_file: str = ".env") -> "EngineConfig":
        """
        Build configuration from environment variables, loading a .env file first.

        Variables are named ``QUANTRISK_<FIELD>`` for top-level fields and
        ``QUANTRISK_<SECTION>_<FIELD>`` for section fields, e.g.
        ``QUANTRISK_KELLY_FRACTION_CAP=0.2``.
        """
        env_path = Path(env_file)
        if env_path.exists():
            load_dotenv(dotenv_path=env_path)
        else:
            logger.debug(f"{env_file} not found, using existing environment variables")
        return cls.from_mapping(os.environ)

    @classmethod
    def from_mapping(cls, env: Dict[str, str]) -> "EngineConfig":
        """Build configuration from a flat ``QUANTRISK_*`` mapping."""
        top_level: Dict[str, Any] = {}
        sections: Dict[str, Any] = {}

        for f in fields(cls):
            default = getattr(cls(), f.name)
            if _is_section(default):
                sections[f.name] = _load_section(default, env, f"{ENV_PREFIX}{f.name.upper()}_")
            else:
                key = f"{ENV_PREFIX}{f.name.upper()}"
                if key in env:
                    top_level[f.name] = _coerce(key, env[key], default)

        config = cls(**top_level, **sections)
        config.validate()
        return config

    def with_overrides(self, **sections) -> "EngineConfig":
        """Return a copy with whole sections or top-level fields replaced."""
        config = replace(self, **sections)
        config.validate()
        return config

    def validate(self):
        """Validate the entire configuration."""
        k = self.kelly
        if not 0 < k.fraction_cap <= 1:
            raise ConfigurationError(f"Kelly fraction cap must be in (0, 1], got {k.fraction_cap}")
        if not 0 <= k.conservative_threshold <= k.moderate_threshold:
            raise ConfigurationError("Kelly risk-level thresholds must be non-negative and ordered")
        if not 0 < k.ruin_probability < 1:
            raise ConfigurationError(f"Kelly ruin probability must be in (0, 1), got {k.ruin_probability}")

        o = self.optimizer
        if o.iterations < 1:
            raise ConfigurationError("Optimizer needs at least one iteration")
        if o.step_size <= 0 or o.epsilon < 0:
            raise ConfigurationError("Optimizer step size must be positive and epsilon non-negative")
        if o.min_weight > o.max_weight:
            raise ConfigurationError("Optimizer min_weight exceeds max_weight")
        if o.frontier_step <= 0 or o.frontier_start < 0 or o.frontier_stop < o.frontier_start:
            raise ConfigurationError("Invalid efficient frontier sweep")

        rp = self.risk_parity
        if not 0 < rp.max_weight <= 1:
            raise ConfigurationError(f"Risk parity max weight must be in (0, 1], got {rp.max_weight}")
        if rp.method not in ("inverse_volatility", "equal_risk_contribution"):
            raise ConfigurationError(f"Unknown risk parity method: {rp.method}")

        mc = self.monte_carlo
        if mc.num_scenarios < 1 or mc.batch_size < 1 or mc.trading_days_per_year < 1:
            raise ConfigurationError("Monte Carlo scenario, batch and day counts must be positive")
        if mc.sample_size < 0:
            raise ConfigurationError("Monte Carlo sample size cannot be negative")
        if mc.max_workers is not None and mc.max_workers < 1:
            raise ConfigurationError("Monte Carlo max_workers must be positive")
        if mc.timeout is not None and mc.timeout <= 0:
            raise ConfigurationError("Monte Carlo timeout must be positive")

        if not self.tail_risk.confidence_levels or any(
                not 0 < c < 1 for c in self.tail_risk.confidence_levels):
            raise ConfigurationError("Tail-risk confidence levels must lie in (0, 1)")

        a = self.aggregator
        weights = (a.concentration_weight, a.liquidity_weight, a.market_weight, a.operational_weight)
        if any(w < 0 for w in weights) or sum(weights) <= 0:
            raise ConfigurationError("Aggregator weights must be non-negative with a positive sum")
        if not 0 < a.low_threshold < a.medium_threshold < a.high_threshold:
            raise ConfigurationError("Aggregator thresholds must be positive and increasing")
        if a.market_volatility_ceiling <= 0 or a.leverage_ceiling <= 1:
            raise ConfigurationError("Aggregator ceilings out of range")

        c = self.capital
        if not 0 <= c.min_position_pct <= c.max_position_pct <= 1:
            raise ConfigurationError("Capital position limits must satisfy 0 <= min <= max <= 1")
        if not 0 < c.concentration_warning <= c.concentration_danger <= 1:
            raise ConfigurationError("Concentration alert levels must be ordered within (0, 1]")

        if self.periods_per_year < 1:
            raise ConfigurationError("periods_per_year must be positive")

        if not isinstance(logging.getLevelName(self.logging.log_level.upper()), int):
            raise ConfigurationError(f"Unknown log level: {self.logging.log_level}")


def _is_section(value: Any) -> bool:
    return hasattr(value, '__dataclass_fields__')


def _load_section(default, env: Dict[str, str], prefix: str):
    overrides = {}
    for f in fields(default):
        key = f"{prefix}{f.name.upper()}"
        if key in env:
            overrides[f.name] = _coerce(key, env[key], getattr(default, f.name))
    return replace(default, **overrides)


def _coerce(key: str, raw: str, default: Any) -> Any:
    """Convert an environment string to the type of the field's default."""
    raw = raw.strip()
    try:
        if isinstance(default, bool):
            return raw.lower() in ("1", "true", "yes", "on")
        if isinstance(default, int):
            return int(raw)
        if isinstance(default, float):
            return float(raw)
        if isinstance(default, tuple):
            return tuple(float(part) for part in raw.split(',') if part.strip())
        if isinstance(default, Path) or key.endswith("_LOG_FILE"):
            return Path(raw) if raw else None
        if default is None:
            # Optional numeric fields (timeout, max_workers)
            if raw.lower() in ("", "none"):
                return None
            return int(raw) if raw.isdigit() else float(raw)
        return raw
    except ValueError as e:
        raise ConfigurationError(f"Invalid value for {key}: {raw!r} ({e})") from e
