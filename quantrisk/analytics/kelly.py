# quantrisk/analytics/kelly.py

"""
Kelly criterion position sizing.
"""

import logging
import math
from dataclasses import dataclass, asdict
from typing import Dict, Optional, Union

import numpy as np

from ..core.config import KellyConfig
from ..core.exceptions import InsufficientDataError, InvalidInputError
from ..core.models import ensure_finite, to_float_array

logger = logging.getLogger(__name__)

RISK_LEVEL_ADVICE = {
    'conservative': "Conservative sizing: small position with limited risk and limited upside.",
    'moderate': "Balanced sizing: reasonable upside for a reasonable amount of risk.",
    'aggressive': "Aggressive sizing: high potential return with substantial drawdown risk.",
}


@dataclass(frozen=True)
class KellyResult:
    """Outcome of a Kelly sizing calculation."""
    optimal_fraction: float
    expected_return: float
    win_probability: float
    avg_win: float
    avg_loss: float
    risk_level: str
    max_drawdown_estimate: float
    kelly_criterion: float = 0.0  # Raw, before confidence scaling and clamping
    adjusted_kelly: float = 0.0  # Raw * confidence factor, before clamping
    payoff_ratio: float = 0.0
    recommendation: str = ""

    @property
    def take_position(self) -> bool:
        return self.optimal_fraction > 0

    def to_dict(self) -> Dict[str, Union[float, str]]:
        """Convert KellyResult to dictionary."""
        return asdict(self)


class KellyCalculator:
    """Fractional Kelly sizing with a configurable cap."""

    def __init__(self, config: Optional[KellyConfig] = None):
        self.config = config or KellyConfig()

    def calculate(self,
                  win_rate: float,
                  avg_win: float,
                  avg_loss: float,
                  confidence_factor: float = 1.0) -> KellyResult:
        """
        Calculate the optimal fraction of capital to commit.

        Args:
            win_rate: Probability of a winning outcome, strictly between 0 and 1
            avg_win: Average gain of a winning outcome (> 0)
            avg_loss: Average loss magnitude of a losing outcome (> 0)
            confidence_factor: Fractional-Kelly multiplier in (0, 1]

        Returns:
            KellyResult with the clamped fraction in [0, fraction_cap]

        Raises:
            InvalidInputError: If any input is out of range
        """
        self._validate(win_rate, avg_win, avg_loss, confidence_factor)

        loss_rate = 1 - win_rate
        payoff_ratio = avg_win / avg_loss

        # f* = (p*R - q) / R
        kelly = (win_rate * payoff_ratio - loss_rate) / payoff_ratio
        adjusted = kelly * confidence_factor
        optimal_fraction = min(max(adjusted, 0.0), self.config.fraction_cap)

        if adjusted < 0:
            logger.info(f"Negative Kelly edge ({kelly:.4f}); position size clamped to 0")
        elif adjusted > self.config.fraction_cap:
            logger.info(f"Kelly fraction {adjusted:.4f} capped at {self.config.fraction_cap}")

        expected_return = win_rate * avg_win - loss_rate * avg_loss
        risk_level = self.classify(optimal_fraction)

        return KellyResult(
            optimal_fraction=optimal_fraction,
            expected_return=expected_return,
            win_probability=win_rate,
            avg_win=avg_win,
            avg_loss=avg_loss,
            risk_level=risk_level,
            max_drawdown_estimate=self.estimate_max_drawdown(optimal_fraction, avg_loss, win_rate),
            kelly_criterion=kelly,
            adjusted_kelly=adjusted,
            payoff_ratio=payoff_ratio,
            recommendation=RISK_LEVEL_ADVICE[risk_level],
        )

    def classify(self, fraction: float) -> str:
        if fraction < self.config.conservative_threshold:
            return 'conservative'
        if fraction < self.config.moderate_threshold:
            return 'moderate'
        return 'aggressive'

    def estimate_max_drawdown(self, fraction: float, avg_loss: float, win_rate: float) -> float:
        """
        Loss from the longest losing streak whose probability is at least ruin_probability.

        A run of k losses has probability (1-p)^k, so the streak length is
        ln(ruin_probability) / ln(1-p).
        """
        consecutive_losses = math.log(self.config.ruin_probability) / math.log(1 - win_rate)
        return fraction * avg_loss * consecutive_losses

    def from_returns(self, returns, confidence_factor: float = 1.0) -> KellyResult:
        """
        Derive win rate, average win and average loss from a trade/return history.

        Zero returns count as neither wins nor losses but stay in the sample size.
        """
        arr = to_float_array(returns, "returns")
        ensure_finite(arr, "returns")
        wins = arr[arr > 0]
        losses = arr[arr < 0]
        if len(wins) == 0 or len(losses) == 0:
            raise InsufficientDataError(
                f"Kelly sizing needs at least one win and one loss "
                f"(got {len(wins)} wins, {len(losses)} losses)"
            )
        win_rate = len(wins) / len(arr)
        return self.calculate(
            win_rate=win_rate,
            avg_win=float(np.mean(wins)),
            avg_loss=float(abs(np.mean(losses))),
            confidence_factor=confidence_factor,
        )

    @staticmethod
    def _validate(win_rate, avg_win, avg_loss, confidence_factor):
        ensure_finite([win_rate, avg_win, avg_loss, confidence_factor], "Kelly inputs")
        if win_rate <= 0 or win_rate >= 1:
            raise InvalidInputError(f"Win rate must be strictly between 0 and 1, got {win_rate}")
        if avg_win <= 0:
            raise InvalidInputError(f"Average win must be positive, got {avg_win}")
        if avg_loss <= 0:
            raise InvalidInputError(f"Average loss magnitude must be positive, got {avg_loss}")
        if confidence_factor <= 0 or confidence_factor > 1:
            raise InvalidInputError(f"Confidence factor must be in (0, 1], got {confidence_factor}")


def compute_kelly(win_rate: float,
                  avg_win: float,
                  avg_loss: float,
                  confidence_factor: float = 1.0,
                  config: Optional[KellyConfig] = None) -> KellyResult:
    """Convenience wrapper around KellyCalculator.calculate."""
    return KellyCalculator(config).calculate(win_rate, avg_win, avg_loss, confidence_factor)


def kelly_from_returns(returns,
                       confidence_factor: float = 1.0,
                       config: Optional[KellyConfig] = None) -> KellyResult:
    """Kelly sizing with win rate and payoffs taken from a return history."""
    return KellyCalculator(config).from_returns(returns, confidence_factor)
