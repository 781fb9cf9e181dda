"""
Quant Risk Engine - position sizing, portfolio allocation and risk analysis.
"""

from .core.config import EngineConfig
from .core.exceptions import (
    RiskEngineError,
    InvalidInputError,
    InsufficientDataError,
    DataQualityError,
    ComputationTimeoutError,
    ConfigurationError,
)
from .engine import RiskEngine

__version__ = "0.1.0"

__all__ = [
    'RiskEngine',
    'EngineConfig',
    'RiskEngineError',
    'InvalidInputError',
    'InsufficientDataError',
    'DataQualityError',
    'ComputationTimeoutError',
    'ConfigurationError',
]
