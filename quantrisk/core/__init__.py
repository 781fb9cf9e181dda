"""
Core data model, configuration and error types for the risk engine.
"""

from .exceptions import (
    RiskEngineError,
    InvalidInputError,
    InsufficientDataError,
    DataQualityError,
    ComputationTimeoutError,
    ConfigurationError,
)

__all__ = [
    'RiskEngineError',
    'InvalidInputError',
    'InsufficientDataError',
    'DataQualityError',
    'ComputationTimeoutError',
    'ConfigurationError',
]
