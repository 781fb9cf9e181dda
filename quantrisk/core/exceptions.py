"""
Exception hierarchy for the risk engine.
"""


class RiskEngineError(Exception):
    """Base exception for all risk engine errors."""
    pass


class InvalidInputError(RiskEngineError, ValueError):
    """Raised when an argument is out of range or inconsistent with the others."""
    pass


class InsufficientDataError(RiskEngineError):
    """Raised when a series is too short for the requested statistic."""
    pass


class DataQualityError(RiskEngineError):
    """Raised on NaN/Infinity or a covariance matrix that cannot be a covariance."""
    pass


class ComputationTimeoutError(RiskEngineError):
    """Raised when a computation hit its deadline before producing anything usable."""
    pass


class ConfigurationError(RiskEngineError):
    """Raised when there is an error in configuration."""
    pass
