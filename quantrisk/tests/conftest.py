# quantrisk/tests/conftest.py
import numpy as np
import pandas as pd
import pytest

from quantrisk.core.config import EngineConfig
from quantrisk.core.models import CovarianceMatrix


def pytest_configure(config):
    """Register custom marks."""
    config.addinivalue_line("markers", "slow: mark test that runs a large simulation")


@pytest.fixture
def daily_returns():
    """Three assets of daily returns with different volatilities."""
    np.random.seed(42)  # For reproducibility
    dates = pd.date_range(start='2023-01-02', periods=252, freq='B')
    return pd.DataFrame({
        'BTC': np.random.normal(0.001, 0.03, 252),
        'ETH': np.random.normal(0.0008, 0.02, 252),
        'SOL': np.random.normal(0.0005, 0.01, 252),
    }, index=dates)


@pytest.fixture
def diagonal_covariance():
    return CovarianceMatrix(('A', 'B', 'C'), np.diag([0.01, 0.04, 0.09]))


@pytest.fixture
def correlated_covariance():
    vols = np.array([0.1, 0.2, 0.3])
    corr = np.array([
        [1.0, 0.3, 0.1],
        [0.3, 1.0, 0.4],
        [0.1, 0.4, 1.0],
    ])
    return CovarianceMatrix(('A', 'B', 'C'), corr * np.outer(vols, vols))


@pytest.fixture
def engine_config():
    return EngineConfig()
