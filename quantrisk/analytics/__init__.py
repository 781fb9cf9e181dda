"""
Risk analytics package.
Sizing, allocation, simulation and tail-risk calculators built on the core data model.
"""

from .kelly import KellyCalculator, KellyResult, compute_kelly, kelly_from_returns
from .portfolio_optimizer import (
    FrontierPoint,
    PortfolioOptimizationResult,
    PortfolioOptimizer,
    optimize_portfolio,
)
from .risk_parity import (
    RiskContributionAnalysis,
    RiskParityAllocator,
    RiskParityStrategy,
    compute_risk_parity,
    risk_contributions,
)
from .monte_carlo import MonteCarloResult, MonteCarloScenario, MonteCarloSimulator, run_monte_carlo
from .drawdown import (
    DrawdownAnalyzer,
    DrawdownManagement,
    TailRiskMetrics,
    analyze_drawdown,
    conditional_value_at_risk,
    value_at_risk,
)
from .risk_metrics import (
    PerformanceRatios,
    RiskAggregator,
    RiskManagementMetrics,
    compute_risk_metrics,
    performance_ratios,
)
from .capital import CapitalManager, CapitalManagementMetrics, FixedFractionalStrategy, RiskMonitorReport

__all__ = [
    'KellyCalculator', 'KellyResult', 'compute_kelly', 'kelly_from_returns',
    'FrontierPoint', 'PortfolioOptimizationResult', 'PortfolioOptimizer', 'optimize_portfolio',
    'RiskContributionAnalysis', 'RiskParityAllocator', 'RiskParityStrategy',
    'compute_risk_parity', 'risk_contributions',
    'MonteCarloResult', 'MonteCarloScenario', 'MonteCarloSimulator', 'run_monte_carlo',
    'DrawdownAnalyzer', 'DrawdownManagement', 'TailRiskMetrics', 'analyze_drawdown',
    'conditional_value_at_risk', 'value_at_risk',
    'PerformanceRatios', 'RiskAggregator', 'RiskManagementMetrics', 'compute_risk_metrics',
    'performance_ratios',
    'CapitalManager', 'CapitalManagementMetrics', 'FixedFractionalStrategy', 'RiskMonitorReport',
]
