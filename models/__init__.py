"""
Data models for AI Portfolio.
All pydantic model definitions are centralized here.
"""

from models.asset import Asset, MarketData
from models.portfolio import (
    PortfolioMetrics,
    Benchmark,
    StrategyAnalysis,
    PortfolioDetails,
    PortfolioSuggestion,
)
from models.analytics import (
    OptimizationGoal,
    RecommendedStock,
    OptimizedAllocation,
    ValueAtRiskResult,
    ScenarioAnalysisResult,
    CorrelationMatrix,
    AdvancedAnalytics,
    TaxLossSuggestion,
)
from models.account import Holding, LinkedAccount, PerformanceDataPoint
from models.user_profile import UserProfile, RISK_LEVELS, HORIZONS, GOALS

__all__ = [
    'Asset',
    'MarketData',
    'PortfolioMetrics',
    'Benchmark',
    'StrategyAnalysis',
    'PortfolioDetails',
    'PortfolioSuggestion',
    'OptimizationGoal',
    'RecommendedStock',
    'OptimizedAllocation',
    'ValueAtRiskResult',
    'ScenarioAnalysisResult',
    'CorrelationMatrix',
    'AdvancedAnalytics',
    'TaxLossSuggestion',
    'Holding',
    'LinkedAccount',
    'PerformanceDataPoint',
    'UserProfile',
    'RISK_LEVELS',
    'HORIZONS',
    'GOALS',
]
