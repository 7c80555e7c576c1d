"""
Services package for AI Portfolio.
Provides core business logic separated from presentation and data layers.
"""

from services.common import (
    normalize_ticker,
    clamp,
    weighted_average,
    calculate_risk_score,
    unique_tickers,
)
from services.exceptions import (
    PortfolioError,
    AdvisorError,
    SandboxValidationError,
    MarketDataError,
)
from services.allocation import AllocationBlender, blend_portfolio
from services.market_data import PriceCache, MarketPriceSimulator, AssetFinancialsGenerator
from services.performance import PerformanceHistorySimulator, history_to_frame, summarize_history
from services.notification import Notification, NotificationCenter
from services.advisor import PortfolioSuggestionClient, AnalyticsClient
from services.refresh import MarketDataRefresher
from services.sandbox import SandboxSession

__all__ = [
    # Common utilities
    'normalize_ticker',
    'clamp',
    'weighted_average',
    'calculate_risk_score',
    'unique_tickers',
    # Errors
    'PortfolioError',
    'AdvisorError',
    'SandboxValidationError',
    'MarketDataError',
    # Allocation
    'AllocationBlender',
    'blend_portfolio',
    # Simulation
    'PriceCache',
    'MarketPriceSimulator',
    'AssetFinancialsGenerator',
    'PerformanceHistorySimulator',
    'history_to_frame',
    'summarize_history',
    # Services
    'Notification',
    'NotificationCenter',
    'PortfolioSuggestionClient',
    'AnalyticsClient',
    'MarketDataRefresher',
    'SandboxSession',
]
