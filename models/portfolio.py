"""
Portfolio models - a titled asset list with its strategy analysis.
"""

from typing import List
from pydantic import Field

from models.base import CamelModel
from models.asset import Asset


class PortfolioMetrics(CamelModel):
    """Allocation-weighted aggregate metrics for a whole portfolio."""
    expected_return: float
    volatility: float
    weighted_beta: float
    risk_score: float = Field(description="A numerical risk score from 1 (very low) to 10 (very high).")


class Benchmark(CamelModel):
    """A named reference point on the risk vs. return chart."""
    name: str
    expected_return: float
    volatility: float


class StrategyAnalysis(CamelModel):
    """Free-text strategy explanation plus metrics and benchmarks."""
    summary: str
    conservative_measures: str
    market_outlook: str
    portfolio_metrics: PortfolioMetrics
    benchmarks: List[Benchmark] = Field(default_factory=list)


class PortfolioDetails(CamelModel):
    """A complete portfolio: title, assets and strategy."""
    title: str
    portfolio: List[Asset]
    strategy: StrategyAnalysis

    @property
    def tickers(self) -> List[str]:
        return [asset.ticker for asset in self.portfolio]

    @property
    def total_allocation(self) -> float:
        return sum(asset.allocation for asset in self.portfolio)


class PortfolioSuggestion(CamelModel):
    """Primary AI suggestion plus its conservative/aggressive alternatives."""
    primary: PortfolioDetails
    alternatives: List[PortfolioDetails]

    @property
    def all_portfolios(self) -> List[PortfolioDetails]:
        return [self.primary, *self.alternatives]
