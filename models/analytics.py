"""
Analytics models returned by the AI service: diversification ideas,
optimized allocations, risk analytics and tax-loss harvesting suggestions.
"""

from enum import Enum
from typing import List
from pydantic import Field, model_validator

from models.base import CamelModel


class OptimizationGoal(str, Enum):
    """Direction in which to rebalance an existing asset list."""
    MINIMIZE_RISK = "MINIMIZE_RISK"
    MAXIMIZE_RETURN = "MAXIMIZE_RETURN"


class RecommendedStock(CamelModel):
    ticker: str
    name: str
    rationale: str = Field(description="Briefly explain why this stock would be a good addition for diversification.")


class OptimizedAllocation(CamelModel):
    ticker: str
    allocation: float = Field(description="The new, optimized allocation percentage.")


class ValueAtRiskResult(CamelModel):
    value: float = Field(description="The VaR amount in dollars.")
    confidence_level: float = Field(description="The confidence level, e.g., 95.")
    time_horizon: str = Field(description="The time horizon, e.g., '1-day'.")
    explanation: str = Field(description="A simple explanation of what this VaR value means.")


class ScenarioAnalysisResult(CamelModel):
    scenario: str = Field(description="Name of the scenario, e.g., '2008 Financial Crisis'.")
    estimated_impact_percent: float = Field(description="The estimated portfolio loss as a percentage.")
    estimated_impact_value: float = Field(description="The estimated portfolio loss in dollars.")
    rationale: str = Field(description="A brief explanation of the impact.")


class CorrelationMatrix(CamelModel):
    """Square correlation matrix whose rows and columns follow `tickers`."""
    tickers: List[str]
    matrix: List[List[float]]

    @model_validator(mode='after')
    def _check_shape(self) -> "CorrelationMatrix":
        size = len(self.tickers)
        if len(self.matrix) != size or any(len(row) != size for row in self.matrix):
            raise ValueError(
                f"Correlation matrix must be {size}x{size} to match its tickers"
            )
        return self


class AdvancedAnalytics(CamelModel):
    value_at_risk: ValueAtRiskResult
    scenario_analysis: List[ScenarioAnalysisResult]
    correlation_matrix: CorrelationMatrix


class TaxLossSuggestion(CamelModel):
    sell_ticker: str
    sell_name: str
    unrealized_loss: float = Field(description="The amount of the loss in dollars.")
    replace_with_ticker: str
    replace_with_name: str
    rationale: str = Field(description="Why the replacement is a suitable but not 'substantially identical' asset.")
