"""
Asset model - represents one holding or suggested position in a portfolio.
"""

from typing import Optional
from pydantic import Field, field_validator

from models.base import CamelModel


class MarketData(CamelModel):
    """Simulated current-market snapshot for a ticker."""
    current_price: float
    price_change: float
    price_change_percent: float


class Asset(CamelModel):
    """Represents a stock/ETF position in a portfolio."""
    ticker: str  # e.g., "VTI", "NVDA"; stored uppercase
    name: str
    sector: str  # e.g., "Technology", "Healthcare"
    allocation: float = Field(description="Percentage of the portfolio, e.g., 40 for 40%")
    beta: float
    expected_return: float = Field(description="Estimated annualized return as a percentage, e.g., 8.5 for 8.5%")
    volatility: float = Field(description="Estimated annualized volatility as a percentage, e.g., 15.2 for 15.2%")
    rationale: str = Field(description="Brief reason for including this asset.")
    market_data: Optional[MarketData] = None
    is_user_added: Optional[bool] = None
    purchase_price: Optional[float] = None  # For simulating unrealized gains/losses

    @field_validator('ticker')
    @classmethod
    def _uppercase_ticker(cls, value: str) -> str:
        return value.strip().upper()

    @property
    def unrealized_gain(self) -> Optional[float]:
        """Price gain/loss since purchase scaled by allocation weight, or None if unknown."""
        if not self.purchase_price or self.market_data is None:
            return None
        return (self.market_data.current_price - self.purchase_price) * (self.allocation / 100)
