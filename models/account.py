"""
Live brokerage models - linked account holdings and performance history.
"""

from typing import List

from models.base import CamelModel


class Holding(CamelModel):
    """A position held in a linked brokerage account."""
    ticker: str
    name: str
    sector: str
    shares: float
    value: float
    purchase_price: float


class LinkedAccount(CamelModel):
    """Snapshot of a linked brokerage account."""
    account_name: str
    total_value: float
    holdings: List[Holding]


class PerformanceDataPoint(CamelModel):
    """One day of simulated portfolio / benchmark / AI suggestion values."""
    date: str  # ISO format, e.g. "2026-04-20"
    portfolio_value: float
    benchmark_value: float
    ai_suggestion_value: float
