"""
UserProfile model - the investor criteria a suggestion is generated for.
"""

from pydantic import Field

from models.base import CamelModel


RISK_LEVELS = ['Conservative', 'Moderate', 'Aggressive']
HORIZONS = ['1-3 Years (Short-term)', '3-7 Years (Medium-term)', '7+ Years (Long-term)']
GOALS = ['Capital Growth', 'Wealth Preservation', 'Regular Income', 'Speculation']


class UserProfile(CamelModel):
    """Investment amount, risk tolerance, horizon and financial goal."""
    amount: float = Field(gt=0)
    risk_level: str = "Moderate"
    horizon: str = HORIZONS[1]
    goal: str = GOALS[0]
