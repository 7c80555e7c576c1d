"""
Performance history simulation for linked accounts.
Produces a trailing daily series of portfolio, benchmark and AI suggestion
values as three independent biased random walks.
"""

import logging
from datetime import date, timedelta
from typing import List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from models import PerformanceDataPoint
from services.market_data import simulate_latency

logger = logging.getLogger(__name__)


HISTORY_DAYS = 180
STARTING_VALUE = 100000.0
HISTORY_LATENCY = (0.8, 0.8)

# (bias, scale) per series: value *= 1 + (U - bias) * scale
PORTFOLIO_WALK = (0.48, 0.015)
BENCHMARK_WALK = (0.49, 0.014)
AI_SUGGESTION_WALK = (0.47, 0.016)


def _step(value: float, u: float, walk: Tuple[float, float]) -> float:
    bias, scale = walk
    return round(value * (1 + (u - bias) * scale), 2)


class PerformanceHistorySimulator:
    """Simulated trailing performance history."""

    def __init__(
        self,
        rng: Optional[np.random.Generator] = None,
        latency: Optional[Tuple[float, float]] = HISTORY_LATENCY,
        days: int = HISTORY_DAYS,
    ):
        self.rng = rng if rng is not None else np.random.default_rng()
        self.latency = latency
        self.days = days
        self._latency_rng = np.random.default_rng()

    def generate(self, today: Optional[date] = None) -> List[PerformanceDataPoint]:
        """
        Build the series synchronously.

        Each day's values are rounded to cents before being recorded and the
        walk continues from the rounded value.

        Args:
            today: Last date of the series (defaults to date.today())

        Returns:
            days + 1 points in ascending date order, first at today - days
        """
        today = today or date.today()

        portfolio_value = STARTING_VALUE
        benchmark_value = STARTING_VALUE
        ai_suggestion_value = STARTING_VALUE

        history = []
        for offset in range(self.days, -1, -1):
            day = today - timedelta(days=offset)

            portfolio_value = _step(portfolio_value, self.rng.random(), PORTFOLIO_WALK)
            benchmark_value = _step(benchmark_value, self.rng.random(), BENCHMARK_WALK)
            ai_suggestion_value = _step(ai_suggestion_value, self.rng.random(), AI_SUGGESTION_WALK)

            history.append(PerformanceDataPoint(
                date=day.isoformat(),
                portfolio_value=portfolio_value,
                benchmark_value=benchmark_value,
                ai_suggestion_value=ai_suggestion_value,
            ))

        return history

    async def fetch_performance_history(self, today: Optional[date] = None) -> List[PerformanceDataPoint]:
        """Fetch the simulated history after a simulated network delay."""
        await simulate_latency(self.latency, self._latency_rng)
        history = self.generate(today)
        logger.info(f"Simulated {len(history)} days of performance history ending {history[-1].date}")
        return history


def history_to_frame(history: Sequence[PerformanceDataPoint]) -> pd.DataFrame:
    """
    Convert a performance history to a DataFrame indexed by date.

    Returns:
        DataFrame with portfolio_value, benchmark_value and ai_suggestion_value columns
    """
    frame = pd.DataFrame([point.model_dump() for point in history])
    if frame.empty:
        return frame
    frame['date'] = pd.to_datetime(frame['date'])
    return frame.set_index('date')


def summarize_history(history: Sequence[PerformanceDataPoint]) -> dict:
    """
    Total return (%) per series over the whole window, plus max drawdown
    of the portfolio series.
    """
    frame = history_to_frame(history)
    if frame.empty:
        return {}

    returns = (frame.iloc[-1] / frame.iloc[0] - 1) * 100
    running_peak = frame['portfolio_value'].cummax()
    drawdown = (frame['portfolio_value'] / running_peak - 1) * 100

    return {
        'portfolio_return_pct': round(float(returns['portfolio_value']), 2),
        'benchmark_return_pct': round(float(returns['benchmark_value']), 2),
        'ai_suggestion_return_pct': round(float(returns['ai_suggestion_value']), 2),
        'max_drawdown_pct': round(float(drawdown.min()), 2),
    }
