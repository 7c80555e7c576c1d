"""
Common utilities and shared functions.
Ticker normalization, weighted averages and risk score calculation.
"""

import logging
from typing import Callable, Iterable, List, Optional

from models import Asset

logger = logging.getLogger(__name__)

# Risk score is an affine transform of weighted beta, clamped to this range
RISK_SCORE_MIN = 1.0
RISK_SCORE_MAX = 10.0
RISK_SCORE_BETA_MULTIPLIER = 5.0
RISK_SCORE_OFFSET = 2.5


def normalize_ticker(ticker: Optional[str]) -> str:
    """
    Normalize a ticker symbol for comparison and storage.

    Examples:
        >>> normalize_ticker(" aapl ")
        'AAPL'
        >>> normalize_ticker("brk.b")
        'BRK.B'
    """
    return (ticker or "").strip().upper()


def clamp(lower: float, upper: float, value: float) -> float:
    """Clamp value into [lower, upper]."""
    return max(lower, min(upper, value))


def weighted_average(assets: Iterable[Asset], attribute: Callable[[Asset], float]) -> float:
    """
    Allocation-weighted sum of a per-asset attribute.

    Weights are allocation / 100, so a portfolio summing to 100 yields a
    proper weighted average. Other sums are not corrected.
    """
    total = 0.0
    for asset in assets:
        total += attribute(asset) * (asset.allocation / 100)
    return total


def calculate_risk_score(weighted_beta: float) -> float:
    """
    Map a weighted beta to a 1-10 risk score.

    Examples:
        >>> calculate_risk_score(1.0)
        7.5
        >>> calculate_risk_score(-3.0)
        1.0
    """
    raw = weighted_beta * RISK_SCORE_BETA_MULTIPLIER + RISK_SCORE_OFFSET
    return clamp(RISK_SCORE_MIN, RISK_SCORE_MAX, raw)


def unique_tickers(tickers: Iterable[str]) -> List[str]:
    """De-duplicate tickers keeping first-seen order."""
    seen = {}
    for ticker in tickers:
        seen.setdefault(ticker, None)
    return list(seen)
