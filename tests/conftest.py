"""
Shared fixtures: portfolio builders, fake LLM backends and zero-latency simulators.
"""

import json
from typing import List, Optional

import numpy as np
import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel

from llm_engine import LLMClient
from models import Asset, Benchmark, PortfolioDetails, PortfolioMetrics, StrategyAnalysis
from services.advisor import AnalyticsClient, PortfolioSuggestionClient
from services.market_data import AssetFinancialsGenerator, MarketPriceSimulator, PriceCache
from services.notification import NotificationCenter
from services.performance import PerformanceHistorySimulator
from services.sandbox import SandboxSession


def make_asset(ticker, allocation, beta=1.0, expected_return=8.0, volatility=15.0, **extra) -> Asset:
    return Asset(
        ticker=ticker,
        name=f"{ticker} Fund",
        sector="Technology",
        allocation=allocation,
        beta=beta,
        expected_return=expected_return,
        volatility=volatility,
        rationale="Core holding",
        **extra,
    )


def make_portfolio(assets: List[Asset], title: str = "Balanced Growth Portfolio") -> PortfolioDetails:
    return PortfolioDetails(
        title=title,
        portfolio=assets,
        strategy=StrategyAnalysis(
            summary="Diversified core",
            conservative_measures="Use stop-loss orders",
            market_outlook="Neutral",
            portfolio_metrics=PortfolioMetrics(
                expected_return=8.4, volatility=12.2, weighted_beta=0.8, risk_score=6.5
            ),
            benchmarks=[Benchmark(name="S&P 500", expected_return=10, volatility=18)],
        ),
    )


def portfolio_json(title: str, tickers: List[str]) -> dict:
    allocation = 100 / len(tickers)
    return {
        "title": title,
        "portfolio": [
            {
                "ticker": ticker,
                "name": f"{ticker} Fund",
                "sector": "Financials",
                "allocation": allocation,
                "beta": 0.9,
                "expectedReturn": 7.5,
                "volatility": 12.0,
                "rationale": "Broad exposure",
            }
            for ticker in tickers
        ],
        "strategy": {
            "summary": "Efficient for a moderate investor",
            "conservativeMeasures": "Rebalance yearly",
            "marketOutlook": "Cautiously optimistic",
            "portfolioMetrics": {
                "expectedReturn": 7.5,
                "volatility": 12.0,
                "weightedBeta": 0.9,
                "riskScore": 7,
            },
            "benchmarks": [{"name": "S&P 500", "expectedReturn": 10, "volatility": 18}],
        },
    }


def suggestion_json() -> str:
    return json.dumps({
        "primary": portfolio_json("Balanced Growth Portfolio (Primary)", ["VTI", "BND", "VXUS"]),
        "alternatives": [
            portfolio_json("Conservative Alternative", ["BND", "VTI"]),
            portfolio_json("Aggressive Growth Alternative", ["QQQ", "VTI", "NVDA", "SMH"]),
        ],
    })


def fake_llm(*responses: str) -> LLMClient:
    return LLMClient(llm=FakeListChatModel(responses=list(responses) or ["{}"]))


class UnreachableChatModel:
    """Chat model stand-in whose every call fails like a dropped connection."""

    def __init__(self):
        self.calls = 0

    async def ainvoke(self, messages, *args, **kwargs):
        self.calls += 1
        raise ConnectionError("connection refused")


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def price_cache():
    return PriceCache()


@pytest.fixture
def market(price_cache, rng):
    return MarketPriceSimulator(price_cache, rng, latency=None)


def make_session(
    suggestion_responses: Optional[List[str]] = None,
    analytics_responses: Optional[List[str]] = None,
    auto_refresh: bool = False,
    seed: int = 7,
) -> SandboxSession:
    rng = np.random.default_rng(seed)
    market = MarketPriceSimulator(PriceCache(), rng, latency=None)
    return SandboxSession(
        suggestion_client=PortfolioSuggestionClient(fake_llm(*(suggestion_responses or [suggestion_json()]))),
        analytics_client=AnalyticsClient(fake_llm(*(analytics_responses or []))),
        market=market,
        financials=AssetFinancialsGenerator(market, rng, latency=None),
        history=PerformanceHistorySimulator(rng, latency=None),
        notifications=NotificationCenter(ttl_seconds=5),
        refresh_interval_seconds=60,
        auto_refresh=auto_refresh,
    )
