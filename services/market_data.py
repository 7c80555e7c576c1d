"""
Market data service producing simulated quotes and fundamentals.
Stands in for a remote financial data API: prices follow a small random
fluctuation around the last price seen in this session, and every call
waits for a simulated network delay.
"""

import asyncio
import logging
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

import numpy as np

from config import Settings, get_settings
from models import MarketData
from services.common import normalize_ticker
from services.exceptions import MarketDataError

logger = logging.getLogger(__name__)


# Seed price range for tickers seen for the first time: [20, 520)
BASE_PRICE_MIN = 20.0
BASE_PRICE_SPAN = 500.0

# Multiplicative fluctuation per fetch: [-2.5%, +2.5%)
MAX_FLUCTUATION = 0.05

MARKET_DATA_LATENCY = (0.3, 0.7)
FINANCIALS_LATENCY = (0.2, 0.5)

SECTORS = [
    'Technology',
    'Healthcare',
    'Financials',
    'Consumer Discretionary',
    'Industrials',
    'Energy',
    'Utilities',
    'Real Estate',
]

USER_ASSET_NAME_SUFFIX = " Holdings Inc."
USER_ASSET_RATIONALE = "This asset was added by the user for custom analysis."


class PriceCache:
    """
    Last simulated price per ticker.
    Owned by one application session and shared by every simulator it creates.
    """

    def __init__(self):
        self._prices: Dict[str, float] = {}

    def get(self, ticker: str) -> Optional[float]:
        return self._prices.get(ticker)

    def set(self, ticker: str, price: float):
        self._prices[ticker] = price

    def clear(self):
        self._prices.clear()

    def __contains__(self, ticker: str) -> bool:
        return ticker in self._prices

    def __len__(self) -> int:
        return len(self._prices)

    def __iter__(self) -> Iterator[str]:
        return iter(self._prices)


async def simulate_latency(latency: Optional[Tuple[float, float]], rng: np.random.Generator):
    """Sleep for a uniform-random delay within the latency range, if any."""
    if not latency:
        return
    low, high = latency
    delay = low + rng.random() * (high - low)
    if delay > 0:
        await asyncio.sleep(delay)


class MarketPriceSimulator:
    """
    Simulated quote source with cross-call price consistency via a PriceCache.
    """

    def __init__(
        self,
        cache: PriceCache,
        rng: Optional[np.random.Generator] = None,
        latency: Optional[Tuple[float, float]] = MARKET_DATA_LATENCY,
        failure_rate: float = 0.0,
    ):
        """
        Args:
            cache: Session-owned price cache, read and written on every fetch
            rng: Random generator for prices (seed it for reproducible runs)
            latency: (min, max) simulated delay in seconds, or None to disable
            failure_rate: Probability that a fetch raises MarketDataError
        """
        self.cache = cache
        self.rng = rng if rng is not None else np.random.default_rng()
        self.latency = latency
        self.failure_rate = failure_rate
        # Delays are drawn separately so that prices do not depend on latency settings
        self._latency_rng = np.random.default_rng()

    @classmethod
    def from_settings(
        cls,
        cache: PriceCache,
        settings: Optional[Settings] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> "MarketPriceSimulator":
        """Create a simulator configured from application settings."""
        settings = settings or get_settings()
        if rng is None:
            rng = np.random.default_rng(settings.random_seed)
        return cls(
            cache=cache,
            rng=rng,
            latency=MARKET_DATA_LATENCY if settings.simulate_latency else None,
            failure_rate=settings.market_failure_rate,
        )

    def _next_quote(self, ticker: str) -> MarketData:
        previous_price = self.cache.get(ticker)
        if not previous_price:
            previous_price = self.rng.random() * BASE_PRICE_SPAN + BASE_PRICE_MIN

        fluctuation = (self.rng.random() - 0.5) * MAX_FLUCTUATION
        new_price = previous_price * (1 + fluctuation)

        price_change = new_price - previous_price
        price_change_percent = (price_change / previous_price) * 100

        self.cache.set(ticker, new_price)

        return MarketData(
            current_price=float(new_price),
            price_change=float(price_change),
            price_change_percent=float(price_change_percent),
        )

    async def fetch_market_data(self, tickers: Iterable[str]) -> Dict[str, MarketData]:
        """
        Fetch simulated quotes for a list of tickers.

        Args:
            tickers: Ticker symbols, used as given for cache and result keys

        Returns:
            Dictionary mapping ticker -> MarketData

        Raises:
            MarketDataError: When a synthetic failure is triggered
        """
        tickers = list(tickers)
        await simulate_latency(self.latency, self._latency_rng)

        if self.failure_rate and self.rng.random() < self.failure_rate:
            raise MarketDataError(f"Simulated market data outage for {', '.join(tickers)}")

        market_data = {ticker: self._next_quote(ticker) for ticker in tickers}
        logger.debug(f"Simulated quotes for {len(market_data)} tickers")
        return market_data


class AssetFinancialsGenerator:
    """
    Simulated fundamentals lookup for a ticker the user adds to the sandbox.
    """

    def __init__(
        self,
        market: MarketPriceSimulator,
        rng: Optional[np.random.Generator] = None,
        latency: Optional[Tuple[float, float]] = FINANCIALS_LATENCY,
    ):
        self.market = market
        self.rng = rng if rng is not None else market.rng
        self.latency = latency
        self._latency_rng = np.random.default_rng()

    async def fetch_asset_financials(self, ticker: str) -> Dict:
        """
        Generate plausible financial data for a ticker.

        Returns:
            Dictionary with name, sector, beta, expected_return, volatility,
            rationale and market_data
        """
        await simulate_latency(self.latency, self._latency_rng)

        symbol = normalize_ticker(ticker)
        sector = SECTORS[int(self.rng.integers(len(SECTORS)))]
        beta = round(float(self.rng.uniform(0.5, 2.0)), 2)
        expected_return = round(float(self.rng.uniform(5, 15)), 2)
        volatility = round(float(self.rng.uniform(10, 30)), 2)

        market_data = await self.market.fetch_market_data([symbol])

        logger.info(f"Generated financials for {symbol}: beta={beta}, return={expected_return}%, vol={volatility}%")
        return {
            'name': symbol + USER_ASSET_NAME_SUFFIX,
            'sector': sector,
            'beta': beta,
            'expected_return': expected_return,
            'volatility': volatility,
            'rationale': USER_ASSET_RATIONALE,
            'market_data': market_data[symbol],
        }


def format_quotes(market_data: Dict[str, MarketData]) -> List[str]:
    """Format quotes as display lines, e.g. 'VTI: $245.10 (+1.20, +0.49%)'."""
    return [
        f"{ticker}: ${quote.current_price:.2f} ({quote.price_change:+.2f}, {quote.price_change_percent:+.2f}%)"
        for ticker, quote in market_data.items()
    ]


if __name__ == "__main__":
    from config import configure_logging

    configure_logging()

    async def _demo():
        simulator = MarketPriceSimulator(PriceCache())
        for _ in range(3):
            quotes = await simulator.fetch_market_data(["VTI", "BND", "NVDA"])
            print("\n".join(format_quotes(quotes)))
            print("-" * 40)

    asyncio.run(_demo())
