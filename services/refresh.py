"""
Periodic market data refresh using APScheduler.
Re-fetches quotes for the active portfolio's tickers on a fixed interval.
The job is bound to one portfolio: retargeting or stopping removes it, and
results that arrive for a portfolio that is no longer active are dropped.
"""

import logging
from typing import Callable, Dict, List, Optional, Sequence

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import get_settings
from models import MarketData
from services.market_data import MarketPriceSimulator

logger = logging.getLogger(__name__)


REFRESH_JOB_ID = 'market_data_refresh'


class MarketDataRefresher:
    """
    Cancellable interval job feeding simulated quotes to a callback.
    """

    def __init__(
        self,
        market: MarketPriceSimulator,
        on_update: Callable[[Dict[str, MarketData]], None],
        interval_seconds: Optional[int] = None,
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        """
        Args:
            market: Quote source
            on_update: Called with the latest quotes after each successful cycle
            interval_seconds: Refresh period (default: configured interval)
            scheduler: Scheduler to register the job with (created on demand)
        """
        self.market = market
        self.on_update = on_update
        self.interval_seconds = interval_seconds or get_settings().market_refresh_interval_seconds
        self.scheduler = scheduler
        self.tickers: List[str] = []
        self.is_loading = False
        self._generation = 0

    @property
    def is_active(self) -> bool:
        """True while a refresh job is scheduled."""
        return self.scheduler is not None and self.scheduler.get_job(REFRESH_JOB_ID) is not None

    async def start(self, tickers: Sequence[str]):
        """
        Bind the refresher to a new set of tickers.

        Any previous job is cancelled first. One refresh runs immediately,
        then the job repeats every interval until stop() or the next start().
        """
        self.stop()
        self.tickers = list(tickers)
        if not self.tickers:
            return

        generation = self._generation
        await self.refresh(generation)
        if generation != self._generation:
            # Retargeted or stopped while the first fetch was in flight
            return

        if self.scheduler is None:
            self.scheduler = AsyncIOScheduler()
        if not self.scheduler.running:
            self.scheduler.start()

        self.scheduler.add_job(
            self.refresh,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            args=[generation],
            id=REFRESH_JOB_ID,
            name='Market Data Refresh',
            replace_existing=True
        )
        logger.info(f"Market data refresh scheduled every {self.interval_seconds}s for {len(self.tickers)} tickers")

    def stop(self):
        """Cancel the scheduled job and invalidate in-flight results."""
        self._generation += 1
        if self.scheduler is not None and self.scheduler.get_job(REFRESH_JOB_ID) is not None:
            self.scheduler.remove_job(REFRESH_JOB_ID)
            logger.info("Market data refresh cancelled")

    def shutdown(self):
        """Stop refreshing and shut the scheduler down."""
        self.stop()
        if self.scheduler is not None and self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    async def refresh(self, generation: Optional[int] = None):
        """
        Run one refresh cycle.

        Failures are logged and the previous quotes stay in place. Results
        for a superseded generation are discarded.
        """
        if generation is None:
            generation = self._generation
        if generation != self._generation:
            return

        tickers = list(self.tickers)
        self.is_loading = True
        try:
            market_data = await self.market.fetch_market_data(tickers)
        except Exception as e:
            logger.error(f"Failed to fetch market data: {e}")
            return
        finally:
            self.is_loading = False

        if generation != self._generation:
            logger.debug("Discarding market data for a portfolio that is no longer active")
            return

        self.on_update(market_data)
