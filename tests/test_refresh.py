import asyncio

import pytest

from services.exceptions import MarketDataError
from services.refresh import MarketDataRefresher, REFRESH_JOB_ID


class BrokenMarket:
    async def fetch_market_data(self, tickers):
        raise MarketDataError("outage")


class SlowMarket:
    def __init__(self):
        self.release = asyncio.Event()

    async def fetch_market_data(self, tickers):
        await self.release.wait()
        return {ticker: None for ticker in tickers}


@pytest.fixture
def updates():
    return []


async def test_start_refreshes_immediately_and_schedules(market, updates):
    refresher = MarketDataRefresher(market, updates.append, interval_seconds=60)
    try:
        await refresher.start(["VTI", "BND"])

        assert len(updates) == 1
        assert set(updates[0]) == {"VTI", "BND"}
        assert refresher.is_active
        assert refresher.scheduler.get_job(REFRESH_JOB_ID).trigger.interval.total_seconds() == 60
    finally:
        refresher.shutdown()


async def test_stop_cancels_job(market, updates):
    refresher = MarketDataRefresher(market, updates.append, interval_seconds=60)
    await refresher.start(["VTI"])

    refresher.stop()

    assert not refresher.is_active
    refresher.shutdown()


async def test_retarget_replaces_job(market, updates):
    refresher = MarketDataRefresher(market, updates.append, interval_seconds=60)
    try:
        await refresher.start(["VTI"])
        await refresher.start(["QQQ"])

        assert refresher.tickers == ["QQQ"]
        assert len(refresher.scheduler.get_jobs()) == 1
        assert set(updates[-1]) == {"QQQ"}
    finally:
        refresher.shutdown()


async def test_empty_portfolio_does_not_schedule(market, updates):
    refresher = MarketDataRefresher(market, updates.append, interval_seconds=60)

    await refresher.start([])

    assert updates == []
    assert not refresher.is_active


async def test_failed_refresh_keeps_previous_quotes(updates):
    refresher = MarketDataRefresher(BrokenMarket(), updates.append, interval_seconds=60)
    refresher.tickers = ["VTI"]

    await refresher.refresh()

    assert updates == []
    assert refresher.is_loading is False


async def test_results_for_superseded_portfolio_are_discarded(updates):
    market = SlowMarket()
    refresher = MarketDataRefresher(market, updates.append, interval_seconds=60)
    refresher.tickers = ["VTI"]

    pending = asyncio.create_task(refresher.refresh())
    await asyncio.sleep(0)
    assert refresher.is_loading

    refresher.stop()
    market.release.set()
    await pending

    assert updates == []


class GatedMarket:
    """Each ticker's fetch blocks until that ticker is released."""

    def __init__(self):
        self.gates = {}

    def _gate(self, ticker):
        return self.gates.setdefault(ticker, asyncio.Event())

    def release(self, ticker):
        self._gate(ticker).set()

    async def fetch_market_data(self, tickers):
        await self._gate(tickers[0]).wait()
        return {ticker: None for ticker in tickers}


async def test_overlapping_retarget_keeps_latest_job_alive(updates):
    market = GatedMarket()
    refresher = MarketDataRefresher(market, updates.append, interval_seconds=60)
    try:
        old = asyncio.create_task(refresher.start(["OLD"]))
        await asyncio.sleep(0)
        new = asyncio.create_task(refresher.start(["NEW"]))
        await asyncio.sleep(0)

        market.release("NEW")
        await new
        market.release("OLD")
        await old

        assert refresher.tickers == ["NEW"]
        assert len(refresher.scheduler.get_jobs()) == 1

        job = refresher.scheduler.get_job(REFRESH_JOB_ID)
        await job.func(*job.args)

        assert [set(update) for update in updates] == [{"NEW"}, {"NEW"}]
    finally:
        refresher.shutdown()


async def test_stop_during_first_fetch_schedules_nothing(updates):
    market = GatedMarket()
    refresher = MarketDataRefresher(market, updates.append, interval_seconds=60)

    pending = asyncio.create_task(refresher.start(["VTI"]))
    await asyncio.sleep(0)
    refresher.stop()
    market.release("VTI")
    await pending

    assert updates == []
    assert not refresher.is_active
