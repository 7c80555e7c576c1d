"""
Sandbox session: the application state behind the portfolio dashboard.
Owns the base portfolio (AI suggestion or linked account), the user's
sandbox edits, live quotes and notifications. Every mutation re-derives
the active portfolio explicitly and retargets the market data refresh.
"""

import logging
from typing import Dict, List, Literal, Optional

import numpy as np

from config import Settings, get_settings
from models import (
    AdvancedAnalytics,
    Asset,
    GOALS,
    HORIZONS,
    Holding,
    LinkedAccount,
    MarketData,
    OptimizationGoal,
    PerformanceDataPoint,
    PortfolioDetails,
    PortfolioSuggestion,
    RecommendedStock,
    TaxLossSuggestion,
    UserProfile,
)
from services.advisor import AnalyticsClient, PortfolioSuggestionClient
from services.allocation import AllocationBlender, OPTIMIZED_TITLE_SUFFIX
from services.common import unique_tickers
from services.exceptions import PortfolioError, SandboxValidationError
from services.market_data import (
    AssetFinancialsGenerator,
    FINANCIALS_LATENCY,
    MarketPriceSimulator,
    PriceCache,
)
from services.notification import NotificationCenter
from services.performance import HISTORY_LATENCY, PerformanceHistorySimulator
from services.refresh import MarketDataRefresher

logger = logging.getLogger(__name__)


Mode = Literal["suggestion", "live"]

# Simulated purchase price spread around the current quote: [-4%, +16%)
PURCHASE_PRICE_SKEW = 0.2
PURCHASE_PRICE_SPREAD = 0.2

LINK_FAILURE_MESSAGE = "Failed to link account. Please try again."


class SandboxSession:
    """
    One user's dashboard session.

    Service errors never escape the public coroutines: suggestion and
    account-link failures land in `error`, everything else becomes an
    error notification.
    """

    def __init__(
        self,
        suggestion_client: PortfolioSuggestionClient,
        analytics_client: AnalyticsClient,
        market: MarketPriceSimulator,
        financials: AssetFinancialsGenerator,
        history: PerformanceHistorySimulator,
        notifications: Optional[NotificationCenter] = None,
        refresh_interval_seconds: Optional[int] = None,
        rng: Optional[np.random.Generator] = None,
        auto_refresh: bool = True,
    ):
        self.suggestion_client = suggestion_client
        self.analytics_client = analytics_client
        self.market = market
        self.financials = financials
        self.history = history
        self.notifications = notifications or NotificationCenter()
        self.rng = rng if rng is not None else market.rng
        self.refresher = (
            MarketDataRefresher(market, self._on_market_data, refresh_interval_seconds)
            if auto_refresh else None
        )

        self.mode: Mode = "suggestion"
        self.suggestion_result: Optional[PortfolioSuggestion] = None
        self.selected_index = 0
        self.linked_account: Optional[LinkedAccount] = None
        self.performance_history: Optional[List[PerformanceDataPoint]] = None
        self.user_added_assets: List[Asset] = []
        self.user_profile: Optional[UserProfile] = None
        self.active_portfolio: Optional[PortfolioDetails] = None
        self.market_data: Dict[str, MarketData] = {}

        self.diversification_suggestions: List[RecommendedStock] = []
        self.tax_loss_suggestions: List[TaxLossSuggestion] = []
        self.advanced_analytics: Optional[AdvancedAnalytics] = None

        self.error: Optional[str] = None
        self.is_loading = False
        self.is_processing = False

    @classmethod
    def create(cls, settings: Optional[Settings] = None) -> "SandboxSession":
        """Build a session with simulators and AI clients from configuration."""
        settings = settings or get_settings()
        rng = np.random.default_rng(settings.random_seed)
        cache = PriceCache()

        market = MarketPriceSimulator.from_settings(cache, settings, rng)
        financials = AssetFinancialsGenerator(
            market, rng, latency=FINANCIALS_LATENCY if settings.simulate_latency else None
        )
        history = PerformanceHistorySimulator(
            rng, latency=HISTORY_LATENCY if settings.simulate_latency else None
        )

        return cls(
            suggestion_client=PortfolioSuggestionClient.from_settings(),
            analytics_client=AnalyticsClient.from_settings(),
            market=market,
            financials=financials,
            history=history,
            notifications=NotificationCenter(settings.notification_ttl_seconds),
            refresh_interval_seconds=settings.market_refresh_interval_seconds,
            rng=rng,
        )

    # ==================== DERIVED STATE ====================

    @property
    def all_suggested_portfolios(self) -> List[PortfolioDetails]:
        if self.suggestion_result is None:
            return []
        return self.suggestion_result.all_portfolios

    @property
    def base_portfolio(self) -> Optional[PortfolioDetails]:
        """The selected AI suggestion or the linked account, before sandbox edits."""
        if self.mode == "suggestion" and self.suggestion_result is not None:
            return self.all_suggested_portfolios[self.selected_index]
        if self.mode == "live" and self.linked_account is not None:
            return AllocationBlender.from_linked_account(self.linked_account)
        return None

    @property
    def is_sandbox_mode(self) -> bool:
        return len(self.user_added_assets) > 0

    @property
    def is_market_data_loading(self) -> bool:
        return self.refresher is not None and self.refresher.is_loading

    def portfolio_with_market_data(self) -> Optional[PortfolioDetails]:
        """Active portfolio with the latest quotes attached to each asset."""
        if self.active_portfolio is None:
            return None
        return AllocationBlender.attach_market_data(self.active_portfolio, self.market_data)

    async def _recompute(self):
        """Re-derive the active portfolio and bind the refresher to it."""
        base = self.base_portfolio
        self.active_portfolio = (
            AllocationBlender.blend(base, self.user_added_assets) if base is not None else None
        )

        if self.refresher is None:
            return
        if self.active_portfolio is not None and self.active_portfolio.portfolio:
            await self.refresher.start(self.active_portfolio.tickers)
        else:
            self.refresher.stop()

    def _on_market_data(self, market_data: Dict[str, MarketData]):
        self.market_data = market_data

    def _reset(self):
        self.suggestion_result = None
        self.selected_index = 0
        self.linked_account = None
        self.performance_history = None
        self.user_added_assets = []
        self.diversification_suggestions = []
        self.tax_loss_suggestions = []
        self.advanced_analytics = None
        self.error = None
        if self.refresher is not None:
            self.refresher.stop()

    # ==================== BASE PORTFOLIO ====================

    def _with_purchase_prices(
        self,
        suggestion: PortfolioSuggestion,
        quotes: Dict[str, MarketData],
    ) -> PortfolioSuggestion:
        """Give every suggested asset a simulated purchase price near its quote."""

        def with_prices(details: PortfolioDetails) -> PortfolioDetails:
            assets = []
            for asset in details.portfolio:
                quote = quotes.get(asset.ticker)
                purchase_price = None
                if quote is not None:
                    purchase_price = quote.current_price * (
                        1 + (self.rng.random() - PURCHASE_PRICE_SKEW) * PURCHASE_PRICE_SPREAD
                    )
                assets.append(asset.model_copy(update={'purchase_price': purchase_price}))
            return details.model_copy(update={'portfolio': assets})

        return PortfolioSuggestion(
            primary=with_prices(suggestion.primary),
            alternatives=[with_prices(p) for p in suggestion.alternatives],
        )

    async def generate_suggestion(self, profile: UserProfile) -> Optional[PortfolioSuggestion]:
        """
        Request AI portfolio suggestions for a profile and make the primary active.

        Returns:
            The suggestion, or None on failure (see `error`)
        """
        self.is_loading = True
        self._reset()
        self.mode = "suggestion"
        self.user_profile = profile

        try:
            suggestion = await self.suggestion_client.suggest_portfolios(profile)
            tickers = unique_tickers(
                ticker for details in suggestion.all_portfolios for ticker in details.tickers
            )
            quotes = await self.market.fetch_market_data(tickers)

            self.suggestion_result = self._with_purchase_prices(suggestion, quotes)
            self.market_data = quotes
            self.selected_index = 0
            self.notifications.success('AI portfolio suggestions generated successfully!')
        except PortfolioError as e:
            logger.error(f"Error fetching portfolio suggestion: {e}")
            self.error = str(e) or "An unknown error occurred."
        finally:
            self.is_loading = False

        await self._recompute()
        return self.suggestion_result

    async def link_account(self, account: LinkedAccount) -> bool:
        """
        Switch to live mode on a linked brokerage account.

        Returns:
            True if the account is now the base portfolio
        """
        self.is_loading = True
        self._reset()

        try:
            if account.total_value <= 0:
                raise PortfolioError(f"Account {account.account_name} has no value")
            history = await self.history.fetch_performance_history()
        except PortfolioError as e:
            logger.error(f"Error linking account: {e}")
            self.error = LINK_FAILURE_MESSAGE
            self.is_loading = False
            await self._recompute()
            return False

        self.linked_account = account
        self.performance_history = history
        if self.user_profile is not None:
            self.user_profile = self.user_profile.model_copy(update={'amount': account.total_value})
        else:
            self.user_profile = UserProfile(
                amount=account.total_value,
                risk_level='Moderate',
                horizon=HORIZONS[2],
                goal=GOALS[0],
            )
        self.mode = "live"
        self.is_loading = False
        self.notifications.success('Brokerage account linked successfully!')

        await self._recompute()
        return True

    async def select_portfolio(self, index: int):
        """Make the primary (0) or an alternative (1, 2, ...) the base portfolio."""
        if self.suggestion_result is None:
            return
        if not 0 <= index < len(self.all_suggested_portfolios):
            logger.warning(f"Ignoring selection of unknown portfolio index {index}")
            return
        self.selected_index = index
        await self._recompute()

    # ==================== SANDBOX ====================

    async def add_asset(self, ticker: str, allocation: float) -> Optional[Asset]:
        """
        Add a user-chosen asset to the sandbox.

        Validation failures are reported before anything is fetched.

        Returns:
            The added asset, or None if it was rejected or could not be fetched
        """
        if self.active_portfolio is None:
            return None

        try:
            symbol = AllocationBlender.validate_addition(
                self.active_portfolio, self.user_added_assets, ticker, allocation
            )
        except SandboxValidationError as e:
            self.notifications.error(str(e))
            return None

        self.is_processing = True
        try:
            financials = await self.financials.fetch_asset_financials(symbol)
        except PortfolioError as e:
            self.notifications.error(str(e) or f"Could not fetch data for ticker {symbol}.")
            return None
        finally:
            self.is_processing = False

        asset = Asset(
            ticker=symbol,
            allocation=allocation,
            is_user_added=True,
            purchase_price=financials['market_data'].current_price,
            **financials,
        )
        self.user_added_assets = [*self.user_added_assets, asset]
        self.notifications.success(f"{symbol} added to your sandbox portfolio.")

        await self._recompute()
        return asset

    async def reset_sandbox(self):
        """Drop all user-added assets."""
        self.user_added_assets = []
        self.notifications.info('Sandbox has been reset to the original AI portfolio.')
        await self._recompute()

    async def optimize(self, goal: OptimizationGoal) -> bool:
        """
        Ask the AI to re-weight the sandbox portfolio and fold it into the base.

        The sandbox/base distinction is not preserved: every asset of the
        optimized portfolio becomes a regular (non user-added) holding.
        Portfolio metrics are recomputed from the optimized allocations
        instead of carrying over the pre-optimization sandbox metrics.

        Returns:
            True if the base portfolio was replaced
        """
        if self.active_portfolio is None or self.user_profile is None or not self.user_added_assets:
            return False

        active = self.active_portfolio
        self.is_processing = True
        try:
            optimized = await self.analytics_client.optimize_allocations(
                active.portfolio, goal, self.user_profile
            )
        except PortfolioError as e:
            self.notifications.error(str(e) or 'Optimization failed.')
            return False
        finally:
            self.is_processing = False

        assets = AllocationBlender.apply_optimized_allocations(active.portfolio, optimized)

        if self.mode == "suggestion" and self.suggestion_result is not None:
            base = self.all_suggested_portfolios[self.selected_index]
            updated = active.model_copy(update={
                'title': f"{base.title}{OPTIMIZED_TITLE_SUFFIX}",
                'portfolio': assets,
                'strategy': active.strategy.model_copy(
                    update={'portfolio_metrics': AllocationBlender.calculate_metrics(assets)}
                ),
            })
            portfolios = self.all_suggested_portfolios
            portfolios[self.selected_index] = updated
            self.suggestion_result = PortfolioSuggestion(
                primary=portfolios[0],
                alternatives=portfolios[1:],
            )
        elif self.mode == "live" and self.linked_account is not None:
            total_value = self.linked_account.total_value
            holdings = [
                Holding(
                    ticker=asset.ticker,
                    name=asset.name,
                    sector=asset.sector,
                    value=total_value * (asset.allocation / 100),
                    shares=0,
                    purchase_price=asset.purchase_price or 0,
                )
                for asset in assets
            ]
            self.linked_account = self.linked_account.model_copy(update={'holdings': holdings})

        self.user_added_assets = []
        self.notifications.success('Portfolio allocations have been optimized by AI!')
        await self._recompute()
        return True

    # ==================== AI ANALYSIS ====================

    async def suggest_diversifications(self) -> List[RecommendedStock]:
        portfolio = self.portfolio_with_market_data()
        if portfolio is None:
            return []

        self.diversification_suggestions = []
        try:
            result = await self.analytics_client.suggest_diversifications(portfolio.portfolio)
        except PortfolioError as e:
            self.notifications.error(str(e) or 'Could not fetch suggestions.')
            return []

        if result:
            self.diversification_suggestions = result
            self.notifications.success('Found diversification suggestions!')
        else:
            self.notifications.info('Portfolio is already well-diversified.')
        return result

    async def suggest_tax_loss_harvests(self) -> List[TaxLossSuggestion]:
        """Scan holdings priced below their purchase price for harvestable losses."""
        portfolio = self.portfolio_with_market_data()
        if portfolio is None:
            return []

        self.tax_loss_suggestions = []
        try:
            result = await self.analytics_client.suggest_tax_loss_harvests(portfolio.portfolio)
        except PortfolioError as e:
            self.notifications.error(str(e) or 'Could not fetch suggestions.')
            return []

        if result:
            self.tax_loss_suggestions = result
            self.notifications.success('Found tax-loss harvesting opportunities!')
        else:
            self.notifications.info('No significant tax-loss opportunities found.')
        return result

    async def fetch_advanced_analytics(self) -> Optional[AdvancedAnalytics]:
        """Value at Risk, stress scenarios and correlations for the active portfolio."""
        portfolio = self.portfolio_with_market_data()
        if portfolio is None or self.user_profile is None:
            return None

        try:
            self.advanced_analytics = await self.analytics_client.fetch_advanced_analytics(
                portfolio.portfolio, self.user_profile.amount
            )
        except PortfolioError as e:
            self.advanced_analytics = None
            self.notifications.error(str(e))
        return self.advanced_analytics

    # ==================== MARKET DATA ====================

    async def refresh_market_data(self):
        """Refresh quotes for the active portfolio once, keeping stale data on failure."""
        if self.active_portfolio is None:
            return
        if self.refresher is not None:
            await self.refresher.refresh()
            return
        try:
            self.market_data = await self.market.fetch_market_data(self.active_portfolio.tickers)
        except PortfolioError as e:
            logger.error(f"Failed to fetch market data: {e}")

    async def close(self):
        """Tear the session down: cancel the refresh job and stop the scheduler."""
        if self.refresher is not None:
            self.refresher.shutdown()
        logger.info("Sandbox session closed")
