"""
Allocation blending service for the portfolio sandbox.
Merges a base portfolio with user-added assets, rescales the base allocation
and re-derives the allocation-weighted portfolio metrics.
"""

import logging
import math
from typing import Dict, List, Optional, Sequence, Tuple

from models import (
    Asset,
    Benchmark,
    LinkedAccount,
    MarketData,
    OptimizedAllocation,
    PortfolioDetails,
    PortfolioMetrics,
    StrategyAnalysis,
)
from services.common import calculate_risk_score, normalize_ticker, weighted_average
from services.exceptions import SandboxValidationError

logger = logging.getLogger(__name__)


SANDBOX_TITLE_SUFFIX = " (Sandbox Mode)"
OPTIMIZED_TITLE_SUFFIX = " (Optimized)"
MAX_USER_ALLOCATION = 100.0

# Assumed fundamentals for holdings imported from a linked account
LIVE_DEFAULT_BETA = 1.0
LIVE_DEFAULT_EXPECTED_RETURN = 8.0
LIVE_DEFAULT_VOLATILITY = 15.0
LIVE_DEFAULT_RISK_SCORE = 5


class AllocationBlender:
    """
    Pure functions over portfolios. Nothing here performs I/O or mutates
    its inputs; callers re-invoke them whenever an input changes.
    """

    @staticmethod
    def calculate_metrics(assets: Sequence[Asset]) -> PortfolioMetrics:
        """
        Recompute aggregate metrics as allocation-weighted averages.

        Args:
            assets: Combined asset list

        Returns:
            PortfolioMetrics with expected return, volatility, weighted beta and risk score
        """
        weighted_beta = weighted_average(assets, lambda a: a.beta)
        return PortfolioMetrics(
            expected_return=weighted_average(assets, lambda a: a.expected_return),
            volatility=weighted_average(assets, lambda a: a.volatility),
            weighted_beta=weighted_beta,
            risk_score=calculate_risk_score(weighted_beta),
        )

    @staticmethod
    def blend(base: PortfolioDetails, user_added_assets: Sequence[Asset]) -> PortfolioDetails:
        """
        Combine a base portfolio with sandbox assets.

        The base allocations shrink proportionally to make room for the
        user-added total; user assets are appended in insertion order.
        Allocations that do not sum to ~100 are not rejected and simply
        produce skewed metrics.

        Args:
            base: AI-suggested or live-derived portfolio
            user_added_assets: Sandbox assets, each with allocation in (0, 100)

        Returns:
            A new PortfolioDetails; equal to `base` when there are no user assets
        """
        if not user_added_assets:
            return base.model_copy(deep=True)

        total_user_allocation = sum(asset.allocation for asset in user_added_assets)
        scale_factor = max(0.0, (100 - total_user_allocation) / 100)

        rescaled_base = [
            asset.model_copy(update={'allocation': asset.allocation * scale_factor}, deep=True)
            for asset in base.portfolio
        ]
        combined = rescaled_base + [asset.model_copy(deep=True) for asset in user_added_assets]
        logger.debug(
            f"Blending {len(user_added_assets)} user assets into '{base.title}' "
            f"(user total {total_user_allocation:.2f}%, scale {scale_factor:.4f})"
        )

        strategy = base.strategy.model_copy(
            update={'portfolio_metrics': AllocationBlender.calculate_metrics(combined)},
            deep=True,
        )

        return PortfolioDetails(
            title=f"{base.title}{SANDBOX_TITLE_SUFFIX}",
            portfolio=combined,
            strategy=strategy,
        )

    @staticmethod
    def validate_addition(
        active_portfolio: Optional[PortfolioDetails],
        user_added_assets: Sequence[Asset],
        ticker: str,
        allocation: float,
    ) -> str:
        """
        Check a sandbox addition before anything is fetched.

        Returns:
            The normalized ticker

        Raises:
            SandboxValidationError: empty ticker, allocation outside (0, 100),
                duplicate ticker, or user total reaching 100
        """
        symbol = normalize_ticker(ticker)
        if not symbol:
            raise SandboxValidationError("Ticker symbol cannot be empty.")

        if allocation is None or math.isnan(allocation) or allocation <= 0 or allocation >= 100:
            raise SandboxValidationError("Allocation must be between 1% and 99%.")

        if active_portfolio is not None and any(
            normalize_ticker(asset.ticker) == symbol for asset in active_portfolio.portfolio
        ):
            raise SandboxValidationError(f"Asset {symbol} is already in the portfolio.")

        total_user_allocation = sum(asset.allocation for asset in user_added_assets)
        if total_user_allocation + allocation >= MAX_USER_ALLOCATION:
            raise SandboxValidationError("Total user allocation cannot exceed 99%.")

        return symbol

    @staticmethod
    def apply_optimized_allocations(
        assets: Sequence[Asset],
        optimized: Sequence[OptimizedAllocation],
    ) -> List[Asset]:
        """
        Merge optimized allocations back into an asset list.

        Assets missing from the response keep their allocation. Every
        resulting asset is marked as not user-added: optimization folds
        the sandbox into the base portfolio.
        """
        allocation_map = {normalize_ticker(item.ticker): item.allocation for item in optimized}

        return [
            asset.model_copy(
                update={
                    'allocation': allocation_map.get(normalize_ticker(asset.ticker), asset.allocation),
                    'is_user_added': False,
                },
                deep=True,
            )
            for asset in assets
        ]

    @staticmethod
    def attach_market_data(
        portfolio: PortfolioDetails,
        market_data: Dict[str, MarketData],
    ) -> PortfolioDetails:
        """Return a copy of the portfolio whose assets carry the latest quotes."""
        return portfolio.model_copy(
            update={
                'portfolio': [
                    asset.model_copy(update={'market_data': market_data.get(asset.ticker)})
                    for asset in portfolio.portfolio
                ]
            },
            deep=True,
        )

    @staticmethod
    def assets_with_unrealized_loss(assets: Sequence[Asset]) -> List[Tuple[Asset, float]]:
        """
        Find assets trading below their purchase price.

        Returns:
            List of (asset, loss) where loss is negative and scaled by allocation weight
        """
        losses = []
        for asset in assets:
            gain = asset.unrealized_gain
            if gain is not None and asset.market_data.current_price < asset.purchase_price:
                losses.append((asset, gain))
        return losses

    @staticmethod
    def from_linked_account(account: LinkedAccount) -> PortfolioDetails:
        """
        Derive the live base portfolio from a linked brokerage account.
        Fundamentals are not known for live holdings, so market-average
        defaults are assumed.
        """
        assets = [
            Asset(
                ticker=holding.ticker,
                name=holding.name,
                sector=holding.sector,
                allocation=(holding.value / account.total_value) * 100 if account.total_value else 0.0,
                beta=LIVE_DEFAULT_BETA,
                expected_return=LIVE_DEFAULT_EXPECTED_RETURN,
                volatility=LIVE_DEFAULT_VOLATILITY,
                rationale=f"From linked account: {account.account_name}",
                purchase_price=holding.purchase_price,
            )
            for holding in account.holdings
        ]

        return PortfolioDetails(
            title=f"Live Portfolio ({account.account_name})",
            portfolio=assets,
            strategy=StrategyAnalysis(
                summary='This is an analysis of your currently held assets from your linked brokerage account.',
                conservative_measures='Review your live holdings for concentration risk and consider diversification.',
                market_outlook='Market conditions can affect your live holdings. Stay informed on relevant news.',
                portfolio_metrics=PortfolioMetrics(
                    expected_return=LIVE_DEFAULT_EXPECTED_RETURN,
                    volatility=LIVE_DEFAULT_VOLATILITY,
                    weighted_beta=LIVE_DEFAULT_BETA,
                    risk_score=LIVE_DEFAULT_RISK_SCORE,
                ),
                benchmarks=[Benchmark(name='S&P 500', expected_return=10, volatility=18)],
            ),
        )


def blend_portfolio(base: PortfolioDetails, user_added_assets: Sequence[Asset]) -> PortfolioDetails:
    """Module-level shortcut for AllocationBlender.blend."""
    return AllocationBlender.blend(base, user_added_assets)
