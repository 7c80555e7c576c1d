import json

import pytest

from models import Holding, LinkedAccount, OptimizationGoal, UserProfile, HORIZONS
from services.allocation import OPTIMIZED_TITLE_SUFFIX, SANDBOX_TITLE_SUFFIX
from services.advisor import PortfolioSuggestionClient
from services.sandbox import LINK_FAILURE_MESSAGE
from tests.conftest import make_session


@pytest.fixture
def profile():
    return UserProfile(amount=25000, risk_level="Moderate")


@pytest.fixture
def account():
    return LinkedAccount(
        account_name="Brokerage",
        total_value=40000,
        holdings=[
            Holding(ticker="AAPL", name="Apple", sector="Technology", shares=50, value=10000, purchase_price=180),
            Holding(ticker="VTI", name="Total Market", sector="Broad Market", shares=100, value=30000, purchase_price=220),
        ],
    )


def optimization_json(allocations):
    return json.dumps({"allocations": [{"ticker": t, "allocation": a} for t, a in allocations.items()]})


async def test_generate_suggestion_activates_primary(profile):
    session = make_session()

    suggestion = await session.generate_suggestion(profile)

    assert suggestion is not None
    assert session.active_portfolio == session.base_portfolio == suggestion.primary
    assert session.error is None
    assert session.is_loading is False
    assert set(session.market_data) == {"VTI", "BND", "VXUS", "QQQ", "NVDA", "SMH"}
    for details in suggestion.all_portfolios:
        for asset in details.portfolio:
            current = session.market_data[asset.ticker].current_price
            assert current * 0.96 <= asset.purchase_price < current * 1.16
    assert session.notifications.latest().message == "AI portfolio suggestions generated successfully!"


async def test_generate_suggestion_failure_sets_error(profile):
    session = make_session(suggestion_responses=["{ broken"])

    assert await session.generate_suggestion(profile) is None

    assert session.error == PortfolioSuggestionClient.FAILURE_MESSAGE
    assert session.active_portfolio is None
    assert session.is_loading is False


async def test_select_alternative_portfolio(profile):
    session = make_session()
    await session.generate_suggestion(profile)

    await session.select_portfolio(2)
    assert session.active_portfolio.title == "Aggressive Growth Alternative"

    await session.select_portfolio(7)
    assert session.selected_index == 2


async def test_add_asset_blends_into_active_portfolio(profile):
    session = make_session()
    await session.generate_suggestion(profile)

    asset = await session.add_asset(" nvda ", 20)

    assert asset.ticker == "NVDA"
    assert asset.is_user_added is True
    assert asset.purchase_price == asset.market_data.current_price
    assert session.is_sandbox_mode
    assert session.active_portfolio.title.endswith(SANDBOX_TITLE_SUFFIX)
    assert session.active_portfolio.tickers == ["VTI", "BND", "VXUS", "NVDA"]
    assert session.active_portfolio.total_allocation == pytest.approx(100)
    assert session.notifications.latest().message == "NVDA added to your sandbox portfolio."


async def test_add_asset_validation_error_becomes_notification(profile):
    session = make_session()
    await session.generate_suggestion(profile)

    assert await session.add_asset("vti", 10) is None
    latest = session.notifications.latest()
    assert latest.level == "error"
    assert latest.message == "Asset VTI is already in the portfolio."
    assert not session.is_sandbox_mode


async def test_add_asset_rejects_user_total_of_100(profile):
    session = make_session()
    await session.generate_suggestion(profile)
    await session.add_asset("GLD", 60)

    assert await session.add_asset("SLV", 40) is None
    assert session.notifications.latest().message == "Total user allocation cannot exceed 99%."
    assert await session.add_asset("SLV", 39) is not None


async def test_reset_sandbox_restores_base(profile):
    session = make_session()
    await session.generate_suggestion(profile)
    await session.add_asset("GLD", 10)

    await session.reset_sandbox()

    assert session.active_portfolio == session.base_portfolio
    assert session.notifications.latest().level == "info"


async def test_optimize_folds_sandbox_into_selected_portfolio(profile):
    session = make_session(analytics_responses=[
        optimization_json({"VTI": 40, "BND": 30, "VXUS": 10, "NVDA": 20}),
    ])
    await session.generate_suggestion(profile)
    await session.add_asset("NVDA", 20)

    assert await session.optimize(OptimizationGoal.MAXIMIZE_RETURN) is True

    primary = session.suggestion_result.primary
    assert primary.title == "Balanced Growth Portfolio (Primary)" + OPTIMIZED_TITLE_SUFFIX
    assert [a.allocation for a in primary.portfolio] == pytest.approx([40, 30, 10, 20])
    assert all(a.is_user_added is False for a in primary.portfolio)
    assert session.user_added_assets == []
    assert session.active_portfolio == primary
    nvda = primary.portfolio[3]
    expected_beta = 0.9 * 0.8 + nvda.beta * 0.2
    assert primary.strategy.portfolio_metrics.weighted_beta == pytest.approx(expected_beta)


async def test_optimize_failure_keeps_sandbox(profile):
    session = make_session(analytics_responses=["nope"])
    await session.generate_suggestion(profile)
    await session.add_asset("NVDA", 20)

    assert await session.optimize(OptimizationGoal.MINIMIZE_RISK) is False
    assert session.is_sandbox_mode
    assert session.notifications.latest().message == "Failed to get portfolio optimization from the AI."


async def test_link_account_switches_to_live_mode(account):
    session = make_session()

    assert await session.link_account(account) is True

    assert session.mode == "live"
    assert session.active_portfolio.title == "Live Portfolio (Brokerage)"
    assert [a.allocation for a in session.active_portfolio.portfolio] == pytest.approx([25, 75])
    assert len(session.performance_history) == 181
    assert session.user_profile.amount == 40000
    assert session.user_profile.horizon == HORIZONS[2]
    assert session.suggestion_result is None


async def test_link_account_keeps_existing_profile_criteria(profile, account):
    session = make_session()
    await session.generate_suggestion(profile.model_copy(update={'risk_level': 'Aggressive'}))

    await session.link_account(account)

    assert session.user_profile.risk_level == "Aggressive"
    assert session.user_profile.amount == 40000


async def test_link_account_failure(account):
    session = make_session()

    ok = await session.link_account(account.model_copy(update={'total_value': 0}))

    assert ok is False
    assert session.error == LINK_FAILURE_MESSAGE
    assert session.mode == "suggestion"
    assert session.active_portfolio is None


async def test_optimize_in_live_mode_rewrites_holdings(account):
    session = make_session(analytics_responses=[optimization_json({"AAPL": 20, "VTI": 60, "GLD": 20})])
    await session.link_account(account)
    await session.add_asset("GLD", 20)

    assert await session.optimize(OptimizationGoal.MINIMIZE_RISK) is True

    holdings = {h.ticker: h.value for h in session.linked_account.holdings}
    assert holdings == pytest.approx({"AAPL": 8000, "VTI": 24000, "GLD": 8000})
    assert session.active_portfolio.tickers == ["AAPL", "VTI", "GLD"]


async def test_diversification_notifications(profile):
    session = make_session(analytics_responses=[
        json.dumps({"recommendations": [{"ticker": "GLD", "name": "Gold", "rationale": "Hedge"}]}),
        json.dumps({"recommendations": []}),
    ])
    await session.generate_suggestion(profile)

    result = await session.suggest_diversifications()
    assert [r.ticker for r in result] == ["GLD"]
    assert session.notifications.latest().message == "Found diversification suggestions!"

    assert await session.suggest_diversifications() == []
    assert session.notifications.latest().message == "Portfolio is already well-diversified."


async def test_analysis_errors_become_notifications(profile):
    session = make_session(analytics_responses=["not json"])
    await session.generate_suggestion(profile)

    assert await session.fetch_advanced_analytics() is None
    latest = session.notifications.latest()
    assert latest.level == "error"
    assert latest.message == "Failed to get advanced analytics from the AI."


async def test_auto_refresh_follows_active_portfolio(profile):
    session = make_session(auto_refresh=True)
    try:
        await session.generate_suggestion(profile)
        assert session.refresher.is_active
        assert session.refresher.tickers == ["VTI", "BND", "VXUS"]

        await session.add_asset("NVDA", 10)
        assert session.refresher.tickers == ["VTI", "BND", "VXUS", "NVDA"]
        assert "NVDA" in session.market_data
    finally:
        await session.close()

    assert not session.refresher.is_active


async def test_manual_refresh_without_scheduler(profile):
    session = make_session()
    await session.generate_suggestion(profile)
    before = session.market_data["VTI"].current_price

    await session.refresh_market_data()

    after = session.market_data["VTI"]
    assert after.current_price - after.price_change == pytest.approx(before)
