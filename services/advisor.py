"""
AI advisor service: request/response wrappers around the LLM completion API.
Each request sends a natural-language prompt plus a JSON schema generated
from the pydantic models, and validates the returned document against it.
Failures are raised as AdvisorError and never retried.
"""

import json
import logging
from typing import Any, List, Optional, Sequence, Type, TypeVar

from pydantic import ValidationError

from config import get_settings
from llm_engine import LLMClient
from models import (
    AdvancedAnalytics,
    Asset,
    OptimizationGoal,
    OptimizedAllocation,
    PortfolioSuggestion,
    RecommendedStock,
    TaxLossSuggestion,
    UserProfile,
)
from models.base import CamelModel
from prompts import render_prompt
from services.allocation import AllocationBlender
from services.common import normalize_ticker
from services.exceptions import AdvisorError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=CamelModel)


MIN_ALTERNATIVES = 2
MAX_DIVERSIFICATION_SUGGESTIONS = 3
MAX_TAX_LOSS_SUGGESTIONS = 3
ALLOCATION_TOLERANCE = 1.0

STRESS_SCENARIOS = [
    "2008 Financial Crisis",
    "COVID-19 Crash (March 2020)",
    "Sudden 3% Inflation Spike",
]

GOAL_DESCRIPTIONS = {
    OptimizationGoal.MAXIMIZE_RETURN: "maximize the expected return for a similar level of overall portfolio risk (volatility).",
    OptimizationGoal.MINIMIZE_RISK: "minimize the overall portfolio risk (volatility) while targeting a similar expected return.",
}


# JSON object mode needs an object at the top level, so lists are wrapped
class DiversificationResponse(CamelModel):
    recommendations: List[RecommendedStock]


class TaxLossResponse(CamelModel):
    suggestions: List[TaxLossSuggestion]


class OptimizationResponse(CamelModel):
    allocations: List[OptimizedAllocation]


def schema_for(model: Type[CamelModel]) -> str:
    """Render a model's JSON schema (camelCase names) for inclusion in a prompt."""
    return json.dumps(model.model_json_schema(by_alias=True), indent=2)


def _strip_code_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


def parse_json_document(text: str) -> Any:
    """
    Parse the model output as JSON.

    Raises:
        AdvisorError: If the text is not valid JSON
    """
    try:
        return json.loads(_strip_code_fences(text or ""))
    except json.JSONDecodeError as e:
        raise AdvisorError(f"The AI model returned invalid JSON: {e}") from e


def format_allocations(assets: Sequence[Asset], labelled: bool = False) -> str:
    """Describe a portfolio as 'VTI (40.0%), BND (60.0%)', or 'VTI: 40.0%, ...' when labelled."""
    if labelled:
        return ", ".join(f"{a.ticker}: {a.allocation:.1f}%" for a in assets)
    return ", ".join(f"{a.ticker} ({a.allocation:.1f}%)" for a in assets)


class _AdvisorClient:
    """Shared request plumbing for the advisor clients."""

    def __init__(self, llm: LLMClient):
        self.llm = llm

    async def _complete(self, prompt: str, failure_message: str, llm: Optional[LLMClient] = None) -> Any:
        """Send the prompt and parse the JSON answer."""
        try:
            text = await (llm or self.llm).ainvoke_json(prompt)
        except Exception as e:
            logger.error(f"{failure_message} ({e})")
            raise AdvisorError(failure_message) from e

        try:
            return parse_json_document(text)
        except AdvisorError as e:
            logger.error(f"{failure_message} ({e})")
            raise AdvisorError(failure_message) from e

    @staticmethod
    def _validate(model: Type[ModelT], data: Any, failure_message: str) -> ModelT:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.error(f"{failure_message} Schema errors: {e.error_count()}")
            raise AdvisorError(failure_message) from e


class PortfolioSuggestionClient(_AdvisorClient):
    """Requests a primary portfolio plus two alternatives for a user profile."""

    FAILURE_MESSAGE = (
        "Failed to generate a portfolio. The AI model may have returned an invalid structure. "
        "Please try again."
    )
    INCOMPLETE_MESSAGE = "API response is missing primary or sufficient alternative portfolios."

    @classmethod
    def from_settings(cls) -> "PortfolioSuggestionClient":
        settings = get_settings()
        return cls(LLMClient(temperature=settings.suggestion_temperature))

    async def suggest_portfolios(self, profile: UserProfile) -> PortfolioSuggestion:
        """
        Generate portfolio suggestions.

        Args:
            profile: Amount, risk tolerance, horizon and goal

        Returns:
            PortfolioSuggestion with a primary portfolio and at least two alternatives

        Raises:
            AdvisorError: On transport failure, invalid JSON, or an incomplete document
        """
        prompt = render_prompt(
            "portfolio_suggestion.txt",
            amount=f"{profile.amount:g}",
            risk_level=profile.risk_level,
            horizon=profile.horizon,
            goal=profile.goal,
            schema=schema_for(PortfolioSuggestion),
        )

        logger.info(f"Requesting portfolio suggestion: {profile.risk_level}, {profile.horizon}, {profile.goal}")
        data = await self._complete(prompt, self.FAILURE_MESSAGE)

        if (
            not isinstance(data, dict)
            or not data.get("primary")
            or not isinstance(data.get("alternatives"), list)
            or len(data["alternatives"]) < MIN_ALTERNATIVES
        ):
            logger.error(self.INCOMPLETE_MESSAGE)
            raise AdvisorError(self.INCOMPLETE_MESSAGE)

        suggestion = self._validate(PortfolioSuggestion, data, self.FAILURE_MESSAGE)
        logger.info(f"Received suggestion '{suggestion.primary.title}' with {len(suggestion.alternatives)} alternatives")
        return suggestion


class AnalyticsClient(_AdvisorClient):
    """
    Diversification, risk analytics, tax-loss harvesting and allocation
    optimization requests.
    """

    def __init__(self, llm: LLMClient, fast_llm: Optional[LLMClient] = None):
        super().__init__(llm)
        self.fast_llm = fast_llm or llm

    @classmethod
    def from_settings(cls) -> "AnalyticsClient":
        settings = get_settings()
        llm = LLMClient(temperature=settings.analysis_temperature)
        fast_llm = None
        if settings.llm_mode == "cloud" and settings.openai_fast_model not in (None, settings.openai_model):
            fast_llm = LLMClient(model_name=settings.fast_model, temperature=settings.analysis_temperature)
        return cls(llm, fast_llm)

    async def suggest_diversifications(self, assets: Sequence[Asset]) -> List[RecommendedStock]:
        """
        Ask for exactly three assets that would improve diversification.
        Suggestions already held are dropped.
        """
        failure = "Failed to get diversification suggestions from the AI."
        prompt = render_prompt(
            "diversification.txt",
            portfolio=format_allocations(assets),
            schema=schema_for(DiversificationResponse),
        )

        data = await self._complete(prompt, failure, llm=self.fast_llm)
        response = self._validate(DiversificationResponse, data, failure)

        held = {normalize_ticker(a.ticker) for a in assets}
        recommendations = [
            r for r in response.recommendations if normalize_ticker(r.ticker) not in held
        ]
        logger.info(f"Received {len(recommendations)} diversification suggestions")
        return recommendations[:MAX_DIVERSIFICATION_SUGGESTIONS]

    async def fetch_advanced_analytics(self, assets: Sequence[Asset], total_value: float) -> AdvancedAnalytics:
        """
        Value at Risk, three stress scenarios and a correlation matrix.

        Raises:
            AdvisorError: If the analysis is unavailable or incomplete
        """
        failure = "Failed to get advanced analytics from the AI."
        tickers = [a.ticker for a in assets]
        prompt = render_prompt(
            "advanced_analytics.txt",
            total_value=f"{total_value:,.2f}",
            portfolio=format_allocations(assets, labelled=True),
            scenarios=", ".join(f"'{s}'" for s in STRESS_SCENARIOS),
            tickers=", ".join(tickers),
            schema=schema_for(AdvancedAnalytics),
        )

        data = await self._complete(prompt, failure)
        analytics = self._validate(AdvancedAnalytics, data, failure)

        if len(analytics.scenario_analysis) < len(STRESS_SCENARIOS):
            logger.error(f"{failure} Only {len(analytics.scenario_analysis)} scenarios returned")
            raise AdvisorError(failure)

        return analytics.model_copy(
            update={'scenario_analysis': analytics.scenario_analysis[:len(STRESS_SCENARIOS)]}
        )

    async def suggest_tax_loss_harvests(self, assets: Sequence[Asset]) -> List[TaxLossSuggestion]:
        """
        Suggest up to three tax-loss harvesting swaps.
        The service is only called when at least one asset shows an unrealized loss.
        """
        losses = AllocationBlender.assets_with_unrealized_loss(assets)
        if not losses:
            logger.info("No unrealized losses; skipping tax-loss harvesting request")
            return []

        failure = "Failed to get tax-loss harvesting suggestions."
        prompt = render_prompt(
            "tax_loss_harvesting.txt",
            losses=", ".join(
                f"{asset.ticker} (Unrealized Loss: ${abs(loss):.2f})" for asset, loss in losses
            ),
            schema=schema_for(TaxLossResponse),
        )

        data = await self._complete(prompt, failure, llm=self.fast_llm)
        response = self._validate(TaxLossResponse, data, failure)
        return response.suggestions[:MAX_TAX_LOSS_SUGGESTIONS]

    async def optimize_allocations(
        self,
        assets: Sequence[Asset],
        goal: OptimizationGoal,
        profile: UserProfile,
    ) -> List[OptimizedAllocation]:
        """
        Re-weight the given assets toward minimum risk or maximum return.

        Allocations for tickers outside the portfolio are discarded; if the
        remainder deviates from 100 by more than one point it is normalized.
        """
        failure = "Failed to get portfolio optimization from the AI."
        goal = OptimizationGoal(goal)
        prompt = render_prompt(
            "optimization.txt",
            risk_level=profile.risk_level,
            horizon=profile.horizon,
            goal=profile.goal,
            portfolio=format_allocations(assets),
            goal_description=GOAL_DESCRIPTIONS[goal],
            schema=schema_for(OptimizationResponse),
        )

        data = await self._complete(prompt, failure)
        response = self._validate(OptimizationResponse, data, failure)

        held = {normalize_ticker(a.ticker) for a in assets}
        allocations = [a for a in response.allocations if normalize_ticker(a.ticker) in held]
        return normalize_allocations(allocations)


def normalize_allocations(allocations: Sequence[OptimizedAllocation]) -> List[OptimizedAllocation]:
    """
    Scale allocations to sum to 100 when they are off by more than one point.

    Raises:
        AdvisorError: If there is nothing to normalize
    """
    total = sum(a.allocation for a in allocations)
    if not allocations or total <= 0:
        raise AdvisorError("Failed to get portfolio optimization from the AI.")

    if abs(total - 100) > ALLOCATION_TOLERANCE:
        logger.warning(f"Optimized allocations sum to {total:.2f}; normalizing to 100")
        return [
            a.model_copy(update={'allocation': (a.allocation / total) * 100})
            for a in allocations
        ]
    return list(allocations)

