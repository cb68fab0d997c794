"""
Recommendation output models.

``StockSuggestion`` is produced either by the text-generation client or by
the fallback rule engine — callers cannot (and need not) tell them apart
except through ``source``.

``PortfolioProjection`` is one strategy's "what if you invested instead"
figure; ``Recommendation`` is the complete, immutable answer the orchestrator
returns for one product.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from stockswap.models.product import ProductDescriptor
from stockswap.taxonomy.strategy_taxonomy import (
    OverallSource,
    RecommendationSource,
    StrategyTag,
)


class StockSuggestion(BaseModel):
    """Ticker symbols plus a short educational blurb.

    Attributes:
        tickers: 1–3 uppercase ticker symbols, in suggestion order.
        educational_text: Beginner-level explanation of the pick.
        source: ``live`` if the tickers came from text generation.
        strategy_tag: Strategy the rule table associates with the pick
            (fallback suggestions only).
        explanation_text: Advisory "instead of spending" sentence
            (fallback suggestions only).
    """

    model_config = ConfigDict(frozen=True)

    tickers: list[str] = Field(min_length=1, max_length=3)
    educational_text: str
    source: RecommendationSource
    strategy_tag: Optional[StrategyTag] = None
    explanation_text: Optional[str] = None

    @field_validator("tickers")
    @classmethod
    def validate_tickers(cls, v: list[str]) -> list[str]:
        return [t.strip().upper() for t in v]


class PortfolioProjection(BaseModel):
    """Projected growth of the product's price under one strategy."""

    model_config = ConfigDict(frozen=True)

    strategy_tag: StrategyTag
    initial_amount: float
    projected_value: float
    total_return: float
    return_percentage: float
    time_period: str
    source: RecommendationSource
    growth_trend: Optional[list[float]] = None
    portfolio_id: Optional[str] = None


class Recommendation(BaseModel):
    """Complete "invest instead of buy" recommendation for one product.

    Always structurally complete: three projections (conservative, balanced,
    aggressive, in that order), at least one ticker, and both texts.
    """

    model_config = ConfigDict(frozen=True)

    product: ProductDescriptor
    tickers: list[str] = Field(min_length=1, max_length=3)
    portfolios: list[PortfolioProjection] = Field(min_length=3, max_length=3)
    educational_text: str
    explanation_text: str
    overall_source: OverallSource
    suggestion_source: RecommendationSource

    def projection_for(self, tag: StrategyTag) -> PortfolioProjection:
        """Return the projection for ``tag``."""
        for projection in self.portfolios:
            if projection.strategy_tag == tag:
                return projection
        raise KeyError(tag)
