"""Tests for the orchestrator's pure helpers: live projections and merging."""

from __future__ import annotations

import pytest

from stockswap.models.portfolio import SimulationResult
from stockswap.models.product import ProductDescriptor
from stockswap.models.recommendation import StockSuggestion
from stockswap.pipeline.orchestrator import live_projection, match_results, merge_recommendation
from stockswap.taxonomy.strategy_taxonomy import (
    OverallSource,
    RecommendationSource,
    StrategyTag,
)

HEADPHONES = ProductDescriptor(name="Headphones", category="electronics", price=200.0)
LIVE_SUGGESTION = StockSuggestion(
    tickers=["AAPL", "SONY"],
    educational_text="Audio companies benefit from premium accessories.",
    source=RecommendationSource.LIVE,
)


def _result(tag: StrategyTag, value: float, **kwargs) -> SimulationResult:
    return SimulationResult(strategy_tag=tag, projected_value=value, months_simulated=6, **kwargs)


class TestLiveProjection:
    def test_computes_return_when_upstream_omits_it(self):
        projection = live_projection(StrategyTag.BALANCED, 200.0, _result(StrategyTag.BALANCED, 210.0))

        assert projection.total_return == pytest.approx(10.0)
        assert projection.return_percentage == pytest.approx(5.0)
        assert projection.time_period == "6 months"
        assert projection.source == RecommendationSource.LIVE

    def test_prefers_upstream_percentage(self):
        result = _result(StrategyTag.BALANCED, 210.0, percentage_return=4.9)
        assert live_projection(StrategyTag.BALANCED, 200.0, result).return_percentage == 4.9

    def test_portfolio_id_fallback(self):
        result = _result(StrategyTag.BALANCED, 210.0)
        assert live_projection(StrategyTag.BALANCED, 200.0, result, "pf-9").portfolio_id == "pf-9"

        echoed = _result(StrategyTag.BALANCED, 210.0, portfolio_id="pf-1")
        assert live_projection(StrategyTag.BALANCED, 200.0, echoed, "pf-9").portfolio_id == "pf-1"


class TestMatchResults:
    def test_echoed_id_beats_earlier_same_strategy_result(self):
        stale = _result(StrategyTag.CONSERVATIVE, 1020.0, portfolio_id="pf-old")
        fresh = _result(StrategyTag.CONSERVATIVE, 102.0, portfolio_id="pf-new")

        matched = match_results([stale, fresh], {StrategyTag.CONSERVATIVE: "pf-new"})

        assert matched == {StrategyTag.CONSERVATIVE: fresh}

    def test_results_without_ids_match_first_by_strategy(self):
        first = _result(StrategyTag.BALANCED, 104.0)
        second = _result(StrategyTag.BALANCED, 999.0)

        matched = match_results([first, second], {StrategyTag.BALANCED: "pf-1"})

        assert matched[StrategyTag.BALANCED] is first

    def test_unprepared_strategies_are_skipped(self):
        result = _result(StrategyTag.AGGRESSIVE, 106.0, portfolio_id="pf-3")
        assert match_results([result], {StrategyTag.BALANCED: "pf-1"}) == {}


class TestMergeRecommendation:
    def test_all_live(self):
        results = {tag: _result(tag, 220.0) for tag in StrategyTag}

        rec = merge_recommendation(HEADPHONES, results, LIVE_SUGGESTION)

        assert rec.overall_source == OverallSource.LIVE
        assert rec.tickers == ["AAPL", "SONY"]
        assert rec.explanation_text.startswith("Instead of spending $200.00 on this item")

    def test_partial_results_are_mixed_and_ordered(self):
        results = {StrategyTag.AGGRESSIVE: _result(StrategyTag.AGGRESSIVE, 230.0)}

        rec = merge_recommendation(HEADPHONES, results, LIVE_SUGGESTION)

        assert rec.overall_source == OverallSource.MIXED
        assert [p.strategy_tag for p in rec.portfolios] == list(StrategyTag)
        assert [p.source for p in rec.portfolios] == [
            RecommendationSource.FALLBACK, RecommendationSource.FALLBACK, RecommendationSource.LIVE,
        ]
        assert rec.projection_for(StrategyTag.CONSERVATIVE).projected_value == pytest.approx(214.0)

    def test_no_results_uses_rule_explanation(self):
        rec = merge_recommendation(HEADPHONES, {}, LIVE_SUGGESTION)

        assert rec.overall_source == OverallSource.FALLBACK
        assert rec.suggestion_source == RecommendationSource.LIVE
        assert "electronics item" in rec.explanation_text

    def test_suggestion_explanation_wins_when_all_fallback(self):
        suggestion = LIVE_SUGGESTION.model_copy(update={"explanation_text": "Custom advice."})
        rec = merge_recommendation(HEADPHONES, {}, suggestion)
        assert rec.explanation_text == "Custom advice."
