"""
Tests for SavingsTracker.

What we test
------------
1. track() records a purchase and returns the running total.
2. History is capped at ``history_limit``; the total is not trimmed with it.
3. Products without a positive price are refused with ValueError.
4. summary() / history() read without writing.
"""

from __future__ import annotations

import pytest

from stockswap.config import SavingsConfig
from stockswap.models.product import ProductDescriptor
from stockswap.savings.tracker import SavingsTracker


@pytest.fixture
def tracker(app_config) -> SavingsTracker:
    return SavingsTracker(app_config)


class TestTrack:
    def test_first_purchase(self, tracker):
        summary = tracker.track(ProductDescriptor(name="Headphones", category="electronics", price=199.99))

        assert summary.total_savings == pytest.approx(199.99)
        assert summary.purchase_count == 1
        assert summary.last_purchase.name == "Headphones"
        assert summary.last_purchase.purchase_id is not None

    def test_mapping_with_string_price(self, tracker):
        summary = tracker.track({"name": "Lamp", "category": "home", "price": "$1,250.50"})
        assert summary.total_savings == pytest.approx(1250.50)
        assert summary.last_purchase.brand is None

    def test_totals_accumulate(self, tracker):
        tracker.track({"name": "A", "category": "x", "price": 10})
        summary = tracker.track({"name": "B", "category": "x", "price": 15.25})
        assert summary.total_savings == pytest.approx(25.25)
        assert summary.purchase_count == 2

    @pytest.mark.parametrize("price", [None, 0, -3, "free"])
    def test_non_positive_price_is_refused(self, tracker, price):
        with pytest.raises(ValueError):
            tracker.track({"name": "A", "category": "x", "price": price})
        assert tracker.summary().purchase_count == 0


class TestHistoryLimit:
    def test_default_keeps_fifty(self, tracker):
        for i in range(55):
            tracker.track({"name": f"item-{i}", "category": "x", "price": 1.0})

        summary = tracker.summary()
        assert summary.purchase_count == 50
        assert summary.total_savings == pytest.approx(55.0)

    def test_history_is_newest_first(self, app_config):
        config = app_config.model_copy(update={"savings": SavingsConfig(history_limit=3)})
        tracker = SavingsTracker(config)
        for i in range(5):
            tracker.track({"name": f"item-{i}", "category": "x", "price": 2.0})

        assert [p.name for p in tracker.history()] == ["item-4", "item-3", "item-2"]
        assert tracker.summary().total_savings == pytest.approx(10.0)


class TestSummary:
    def test_empty_database(self, tracker):
        summary = tracker.summary()
        assert summary.total_savings == 0.0
        assert summary.purchase_count == 0
        assert summary.last_purchase is None
        assert tracker.history() == []
