"""Tests for product, session and recommendation models."""

from __future__ import annotations

import math

import pytest
from pydantic import ValidationError

from stockswap.models.product import (
    DEFAULT_CATEGORY,
    DEFAULT_NAME,
    ProductDescriptor,
    clean_descriptor,
    parse_price,
)
from stockswap.models.recommendation import StockSuggestion
from stockswap.models.session import Credentials
from stockswap.taxonomy.strategy_taxonomy import RecommendationSource


# ── ProductDescriptor ─────────────────────────────────────────────────────────

class TestProductDescriptor:
    def test_valid(self):
        product = ProductDescriptor(name="Mug", category="home", price=12.5)
        assert product.brand is None

    @pytest.mark.parametrize("price", [0.0, -1.0, math.nan, math.inf])
    def test_price_must_be_positive_and_finite(self, price):
        with pytest.raises(ValidationError):
            ProductDescriptor(name="Mug", category="home", price=price)

    def test_frozen(self):
        product = ProductDescriptor(name="Mug", category="home", price=12.5)
        with pytest.raises(ValidationError):
            product.price = 1.0


class TestParsePrice:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            (19.99, 19.99),
            (20, 20.0),
            ("$1,299.99", 1299.99),
            ("  42 USD ", 42.0),
            ("-5", -5.0),
        ],
    )
    def test_usable_values(self, raw, expected):
        assert parse_price(raw) == pytest.approx(expected)

    @pytest.mark.parametrize("raw", [None, True, "free", "", [10], math.nan, "inf"])
    def test_unusable_values(self, raw):
        assert parse_price(raw) is None


class TestCleanDescriptor:
    def test_passes_through_valid_descriptor(self):
        product = ProductDescriptor(name="Mug", category="home", price=12.5)
        assert clean_descriptor(product, 50.0) is product

    def test_string_price_is_parsed(self):
        product = clean_descriptor(
            {"name": " Laptop ", "category": "electronics", "brand": "", "price": "$899.00"},
            50.0,
        )
        assert product.name == "Laptop"
        assert product.brand is None
        assert product.price == 899.0

    @pytest.mark.parametrize("price", [None, 0, -10, "n/a", math.nan])
    def test_bad_price_uses_default(self, price):
        product = clean_descriptor({"name": "Mug", "category": "home", "price": price}, 50.0)
        assert product.price == 50.0

    @pytest.mark.parametrize("raw", [None, {}, "not a mapping"])
    def test_garbage_still_yields_descriptor(self, raw):
        product = clean_descriptor(raw, 50.0)
        assert product.name == DEFAULT_NAME
        assert product.category == DEFAULT_CATEGORY
        assert product.price == 50.0


# ── Credentials / suggestions ─────────────────────────────────────────────────

class TestCredentials:
    def test_usable_needs_both_halves(self):
        assert not Credentials().is_usable
        assert not Credentials(token="t").is_usable
        assert not Credentials(account_id="a").is_usable
        assert Credentials(token="t", account_id="a").is_usable

    def test_repr_hides_token(self):
        text = repr(Credentials(token="super-secret", account_id="acct-1"))
        assert "super-secret" not in text
        assert "acct-1" in text


class TestStockSuggestion:
    def test_tickers_are_normalised(self):
        suggestion = StockSuggestion(
            tickers=[" nvda", "amd "], educational_text="x", source=RecommendationSource.LIVE
        )
        assert suggestion.tickers == ["NVDA", "AMD"]

    def test_ticker_count_bounds(self):
        with pytest.raises(ValidationError):
            StockSuggestion(tickers=[], educational_text="x", source=RecommendationSource.LIVE)
        with pytest.raises(ValidationError):
            StockSuggestion(
                tickers=["A", "B", "C", "D"], educational_text="x",
                source=RecommendationSource.LIVE,
            )
