"""
Fallback rule engine: deterministic stock suggestions and projections used
whenever a network step fails. Pure functions — no I/O, no clock, no config.

Keyword matching
----------------
Category, then name, then brand are lower-cased and tested in that order.
Within one field the keyword table is scanned top to bottom and the first
keyword contained in the field wins; a later field is only consulted when the
earlier one matched nothing.

    _KEYWORD_TABLE order: electronics, gaming, fashion, shoes, clothing,
                          tech, home, dockers

No match → ``SPY, VTI`` with a balanced strategy.

Projection multipliers (12-month illustration)
----------------------------------------------
    conservative  × 1.07
    balanced      × 1.10
    aggressive    × 1.15

    projected_value   = amount × multiplier
    total_return      = projected_value − amount
    return_percentage = total_return / amount × 100

All three are rounded to 2 decimals. The explanation text's 10% figure is
illustrative only and never feeds the numeric projections.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from stockswap.models.recommendation import PortfolioProjection, StockSuggestion
from stockswap.taxonomy.strategy_taxonomy import RecommendationSource, StrategyTag


@dataclass(frozen=True)
class KeywordRule:
    """One row of the keyword table."""

    keyword: str
    tickers: tuple[str, ...]
    strategy_tag: StrategyTag


_KEYWORD_TABLE: tuple[KeywordRule, ...] = (
    KeywordRule("electronics", ("AAPL", "MSFT"),  StrategyTag.BALANCED),
    KeywordRule("gaming",      ("NVDA", "AMD"),   StrategyTag.AGGRESSIVE),
    KeywordRule("fashion",     ("NKE", "LULU"),   StrategyTag.BALANCED),
    KeywordRule("shoes",       ("NKE", "ADDYY"),  StrategyTag.BALANCED),
    KeywordRule("clothing",    ("NKE", "LULU"),   StrategyTag.BALANCED),
    KeywordRule("tech",        ("MSFT", "GOOGL"), StrategyTag.BALANCED),
    KeywordRule("home",        ("HD", "LOW"),     StrategyTag.CONSERVATIVE),
    KeywordRule("dockers",     ("VFC", "NKE"),    StrategyTag.BALANCED),
)

DEFAULT_TICKERS: tuple[str, ...] = ("SPY", "VTI")
DEFAULT_STRATEGY = StrategyTag.BALANCED

FALLBACK_MULTIPLIERS: dict[StrategyTag, float] = {
    StrategyTag.CONSERVATIVE: 1.07,
    StrategyTag.BALANCED:     1.10,
    StrategyTag.AGGRESSIVE:   1.15,
}

FALLBACK_TIME_PERIOD = "12 months"
ILLUSTRATIVE_GROWTH = 1.10


def match_keyword(
    category: Optional[str],
    name: Optional[str],
    brand: Optional[str],
) -> Optional[KeywordRule]:
    """Return the first matching keyword rule (category → name → brand), or ``None``."""
    for field_text in (category, name, brand):
        text = (field_text or "").lower()
        if not text:
            continue
        for rule in _KEYWORD_TABLE:
            if rule.keyword in text:
                return rule
    return None


def fallback_suggestion(
    category: Optional[str],
    name: Optional[str],
    brand: Optional[str],
    price: float,
) -> StockSuggestion:
    """Deterministic stock suggestion for a product.

    Args:
        category: Product category (any case).
        name: Product name (any case).
        brand: Optional brand (any case).
        price: Positive product price; only used in the advisory text.

    Returns:
        ``StockSuggestion`` with ``source=fallback`` and the rule's strategy.
    """
    rule = match_keyword(category, name, brand)
    illustrative = price * ILLUSTRATIVE_GROWTH

    if rule is None:
        return StockSuggestion(
            tickers=list(DEFAULT_TICKERS),
            strategy_tag=DEFAULT_STRATEGY,
            source=RecommendationSource.FALLBACK,
            educational_text=(
                "Learn about diversified index fund investing with broad market "
                "ETFs that track the S&P 500 and total stock market."
            ),
            explanation_text=(
                f"Consider investing your {_money(price)} in a diversified index fund "
                f"instead. Historical market returns suggest this could grow to "
                f"approximately {_money(illustrative)} in one year."
            ),
        )

    tickers = list(rule.tickers)
    return StockSuggestion(
        tickers=tickers,
        strategy_tag=rule.strategy_tag,
        source=RecommendationSource.FALLBACK,
        educational_text=(
            f"Learn about investing in {', '.join(tickers)} - companies in the "
            f"{rule.keyword} sector that could benefit from consumer trends."
        ),
        explanation_text=(
            f"Instead of spending {_money(price)} on this {rule.keyword} item, "
            f"consider investing in related companies like {' or '.join(tickers)} "
            f"for potential long-term growth - at a 10% annual return that could be "
            f"approximately {_money(illustrative)} in one year."
        ),
    )


def fallback_projection(strategy_tag: StrategyTag, amount: float) -> PortfolioProjection:
    """Project ``amount`` over 12 months with the fixed strategy multiplier."""
    tag = StrategyTag(strategy_tag)
    multiplier = FALLBACK_MULTIPLIERS[tag]
    projected = amount * multiplier
    total_return = projected - amount
    return PortfolioProjection(
        strategy_tag=tag,
        initial_amount=round(amount, 2),
        projected_value=round(projected, 2),
        total_return=round(total_return, 2),
        return_percentage=round(total_return / amount * 100, 2),
        time_period=FALLBACK_TIME_PERIOD,
        source=RecommendationSource.FALLBACK,
    )


def _money(amount: float) -> str:
    return f"${amount:,.2f}"
