"""
Stock suggestions from the text-generation API, with validation and fallback.

``suggest_stocks()`` never raises. Per request:

  1. Ask for 2–3 tickers (``max_attempts`` tries, ``retry_backoff_s`` apart).
     Each reply goes through the configured rejection rules and the ticker
     tokenizer in ``recommendations.ticker_parser``.
  2. On a valid reply, ask for a one-to-two sentence educational blurb. Any
     failure there silently becomes a templated sentence.
  3. If every attempt fails (or no API key is configured, or the request is
     cancelled), return the Fallback Rule Engine's suggestion. That is a
     normal outcome with ``source = fallback``, not an error.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from stockswap.clients.textgen_client import TextGenerationClient
from stockswap.config import TextGenConfig
from stockswap.errors import StockSwapError
from stockswap.models.product import ProductDescriptor
from stockswap.models.recommendation import StockSuggestion
from stockswap.pipeline.cancellation import CancellationToken, is_cancelled
from stockswap.recommendations.fallback import fallback_suggestion
from stockswap.recommendations.ticker_parser import compile_rules, parse_ticker_reply
from stockswap.taxonomy.strategy_taxonomy import RecommendationSource

logger = logging.getLogger(__name__)


_TICKER_PROMPT = """Act as a financial advisor. Based on this product, suggest exactly 2-3 US stock ticker symbols.

Product: {name}
Category: {category}
Price: ${price:.2f}

Rules:
- Return ONLY stock ticker symbols
- Use real US stock tickers (2-5 letters)
- Separate with commas and spaces
- No explanations or other text
- Choose companies related to this product category

Examples:
- For electronics: AAPL, MSFT, GOOGL
- For gaming: NVDA, AMD, ATVI
- For fashion: NKE, LULU, VFC

Your response:"""

_EDUCATION_PROMPT = """Create a brief educational message about investing in these stocks: {tickers} as an alternative to buying {category} products like "{name}".

Write 1-2 sentences explaining:
1. Why these companies relate to the {category} sector
2. How consumer spending in this area could benefit these investments

Keep it informative but accessible to beginner investors.

Educational message:"""


def build_ticker_prompt(product: ProductDescriptor) -> str:
    return _TICKER_PROMPT.format(
        name=product.name, category=product.category, price=product.price
    )


def build_education_prompt(product: ProductDescriptor, tickers: list[str]) -> str:
    return _EDUCATION_PROMPT.format(
        tickers=", ".join(tickers), category=product.category, name=product.name
    )


def template_education(product: ProductDescriptor, tickers: list[str]) -> str:
    """Educational sentence used when the blurb call fails."""
    return (
        f"Learn about investing in {', '.join(tickers)} - companies that could "
        f"benefit from consumer trends in the {product.category.lower()} sector."
    )


class StockSuggestionClient:
    """Produces a ``StockSuggestion`` for a product; never raises.

    Args:
        textgen: Text-generation client, or ``None`` to always use the
            fallback engine.
        config: Attempts, backoff, token limits and the rejection rules.
    """

    def __init__(
        self,
        textgen: Optional[TextGenerationClient],
        config: TextGenConfig,
    ) -> None:
        self.textgen = textgen
        self.config = config
        self._rules = compile_rules(config.rejection_rules)

    async def suggest_stocks(
        self,
        product: ProductDescriptor,
        cancel_token: Optional[CancellationToken] = None,
    ) -> StockSuggestion:
        """Suggest tickers for ``product`` (live if possible, else fallback)."""
        if self.textgen is None or not self.textgen.enabled:
            logger.warning("No text-generation API key; using rule-based suggestion.")
            return self._fallback(product)

        tickers = await self._live_tickers(product, cancel_token)
        if tickers is None:
            return self._fallback(product)

        educational_text = await self._education(product, tickers)
        return StockSuggestion(
            tickers=tickers,
            educational_text=educational_text,
            source=RecommendationSource.LIVE,
        )

    async def _live_tickers(
        self,
        product: ProductDescriptor,
        cancel_token: Optional[CancellationToken],
    ) -> Optional[list[str]]:
        prompt = build_ticker_prompt(product)
        attempts = self.config.max_attempts
        for attempt in range(1, attempts + 1):
            if attempt > 1:
                await asyncio.sleep(self.config.retry_backoff_s)
            if is_cancelled(cancel_token):
                logger.info("Suggestion request cancelled; not retrying.")
                return None
            try:
                reply = await self.textgen.generate(
                    prompt,
                    max_tokens=self.config.ticker_max_tokens,
                    temperature=self.config.ticker_temperature,
                    stop_sequences=self.config.stop_sequences,
                )
                tickers = parse_ticker_reply(reply, self._rules)
            except StockSwapError as exc:
                logger.warning("Ticker suggestion attempt %d/%d failed: %s", attempt, attempts, exc)
                continue
            except Exception:
                logger.exception("Ticker suggestion attempt %d/%d failed unexpectedly", attempt, attempts)
                continue
            logger.info("Live tickers for %r: %s", product.name, ", ".join(tickers))
            return tickers

        logger.warning("All %d ticker attempts failed; using rule-based suggestion.", attempts)
        return None

    async def _education(self, product: ProductDescriptor, tickers: list[str]) -> str:
        try:
            text = await self.textgen.generate(
                build_education_prompt(product, tickers),
                max_tokens=self.config.education_max_tokens,
                temperature=self.config.education_temperature,
            )
        except StockSwapError as exc:
            logger.debug("Educational text unavailable, using template: %s", exc)
            return template_education(product, tickers)
        except Exception:
            logger.exception("Educational text request failed unexpectedly; using template")
            return template_education(product, tickers)
        return text or template_education(product, tickers)

    @staticmethod
    def _fallback(product: ProductDescriptor) -> StockSuggestion:
        return fallback_suggestion(product.category, product.name, product.brand, product.price)
