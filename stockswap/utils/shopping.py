"""
Shopping-page helpers used by the extension bridge.

``is_shopping_website()`` decides whether a tab URL belongs to a supported
retailer; ``parse_selected_price()`` pulls a dollar amount out of text the user
highlighted ("Analyze with StockSwap" context-menu action). Both are pure.
"""

from __future__ import annotations

import re
from typing import Optional
from urllib.parse import urlparse

SHOPPING_SITES: tuple[str, ...] = (
    "amazon.com",
    "amazon.ca",
    "ebay.com",
    "walmart.com",
    "target.com",
    "bestbuy.com",
    "shopify.com",
    "etsy.com",
)

# Comma-grouped amounts first so "1,299.99" is not cut at the comma.
_PRICE_RE = re.compile(r"\$?(\d{1,3}(?:,\d{3})+(?:\.\d{2})?|\d+(?:\.\d{2})?)")


def is_shopping_website(url: str) -> bool:
    """Return ``True`` if the URL's hostname contains a supported retailer domain.

    Malformed or schemeless URLs return ``False``.
    """
    try:
        hostname = (urlparse(url).hostname or "").lower()
    except ValueError:
        return False
    if not hostname:
        return False
    return any(site in hostname for site in SHOPPING_SITES)


def parse_selected_price(text: str) -> Optional[float]:
    """Extract the first price-looking number from free text.

    Examples::

        parse_selected_price("Now only $1,299.99!")  -> 1299.99
        parse_selected_price("no price here")        -> None
    """
    match = _PRICE_RE.search(text or "")
    if match is None:
        return None
    return float(match.group(1).replace(",", ""))
