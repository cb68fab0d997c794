"""
Product descriptor — the orchestrator's only input.

The extension's scrapers send loosely-shaped dicts: prices arrive as floats,
as ``"$1,299.99"`` strings, as ``0`` when the selector missed, or not at all.
``clean_descriptor()`` turns any of those into a valid ``ProductDescriptor``
without ever raising; a missing or non-positive price becomes the configured
default so the rest of the flow always has a positive amount to work with.
"""

from __future__ import annotations

import logging
import math
import re
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator

logger = logging.getLogger(__name__)

DEFAULT_NAME = "this item"
DEFAULT_CATEGORY = "general"

_NON_NUMERIC_RE = re.compile(r"[^0-9.\-]")


class ProductDescriptor(BaseModel):
    """A product the user is about to buy.

    Attributes:
        name: Product title as scraped.
        category: Retailer category or a heuristic guess ("electronics", ...).
        brand: Optional brand string.
        price: Positive price in dollars.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    category: str
    brand: Optional[str] = None
    price: float

    @field_validator("price")
    @classmethod
    def validate_price(cls, v: float) -> float:
        if not math.isfinite(v) or v <= 0:
            raise ValueError(f"price must be a positive finite number, got {v}.")
        return v


def parse_price(value: Any) -> Optional[float]:
    """Coerce a scraped price into a float, or ``None`` if unusable.

    Accepts ints, floats and strings with currency symbols / thousands
    separators. Booleans, NaN, infinities and unparseable text are unusable.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        price = float(value)
    elif isinstance(value, str):
        cleaned = _NON_NUMERIC_RE.sub("", value.replace(",", ""))
        try:
            price = float(cleaned)
        except ValueError:
            return None
    else:
        return None
    return price if math.isfinite(price) else None


def clean_descriptor(
    raw: Union[ProductDescriptor, Mapping[str, Any], None],
    default_price: float,
) -> ProductDescriptor:
    """Validate and clean an incoming product descriptor.

    Args:
        raw: A ``ProductDescriptor`` or the raw mapping the extension sent.
        default_price: Substituted when the price is missing or non-positive.

    Returns:
        A valid ``ProductDescriptor``. Never raises.
    """
    if isinstance(raw, ProductDescriptor):
        return raw

    data: Mapping[str, Any] = raw if isinstance(raw, Mapping) else {}

    name = _clean_text(data.get("name")) or DEFAULT_NAME
    category = _clean_text(data.get("category")) or DEFAULT_CATEGORY
    brand = _clean_text(data.get("brand"))

    price = parse_price(data.get("price"))
    if price is None or price <= 0:
        logger.warning(
            "Invalid or missing price %r for %r; using default %.2f",
            data.get("price"), name, default_price,
        )
        price = default_price

    return ProductDescriptor(name=name, category=category, brand=brand, price=price)


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
