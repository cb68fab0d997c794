"""
Avoided-purchase records for the savings tracker.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class AvoidedPurchase(BaseModel):
    """A purchase the user skipped after seeing a recommendation."""

    model_config = ConfigDict(frozen=True)

    purchase_id: Optional[int] = None
    name: str
    category: str
    brand: Optional[str] = None
    price: float
    tracked_at: datetime


class SavingsSummary(BaseModel):
    """Running totals after tracking a purchase.

    ``total_savings`` covers every purchase ever tracked, while
    ``purchase_count`` only counts the retained history window.
    """

    model_config = ConfigDict(frozen=True)

    total_savings: float
    purchase_count: int
    last_purchase: Optional[AvoidedPurchase] = None
