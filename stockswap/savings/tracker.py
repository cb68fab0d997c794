"""
Avoided-purchase tracking.

When the user chooses "invest instead", the extension reports the skipped
purchase. The tracker keeps the most recent ``history_limit`` purchases and a
running total of every dollar ever saved (the total is not trimmed with the
history).
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Union

from stockswap.config import AppConfig
from stockswap.db.connection import SqliteStore
from stockswap.db.repositories.purchase_repo import AvoidedPurchaseRepository
from stockswap.models.product import ProductDescriptor, parse_price
from stockswap.models.purchase import AvoidedPurchase, SavingsSummary
from stockswap.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


class SavingsTracker:
    """Records avoided purchases in the application database.

    Args:
        config: Application config (database + savings sections).
        db_path: Override DB path (defaults to ``config.database.db_path``).
    """

    def __init__(self, config: AppConfig, db_path: str | None = None) -> None:
        self.config = config
        self.db = SqliteStore.from_config(config.database, db_path)

    def track(
        self,
        product: Union[ProductDescriptor, Mapping[str, Any]],
    ) -> SavingsSummary:
        """Record one avoided purchase.

        Args:
            product: The product the user did not buy.

        Returns:
            ``SavingsSummary`` after the purchase is recorded.

        Raises:
            ValueError: If the product has no positive price.
        """
        purchase = _to_purchase(product)

        with self.db.session() as conn:
            repo = AvoidedPurchaseRepository(conn)
            purchase_id = repo.insert(purchase)
            trimmed = repo.trim_to(self.config.savings.history_limit)
            total = repo.add_to_total(purchase.price)
            count = repo.count()

        if trimmed:
            logger.debug("Trimmed %d old avoided purchases.", trimmed)
        logger.info(
            "Avoided purchase tracked: %r $%.2f (total saved $%.2f)",
            purchase.name, purchase.price, total,
        )
        return SavingsSummary(
            total_savings=round(total, 2),
            purchase_count=count,
            last_purchase=purchase.model_copy(update={"purchase_id": purchase_id}),
        )

    def summary(self) -> SavingsSummary:
        """Current totals without recording anything."""
        with self.db.session() as conn:
            repo = AvoidedPurchaseRepository(conn)
            recent = repo.recent(limit=1)
            return SavingsSummary(
                total_savings=round(repo.total(), 2),
                purchase_count=repo.count(),
                last_purchase=recent[0] if recent else None,
            )

    def history(self) -> list[AvoidedPurchase]:
        """Retained purchases, newest first."""
        with self.db.session() as conn:
            return AvoidedPurchaseRepository(conn).recent(
                limit=self.config.savings.history_limit
            )


def _to_purchase(product: Union[ProductDescriptor, Mapping[str, Any]]) -> AvoidedPurchase:
    if isinstance(product, ProductDescriptor):
        data: Mapping[str, Any] = product.model_dump()
    else:
        data = product

    price = parse_price(data.get("price"))
    if price is None or price <= 0:
        raise ValueError(f"Cannot track a purchase without a positive price: {data.get('price')!r}")

    return AvoidedPurchase(
        name=str(data.get("name") or "Unknown item"),
        category=str(data.get("category") or "general"),
        brand=data.get("brand") or None,
        price=price,
        tracked_at=utcnow(),
    )
