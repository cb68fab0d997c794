"""
Repository for avoided-purchase history and the running savings total.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime

from stockswap.db.repositories.base import BaseRepository
from stockswap.models.purchase import AvoidedPurchase

logger = logging.getLogger(__name__)


class AvoidedPurchaseRepository(BaseRepository):
    """Read/write access to ``avoided_purchases`` and ``savings_totals``."""

    def insert(self, purchase: AvoidedPurchase) -> int:
        """Insert a purchase and return its ``purchase_id``."""
        self.execute(
            """
            INSERT INTO avoided_purchases (name, category, brand, price, tracked_at)
            VALUES (?, ?, ?, ?, ?);
            """,
            (
                purchase.name,
                purchase.category,
                purchase.brand,
                purchase.price,
                purchase.tracked_at.isoformat(),
            ),
        )
        return self.last_insert_rowid()

    def trim_to(self, keep: int) -> int:
        """Delete all but the ``keep`` most recent purchases; return rows deleted."""
        cur = self.execute(
            """
            DELETE FROM avoided_purchases
            WHERE purchase_id NOT IN (
                SELECT purchase_id FROM avoided_purchases
                ORDER BY purchase_id DESC
                LIMIT ?
            );
            """,
            (keep,),
        )
        return cur.rowcount

    def recent(self, limit: int = 50) -> list[AvoidedPurchase]:
        rows = self.fetchall(
            """
            SELECT * FROM avoided_purchases
            ORDER BY purchase_id DESC
            LIMIT ?;
            """,
            (limit,),
        )
        return [_row_to_purchase(r) for r in rows]

    def count(self) -> int:
        row = self.fetchone("SELECT COUNT(*) AS n FROM avoided_purchases;")
        return int(row["n"]) if row else 0

    def add_to_total(self, amount: float) -> float:
        """Add ``amount`` to the running total and return the new total."""
        self.execute(
            """
            INSERT INTO savings_totals (slot, total_savings) VALUES (1, ?)
            ON CONFLICT(slot) DO UPDATE SET
                total_savings = total_savings + excluded.total_savings,
                updated_at = strftime('%Y-%m-%dT%H:%M:%SZ', 'now');
            """,
            (amount,),
        )
        return self.total()

    def total(self) -> float:
        row = self.fetchone("SELECT total_savings FROM savings_totals WHERE slot = 1;")
        return float(row["total_savings"]) if row else 0.0


def _row_to_purchase(row: sqlite3.Row) -> AvoidedPurchase:
    return AvoidedPurchase(
        purchase_id=row["purchase_id"],
        name=row["name"],
        category=row["category"],
        brand=row["brand"],
        price=row["price"],
        tracked_at=datetime.fromisoformat(row["tracked_at"]),
    )
