"""
SQLite schema DDL — all CREATE TABLE and CREATE INDEX statements.

All statements use ``IF NOT EXISTS`` so ``apply_schema()`` is **idempotent**:
safe to call on every process start and in every test.

Tables:
  1. session_credentials  — single-row credential store (slot = 1)
  2. simulation_usage     — months simulated per upstream account
  3. avoided_purchases    — retained history of skipped purchases
  4. savings_totals       — single-row running total (never trimmed)
"""

from __future__ import annotations

import logging
import sqlite3

logger = logging.getLogger(__name__)

# ── DDL statements ─────────────────────────────────────────────────────────────

_DDL_SESSION_CREDENTIALS = """
CREATE TABLE IF NOT EXISTS session_credentials (
    slot        INTEGER PRIMARY KEY CHECK (slot = 1),
    token       TEXT,
    account_id  TEXT,
    updated_at  TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
"""

_DDL_SIMULATION_USAGE = """
CREATE TABLE IF NOT EXISTS simulation_usage (
    account_id      TEXT    PRIMARY KEY,
    months_used     INTEGER NOT NULL DEFAULT 0,
    is_exhausted    INTEGER NOT NULL DEFAULT 0,
    updated_at      TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
"""

_DDL_AVOIDED_PURCHASES = """
CREATE TABLE IF NOT EXISTS avoided_purchases (
    purchase_id INTEGER PRIMARY KEY AUTOINCREMENT,
    name        TEXT    NOT NULL,
    category    TEXT    NOT NULL,
    brand       TEXT,
    price       REAL    NOT NULL CHECK (price > 0),
    tracked_at  TEXT    NOT NULL
);
"""

_DDL_SAVINGS_TOTALS = """
CREATE TABLE IF NOT EXISTS savings_totals (
    slot            INTEGER PRIMARY KEY CHECK (slot = 1),
    total_savings   REAL    NOT NULL DEFAULT 0,
    updated_at      TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
"""

_DDL_INDEXES = """
CREATE INDEX IF NOT EXISTS idx_avoided_purchases_tracked_at
    ON avoided_purchases (tracked_at);
"""

_ALL_DDL: list[str] = [
    _DDL_SESSION_CREDENTIALS,
    _DDL_SIMULATION_USAGE,
    _DDL_AVOIDED_PURCHASES,
    _DDL_SAVINGS_TOTALS,
    _DDL_INDEXES,
]

ALL_TABLE_NAMES: list[str] = [
    "session_credentials",
    "simulation_usage",
    "avoided_purchases",
    "savings_totals",
]


def apply_schema(conn: sqlite3.Connection) -> None:
    """Apply all DDL statements to ``conn``.

    Idempotent — safe to call on an already-initialized database.

    Args:
        conn: An open ``sqlite3.Connection``.
    """
    for ddl in _ALL_DDL:
        for statement in _split_ddl(ddl):
            conn.execute(statement)

    conn.commit()
    logger.debug("Schema applied: %d tables verified.", len(ALL_TABLE_NAMES))


def _split_ddl(ddl: str) -> list[str]:
    """Split a multi-statement DDL block on semicolons."""
    return [s.strip() for s in ddl.split(";") if s.strip()]
