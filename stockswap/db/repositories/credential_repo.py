"""
Credential store and simulation-usage ledger.

``CredentialRepository`` persists the single (token, account_id) pair. It is
written only by the session bootstrapper (``save_token`` / ``save_account_id``)
and by an explicit ``stockswap reset-session`` (``clear``).

``SimulationUsageRepository`` tracks how many simulated months each upstream
account has consumed against the per-account ceiling, and whether upstream has
already refused further simulation for it.

``CredentialStore`` wraps both behind ``SqliteStore.session()`` so callers on
any thread can use it without holding a connection.
"""

from __future__ import annotations

import logging
from typing import Optional

from stockswap.db.connection import SqliteStore
from stockswap.db.repositories.base import BaseRepository
from stockswap.models.session import Credentials

logger = logging.getLogger(__name__)


class CredentialRepository(BaseRepository):
    """Read/write access to ``session_credentials`` (single row, slot 1)."""

    def load(self) -> Credentials:
        row = self.fetchone(
            "SELECT token, account_id FROM session_credentials WHERE slot = 1;"
        )
        if row is None:
            return Credentials()
        return Credentials(token=row["token"], account_id=row["account_id"])

    def save_token(self, token: str) -> None:
        """Store a freshly registered token.

        Any previous account id is cleared: an account id is only meaningful
        under the token that created it.
        """
        self.execute(
            """
            INSERT INTO session_credentials (slot, token, account_id, updated_at)
            VALUES (1, ?, NULL, strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
            ON CONFLICT(slot) DO UPDATE SET
                token = excluded.token,
                account_id = NULL,
                updated_at = excluded.updated_at;
            """,
            (token,),
        )

    def save_account_id(self, account_id: str) -> None:
        self.execute(
            """
            UPDATE session_credentials
            SET account_id = ?, updated_at = strftime('%Y-%m-%dT%H:%M:%SZ', 'now')
            WHERE slot = 1;
            """,
            (account_id,),
        )

    def clear(self) -> None:
        self.execute("DELETE FROM session_credentials;")


class SimulationUsageRepository(BaseRepository):
    """Read/write access to ``simulation_usage``."""

    def get(self, account_id: str) -> tuple[int, bool]:
        """Return ``(months_used, is_exhausted)`` for an account (``(0, False)`` if unseen)."""
        row = self.fetchone(
            "SELECT months_used, is_exhausted FROM simulation_usage WHERE account_id = ?;",
            (account_id,),
        )
        if row is None:
            return 0, False
        return int(row["months_used"]), bool(row["is_exhausted"])

    def add_months(self, account_id: str, months: int) -> None:
        self.execute(
            """
            INSERT INTO simulation_usage (account_id, months_used)
            VALUES (?, ?)
            ON CONFLICT(account_id) DO UPDATE SET
                months_used = months_used + excluded.months_used,
                updated_at = strftime('%Y-%m-%dT%H:%M:%SZ', 'now');
            """,
            (account_id, months),
        )

    def mark_exhausted(self, account_id: str) -> None:
        self.execute(
            """
            INSERT INTO simulation_usage (account_id, is_exhausted)
            VALUES (?, 1)
            ON CONFLICT(account_id) DO UPDATE SET
                is_exhausted = 1,
                updated_at = strftime('%Y-%m-%dT%H:%M:%SZ', 'now');
            """,
            (account_id,),
        )


class CredentialStore:
    """Thread-safe facade over the credential and usage tables.

    Every method opens its own short-lived connection, so one store instance
    can be shared by concurrent requests.

    Args:
        db_path: SQLite path (``config.database.db_path``).
        wal_mode: Passed to ``SqliteStore``.
        busy_timeout_ms: Passed to ``SqliteStore``.
    """

    def __init__(
        self,
        db_path: str,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        self.db_path = db_path
        self.db = SqliteStore(db_path, wal_mode=wal_mode, busy_timeout_ms=busy_timeout_ms)

    def load(self) -> Credentials:
        with self.db.session() as conn:
            return CredentialRepository(conn).load()

    def save_token(self, token: str) -> None:
        with self.db.session() as conn:
            CredentialRepository(conn).save_token(token)
        logger.info("Session token stored.")

    def save_account_id(self, account_id: str) -> None:
        with self.db.session() as conn:
            CredentialRepository(conn).save_account_id(account_id)
        logger.info("Session account id stored: %s", account_id)

    def clear(self) -> None:
        with self.db.session() as conn:
            CredentialRepository(conn).clear()
        logger.info("Session credentials cleared.")

    # ── Simulation usage ──────────────────────────────────────────────────────

    def simulation_usage(self, account_id: str) -> tuple[int, bool]:
        with self.db.session() as conn:
            return SimulationUsageRepository(conn).get(account_id)

    def record_simulation(self, account_id: str, months: int) -> None:
        with self.db.session() as conn:
            SimulationUsageRepository(conn).add_months(account_id, months)

    def mark_simulation_exhausted(self, account_id: str) -> None:
        with self.db.session() as conn:
            SimulationUsageRepository(conn).mark_exhausted(account_id)
        logger.warning("Simulation ceiling reached for account %s.", account_id)

    def simulation_budget_left(
        self,
        account_id: Optional[str],
        months: int,
        ceiling: int,
    ) -> bool:
        """True if ``months`` more can be simulated for the account."""
        if not account_id:
            return False
        used, exhausted = self.simulation_usage(account_id)
        return not exhausted and used + months <= ceiling
