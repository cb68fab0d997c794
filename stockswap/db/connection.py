"""
Per-operation SQLite access for the credential store and savings history.

A ``SqliteStore`` names one database file. Every ``store.session()`` opens a
fresh connection, applies the schema the first time the store touches the
file, commits on clean exit and rolls back otherwise. Nothing holds a
connection between operations, so one store can serve requests running on
worker threads (``asyncio.to_thread``) and the CLI at the same time.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Iterator, Optional

from stockswap.db.schema import apply_schema

if TYPE_CHECKING:
    from stockswap.config import DatabaseConfig

logger = logging.getLogger(__name__)


class SqliteStore:
    """A database file plus the settings every connection to it uses.

    Args:
        db_path: File path. ``":memory:"`` is rejected since each operation
            would see an empty database.
        wal_mode: Switch the file to WAL so the CLI and the native host can
            read while a request writes.
        busy_timeout_ms: How long a writer waits on a locked file.
    """

    def __init__(self, db_path: str, wal_mode: bool = True, busy_timeout_ms: int = 5000) -> None:
        if db_path == ":memory:":
            raise ValueError("SqliteStore needs a file path; ':memory:' does not persist")
        self.db_path = db_path
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self._schema_lock = threading.Lock()
        self._schema_ready = False

    @classmethod
    def from_config(cls, database: "DatabaseConfig", db_path: Optional[str] = None) -> "SqliteStore":
        return cls(
            db_path or database.db_path,
            wal_mode=database.wal_mode,
            busy_timeout_ms=database.busy_timeout_ms,
        )

    @contextmanager
    def session(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection for one unit of work."""
        conn = self._open()
        try:
            self._ensure_schema(conn)
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _open(self) -> sqlite3.Connection:
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout_ms / 1000)
        conn.row_factory = sqlite3.Row
        if self.wal_mode:
            conn.execute("PRAGMA journal_mode = WAL;")
        return conn

    def _ensure_schema(self, conn: sqlite3.Connection) -> None:
        with self._schema_lock:
            if self._schema_ready:
                return
            apply_schema(conn)
            self._schema_ready = True
            logger.debug("Schema ready in %s", self.db_path)
