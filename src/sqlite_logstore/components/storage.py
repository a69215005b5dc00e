"""Storage handle over a single SQLite database file.

One handle is opened per unit of work (batch write, retention sweep,
rollover) and closed when that work is done.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import TYPE_CHECKING

from ..core.errors import StorageFullError, StorageOpenError
from ..core.types import COLUMNS

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ..core.types import LogRecord

logger = logging.getLogger(__name__)

SQLITE_FULL = getattr(sqlite3, "SQLITE_FULL", 13)

COLUMN_DEFINITIONS = (
    "Id INTEGER PRIMARY KEY AUTOINCREMENT",
    "TimeStamp TEXT",
    "Level VARCHAR(10)",
    "Exception TEXT",
    "Message TEXT",
    "Properties TEXT",
    "MessageTemplate TEXT",
    "LogEvent TEXT",
    "UserName TEXT",
    "ClientIP TEXT",
    "ClientAgent TEXT",
)


def is_storage_full(exc: sqlite3.Error) -> bool:
    """Whether an SQLite error is SQLITE_FULL (primary result code)."""
    code = getattr(exc, "sqlite_errorcode", None)
    if code is not None:
        return code & 0xFF == SQLITE_FULL
    return "database or disk is full" in str(exc)


class StorageHandle:
    """Connection to the log database, scoped to one unit of work.

    Args:
        conn: Open SQLite connection in autocommit mode
        path: Path of the database file
        table_name: Name of the log table

    Invariants:
        - The connection runs in WAL journal mode
        - Writes beyond the configured page budget fail with StorageFullError
        - insert_batch is all-or-nothing
    """

    def __init__(self, conn: sqlite3.Connection, path: Path, table_name: str):
        self._conn: sqlite3.Connection | None = conn
        self.path = path
        self.table_name = table_name

    @classmethod
    def open(
        cls,
        path: str | Path,
        table_name: str,
        max_database_bytes: int | None = None,
        timeout: float = 30.0,
    ) -> StorageHandle:
        """Open or create the database file.

        Args:
            path: Database file path; the parent directory is created
            table_name: Name of the log table
            max_database_bytes: Size budget enforced with max_page_count
            timeout: Seconds to wait on a locked database

        Raises:
            StorageOpenError: If the file cannot be opened or configured
        """
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                str(path), timeout=timeout, isolation_level=None, check_same_thread=False
            )
        except (sqlite3.Error, OSError) as e:
            raise StorageOpenError(f"Cannot open database {path}: {e}") from e

        try:
            conn.execute("PRAGMA journal_mode=WAL")
            if max_database_bytes is not None:
                page_size = conn.execute("PRAGMA page_size").fetchone()[0]
                max_pages = max(1, max_database_bytes // page_size)
                conn.execute(f"PRAGMA max_page_count={max_pages}")
        except sqlite3.Error as e:
            conn.close()
            raise StorageOpenError(f"Cannot configure database {path}: {e}") from e

        logger.debug(f"Opened database {path}")
        return cls(conn, path, table_name)

    @property
    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Storage handle is closed")
        return self._conn

    def ensure_schema(self) -> None:
        """Create the log table if it does not exist."""
        self.connection.execute(
            f"CREATE TABLE IF NOT EXISTS {self.table_name} ({', '.join(COLUMN_DEFINITIONS)})"
        )

    def insert_batch(self, records: Sequence[LogRecord]) -> int:
        """Insert records in order inside one transaction.

        The INSERT is compiled once and rebound for every row.

        Returns:
            Number of rows inserted

        Raises:
            StorageFullError: If the database reached its size limit
            sqlite3.Error: For any other SQLite failure
        """
        sql = (
            f"INSERT INTO {self.table_name} ({', '.join(COLUMNS)}) "
            f"VALUES ({', '.join('?' * len(COLUMNS))})"
        )
        conn = self.connection
        try:
            conn.execute("BEGIN")
            conn.executemany(sql, (record.as_row() for record in records))
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            self._rollback()
            if is_storage_full(e):
                raise StorageFullError(str(e)) from e
            raise
        return len(records)

    def _rollback(self) -> None:
        conn = self.connection
        if conn.in_transaction:
            try:
                conn.rollback()
            except sqlite3.Error as e:
                logger.warning(f"Rollback failed on {self.path}: {e}")

    def delete_older_than(self, cutoff: str) -> int:
        """Delete rows whose TimeStamp text sorts before cutoff.

        Returns:
            Number of rows deleted
        """
        cursor = self.connection.execute(
            f"DELETE FROM {self.table_name} WHERE TimeStamp < ?", (cutoff,)
        )
        return cursor.rowcount

    def truncate(self) -> None:
        """Delete every row, then VACUUM to give the pages back."""
        conn = self.connection
        conn.execute(f"DELETE FROM {self.table_name}")
        conn.execute("VACUUM")

    def backup_to(self, target: str | Path) -> None:
        """Copy the database, including committed WAL content, to target."""
        dest = sqlite3.connect(str(target))
        try:
            self.connection.backup(dest)
        finally:
            dest.close()

    def count(self) -> int:
        row = self.connection.execute(f"SELECT COUNT(*) FROM {self.table_name}").fetchone()
        return int(row[0])

    def close(self) -> None:
        """Close the connection and release resources."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.debug(f"Closed database {self.path}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
