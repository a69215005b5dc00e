"""Protocol definitions for log storage."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from ..core.types import LogRecord


class LogStorage(Protocol):
    """A handle on the log database, valid for one unit of work."""

    def ensure_schema(self) -> None:
        """Create the log table if absent. Idempotent."""
        ...

    def insert_batch(self, records: Sequence[LogRecord]) -> int:
        """Insert records in order inside one transaction.

        Returns:
            Number of rows inserted

        Invariants:
            - All records are committed or none are
            - Raises StorageFullError when the size limit is reached
        """
        ...

    def delete_older_than(self, cutoff: str) -> int:
        """Delete rows with a TimeStamp before cutoff; return the count."""
        ...

    def truncate(self) -> None:
        """Delete all rows and reclaim the freed space."""
        ...

    def backup_to(self, target: str | Path) -> None:
        """Write a complete copy of the database to target."""
        ...

    def count(self) -> int:
        """Number of rows in the log table."""
        ...

    def close(self) -> None:
        """Close handle and release resources."""
        ...
