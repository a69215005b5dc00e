"""Configuration for the SQLite log store.

Defines all tunable parameters and the derived limits of the store.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import timedelta

from .errors import ConfigurationError

BYTES_PER_MB = 1_048_576
MAX_SUPPORTED_PAGES = 5_242_880
MAX_SUPPORTED_PAGE_SIZE = 4096
MAX_SUPPORTED_DATABASE_SIZE = MAX_SUPPORTED_PAGE_SIZE * MAX_SUPPORTED_PAGES // BYTES_PER_MB

# Retention sweeps run on a 15 minute grid and never keep less than 30 minutes
RETENTION_CHECK_STEP_MINUTES = 15
MIN_RETENTION_PERIOD = timedelta(minutes=30)

# Milliseconds are appended as .fff; the fixed width keeps text order equal to time order
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"

_TABLE_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class StoreConfig:
    """Configuration parameters for the SQLite log store.

    Attributes:
        database_path: Path of the SQLite database file
        table_name: Name of the log table
        batch_size: Maximum number of events written per transaction
        max_buffer_size: Events buffered before new ones are dropped
        max_database_size: Size limit of the database file in MB
        roll_over: Whether to back up and truncate the file when it is full
        store_timestamp_in_utc: Whether timestamps are converted to UTC
        retention_period: Age after which entries are purged (None = keep)
        retention_check_interval: How often the retention sweep runs
        auto_create_table: Whether to create the table at startup
        busy_timeout: Seconds SQLite waits on a locked database
        flush_period: Seconds between buffered flushes
    """

    database_path: str
    table_name: str = "Logs"
    batch_size: int = 100
    max_buffer_size: int = 100_000
    max_database_size: int = 10  # MB
    roll_over: bool = True
    store_timestamp_in_utc: bool = False
    retention_period: timedelta | None = None
    retention_check_interval: timedelta | None = None
    auto_create_table: bool = True
    busy_timeout: float = 30.0
    flush_period: float = 2.0

    def __post_init__(self) -> None:
        if self.max_database_size > MAX_SUPPORTED_DATABASE_SIZE:
            raise ConfigurationError(
                f"Database size greater than {MAX_SUPPORTED_DATABASE_SIZE} MB is not supported"
            )
        if self.max_database_size < 1:
            raise ConfigurationError("max_database_size must be at least 1 MB")
        if not _TABLE_NAME_RE.match(self.table_name):
            raise ConfigurationError(f"Invalid table name: {self.table_name!r}")
        if self.batch_size < 1:
            raise ConfigurationError("batch_size must be positive")
        if self.max_buffer_size < 1:
            raise ConfigurationError("max_buffer_size must be positive")

    @property
    def max_database_bytes(self) -> int:
        return self.max_database_size * BYTES_PER_MB

    @property
    def effective_retention_period(self) -> timedelta | None:
        """Retention period clamped to the 30 minute minimum."""
        if self.retention_period is None:
            return None
        return max(self.retention_period, MIN_RETENTION_PERIOD)

    @property
    def effective_retention_check_interval(self) -> timedelta | None:
        """Sweep interval, at least 15 minutes and a multiple of 15 minutes.

        Returns None when no retention period is configured.
        """
        if self.retention_period is None:
            return None
        minutes = RETENTION_CHECK_STEP_MINUTES
        if self.retention_check_interval is not None:
            configured = int(self.retention_check_interval.total_seconds() // 60)
            minutes = max(minutes, configured)
        minutes = (minutes // RETENTION_CHECK_STEP_MINUTES) * RETENTION_CHECK_STEP_MINUTES
        return timedelta(minutes=minutes)
