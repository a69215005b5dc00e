"""Retention sweeper.

Periodically deletes log entries older than the retention period on a
background thread.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from ..core.errors import LogStoreError
from .encoder import format_timestamp
from .storage import StorageHandle

if TYPE_CHECKING:
    from ..core.config import StoreConfig
    from .gate import WriteGate

logger = logging.getLogger(__name__)


class SweeperState(Enum):
    """State of the retention sweeper."""

    IDLE = "idle"
    SWEEPING = "sweeping"
    STOPPED = "stopped"


class RetentionSweeper:
    """Deletes expired log entries on a fixed cadence.

    The first sweep runs as soon as the sweeper is started, then one every
    interval until stop() is called. A failed sweep is logged and the next
    one runs on schedule.

    Args:
        config: Store configuration with a retention period
        gate: Write gate shared with the batch writer
        interval: Seconds between sweeps (default: the config's clamped interval)
    """

    def __init__(self, config: StoreConfig, gate: WriteGate, interval: float | None = None):
        period = config.effective_retention_period
        if period is None:
            raise ValueError("RetentionSweeper requires a retention period")

        self.config = config
        self.retention_period = period
        if interval is None:
            interval = config.effective_retention_check_interval.total_seconds()
        self.interval = interval
        self.state = SweeperState.IDLE
        self.sweep_count = 0
        self.last_deleted: int | None = None

        self._gate = gate
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def cutoff(self, now: datetime | None = None) -> str:
        """Formatted timestamp before which entries are expired."""
        if now is None:
            now = datetime.now().astimezone()
        return format_timestamp(now - self.retention_period, self.config.store_timestamp_in_utc)

    def sweep(self, now: datetime | None = None) -> int:
        """Run one sweep.

        Args:
            now: Reference time (default: current local time)

        Returns:
            Number of rows deleted

        Raises:
            StorageOpenError: If the database cannot be opened
            sqlite3.Error: If the delete fails
        """
        cutoff = self.cutoff(now)
        with self._gate:
            self.state = SweeperState.SWEEPING
            try:
                with StorageHandle.open(
                    self.config.database_path,
                    self.config.table_name,
                    max_database_bytes=self.config.max_database_bytes,
                    timeout=self.config.busy_timeout,
                ) as storage:
                    logger.info(f"Deleting log entries older than {cutoff}")
                    deleted = storage.delete_older_than(cutoff)
            finally:
                self.state = SweeperState.IDLE

        self.sweep_count += 1
        self.last_deleted = deleted
        logger.info(f"{deleted} records deleted")
        return deleted

    def _sweep_safely(self) -> None:
        try:
            self.sweep()
        except (LogStoreError, sqlite3.Error) as e:
            logger.error(f"Retention sweep failed: {e}")
        except Exception:
            logger.exception("Unexpected error in retention sweep")

    def _run(self) -> None:
        """Background loop: sweep now, then once per interval."""
        logger.info(
            f"Retention sweeper started (period={self.retention_period}, interval={self.interval}s)"
        )
        while not self._stop_event.is_set():
            self._sweep_safely()
            if self._stop_event.wait(self.interval):
                break
        logger.info("Retention sweeper stopped")

    def start(self) -> None:
        """Start the background sweep thread."""
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, daemon=True, name="RetentionSweeper")
        self._thread.start()

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def stop(self, timeout: float = 5.0) -> None:
        """Cancel future sweeps and wait for the thread to exit."""
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("Retention sweeper did not shut down cleanly")
        self.state = SweeperState.STOPPED
