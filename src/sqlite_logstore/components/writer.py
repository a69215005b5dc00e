"""Batch writer - the serialized entry point for persisting records."""

from __future__ import annotations

import logging
import sqlite3
from typing import TYPE_CHECKING

from ..core.errors import RolloverError, StorageFullError, StorageOpenError
from .storage import StorageHandle

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ..core.config import StoreConfig
    from ..core.types import LogRecord
    from .gate import WriteGate
    from .rollover import RolloverController

logger = logging.getLogger(__name__)


class BatchWriter:
    """Writes batches of encoded records, one transaction per batch.

    Args:
        config: Store configuration
        gate: Write gate shared with the retention sweeper
        rollover: Rollover controller, or None when rollover is disabled

    Return contract of write():
        - True: the batch is committed, or it was deliberately discarded
          because the database is full and rollover is disabled. In the
          latter case the records are lost even though the caller sees
          success; retrying could never succeed.
        - False: the batch was not written and should be retried later.

    Errors never propagate out of write(); they are logged instead.
    """

    def __init__(
        self,
        config: StoreConfig,
        gate: WriteGate,
        rollover: RolloverController | None = None,
    ):
        self.config = config
        self._gate = gate
        self._rollover = rollover

    def _open_storage(self) -> StorageHandle:
        return StorageHandle.open(
            self.config.database_path,
            self.config.table_name,
            max_database_bytes=self.config.max_database_bytes,
            timeout=self.config.busy_timeout,
        )

    def write(self, records: Sequence[LogRecord]) -> bool:
        """Write records in order inside one transaction.

        Args:
            records: Encoded records, inserted in the given order

        Returns:
            True if handled, False if the caller should retry later
        """
        if not records:
            return True

        with self._gate:
            try:
                with self._open_storage() as storage:
                    try:
                        storage.insert_batch(records)
                        return True
                    except StorageFullError as e:
                        logger.warning(f"Database {storage.path} is full: {e}")
                        if self._rollover is None:
                            logger.warning(
                                f"Discarding {len(records)} log records in excess of max database size"
                            )
                            return True
                        return self._roll_over_and_retry(storage, records)
            except StorageOpenError as e:
                logger.error(f"Failed to open log database: {e}")
                return False
            except sqlite3.Error as e:
                logger.error(f"Failed to write {len(records)} log records: {e}")
                return False
            except Exception:
                logger.exception(f"Unexpected error writing {len(records)} log records")
                return False

    def _roll_over_and_retry(self, storage: StorageHandle, records: Sequence[LogRecord]) -> bool:
        """Roll the database over and retry the pending batch exactly once."""
        try:
            self._rollover.roll_over(storage)
        except RolloverError as e:
            logger.error(f"Rollover failed, batch of {len(records)} not written: {e}")
            return False

        try:
            storage.insert_batch(records)
        except StorageFullError as e:
            logger.error(f"Batch of {len(records)} does not fit after rollover: {e}")
            return False
        return True
