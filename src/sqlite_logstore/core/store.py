"""SQLite log store - main public API.

Orchestrates the encoder, batch writer, rollover and retention sweeper
around a single write gate.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from ..components.encoder import encode_event
from ..components.gate import WriteGate
from ..components.retention import RetentionSweeper
from ..components.rollover import RolloverController
from ..components.storage import StorageHandle
from ..components.writer import BatchWriter

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    from ..components.encoder import FormatProvider
    from .config import StoreConfig
    from .types import LogEvent

logger = logging.getLogger(__name__)


class SQLiteLogStore:
    """Durable, size-bounded log store backed by one SQLite file.

    Args:
        config: Store configuration
        gate: Write gate for the database file. The default is a new gate
            owned by this store only, not one shared per file, so pass the
            same gate to every store writing the same file.
        format_provider: Optional (value, format_spec) -> str used when
            rendering message templates

    Public API:
        - write_batch(events): Persist a batch; False means retry later
        - write_batch_async(events): Same, awaited from a worker thread
        - apply_retention_policy(): Run one retention sweep now
        - close(): Stop background work

    Invariants:
        - Batch writes and retention sweeps never run concurrently
        - A batch is committed entirely or not at all
        - Configuration errors are raised here, never from write_batch
    """

    def __init__(
        self,
        config: StoreConfig,
        gate: WriteGate | None = None,
        format_provider: FormatProvider | None = None,
    ):
        self.config = config
        self._gate = gate if gate is not None else WriteGate(config.database_path)
        self._format_provider = format_provider

        if config.auto_create_table:
            self._initialize_database()

        self._rollover = RolloverController(config.database_path) if config.roll_over else None
        self._writer = BatchWriter(config, self._gate, self._rollover)

        self._sweeper: RetentionSweeper | None = None
        if config.retention_period is not None:
            self._sweeper = RetentionSweeper(config, self._gate)
            self._sweeper.start()

        logger.info(f"Initialized SQLite log store at {config.database_path}")

    @property
    def gate(self) -> WriteGate:
        return self._gate

    @property
    def sweeper(self) -> RetentionSweeper | None:
        return self._sweeper

    def _open_storage(self) -> StorageHandle:
        return StorageHandle.open(
            self.config.database_path,
            self.config.table_name,
            max_database_bytes=self.config.max_database_bytes,
            timeout=self.config.busy_timeout,
        )

    def _initialize_database(self) -> None:
        """Create the log table (WAL mode is set by every handle)."""
        with self._gate:
            with self._open_storage() as storage:
                storage.ensure_schema()

    def write_batch(self, events: Sequence[LogEvent]) -> bool:
        """Encode and persist a batch of events.

        Returns:
            True if handled, False if the batch should be retried later
        """
        if not events:
            return True
        records = []
        for event in events:
            try:
                records.append(
                    encode_event(event, self.config.store_timestamp_in_utc, self._format_provider)
                )
            except Exception:
                # An event that cannot be encoded never will be; drop it alone
                logger.exception(f"Failed to encode log event {event.message_template!r}")
        return self._writer.write(records)

    async def write_batch_async(self, events: Sequence[LogEvent]) -> bool:
        """Persist a batch without blocking the event loop."""
        return await asyncio.to_thread(self.write_batch, events)

    def apply_retention_policy(self, now: datetime | None = None) -> int:
        """Run one retention sweep immediately.

        Returns:
            Number of rows deleted (0 when no retention period is configured)
        """
        if self._sweeper is None:
            return 0
        return self._sweeper.sweep(now)

    def close(self) -> None:
        """Stop the retention sweeper."""
        logger.info("Closing SQLite log store")
        if self._sweeper is not None:
            self._sweeper.stop()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
