"""Buffered log store with a background flush worker.

Extends SQLiteLogStore so producers can emit single events without
touching the database; a worker thread drains them in batches.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import TYPE_CHECKING

from .store import SQLiteLogStore

if TYPE_CHECKING:
    from ..components.encoder import FormatProvider
    from ..components.gate import WriteGate
    from .config import StoreConfig
    from .types import LogEvent

logger = logging.getLogger(__name__)

# Dropped events are reported on the first drop and then every N drops
DROP_REPORT_EVERY = 1000


class BufferedLogStore(SQLiteLogStore):
    """Log store with an in-memory buffer and background batch writes.

    Extends SQLiteLogStore to add:
    - emit(): non-blocking enqueue of single events
    - Background flush worker writing up to batch_size events at a time
    - Bounded buffer: events beyond max_buffer_size are dropped and counted
    - Retry of failed batches on the next flush period

    Args:
        config: Store configuration
        gate: Write gate for the database file
        format_provider: Optional value formatter for message templates

    Public API (in addition to SQLiteLogStore):
        - emit(event): Buffer an event; False if it was dropped
        - flush(timeout=None): Wait until the buffer is drained
        - pending_count(): Number of buffered events
        - dropped_count: Events dropped because the buffer was full
    """

    def __init__(
        self,
        config: StoreConfig,
        gate: WriteGate | None = None,
        format_provider: FormatProvider | None = None,
    ):
        """Initialize buffered store and start the flush worker."""
        super().__init__(config, gate=gate, format_provider=format_provider)

        self._buffer: deque[LogEvent] = deque()
        self._cond = threading.Condition()
        self._in_flight: int = 0
        self._shutdown: bool = False
        self._retry_wait = threading.Event()
        self.dropped_count: int = 0

        self._worker_thread: threading.Thread = threading.Thread(
            target=self._flush_worker, daemon=True, name="LogStoreFlushWorker"
        )
        self._worker_thread.start()

        logger.info("Initialized BufferedLogStore with background flush worker")

    def emit(self, event: LogEvent) -> bool:
        """Buffer an event for the next batch.

        Returns:
            True if buffered, False if dropped (buffer full or store closed)
        """
        with self._cond:
            if self._shutdown:
                self.dropped_count += 1
                return False
            if len(self._buffer) >= self.config.max_buffer_size:
                self.dropped_count += 1
                if self.dropped_count == 1 or self.dropped_count % DROP_REPORT_EVERY == 0:
                    logger.warning(
                        f"Log buffer full ({self.config.max_buffer_size} events), "
                        f"{self.dropped_count} events dropped so far"
                    )
                return False
            self._buffer.append(event)
            if len(self._buffer) >= self.config.batch_size:
                self._cond.notify_all()
        return True

    def pending_count(self) -> int:
        with self._cond:
            return len(self._buffer) + self._in_flight

    def flush(self, timeout: float | None = None) -> bool:
        """Wait until every buffered event has been handled.

        Args:
            timeout: Maximum time to wait in seconds (None = infinite)

        Returns:
            True if the buffer drained, False on timeout
        """
        with self._cond:
            self._cond.notify_all()
            return self._cond.wait_for(
                lambda: not self._buffer and self._in_flight == 0, timeout=timeout
            )

    def _next_batch(self) -> list[LogEvent] | None:
        """Block until a batch is due. Returns None once shut down and drained."""
        batch_size = self.config.batch_size
        with self._cond:
            if not self._shutdown and len(self._buffer) < batch_size:
                self._cond.wait(timeout=self.config.flush_period)
            if self._shutdown and not self._buffer:
                return None
            count = min(batch_size, len(self._buffer))
            batch = [self._buffer.popleft() for _ in range(count)]
            self._in_flight = len(batch)
            return batch

    def _flush_worker(self) -> None:
        """Background thread that writes buffered events in batches."""
        logger.info("Flush worker started")

        while True:
            batch = self._next_batch()
            if batch is None:
                break
            if not batch:
                continue

            try:
                written = self.write_batch(batch)
            except Exception:
                logger.exception("Error in flush worker")
                written = False

            with self._cond:
                self._in_flight = 0
                if not written:
                    if self._shutdown:
                        logger.error(f"Dropping {len(batch)} events, store is closing")
                    else:
                        self._buffer.extendleft(reversed(batch))
                self._cond.notify_all()

            if not written and not self._shutdown:
                # back off one period before retrying the same batch
                self._retry_wait.wait(self.config.flush_period)

        logger.info("Flush worker stopped")

    def close(self, timeout: float = 10.0) -> None:
        """Drain the buffer, stop the flush worker, then close the store."""
        logger.info("Shutting down BufferedLogStore")

        with self._cond:
            self._shutdown = True
            self._cond.notify_all()
        self._retry_wait.set()

        if self._worker_thread.is_alive():
            self._worker_thread.join(timeout=timeout)
            if self._worker_thread.is_alive():
                logger.warning("Flush worker did not shut down cleanly")

        super().close()
