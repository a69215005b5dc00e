"""Write gate serializing access to the database file."""

from __future__ import annotations

import logging
import threading

logger = logging.getLogger(__name__)


class WriteGate:
    """Binary gate held for one unit of work against the database file.

    Batch writes, rollovers and retention sweeps all pass through the same
    gate, so none of them runs against the file concurrently. Stores sharing
    a database file inside one process must share one gate.
    """

    def __init__(self, name: str = "logstore"):
        self.name = name
        self._lock = threading.Lock()

    def acquire(self, timeout: float | None = None) -> bool:
        """Wait for the gate. Returns False if timeout elapsed first."""
        if self._lock.acquire(blocking=False):
            return True
        logger.debug(f"Waiting for write gate {self.name}")
        if timeout is None:
            return self._lock.acquire()
        return self._lock.acquire(timeout=timeout)

    def release(self) -> None:
        self._lock.release()

    def locked(self) -> bool:
        return self._lock.locked()

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False
