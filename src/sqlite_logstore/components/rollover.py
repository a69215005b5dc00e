"""Rollover of a full database file.

Backs the live file up to a timestamped sibling, then empties and
compacts the live file so writes can continue.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from ..core.errors import RolloverError

if TYPE_CHECKING:
    from ..interfaces.storage import LogStorage

logger = logging.getLogger(__name__)

# Used when the database path carries no directory component
DEFAULT_BACKUP_DIR = "Logs"


def backup_path_for(database_path: str | Path, now: datetime) -> Path:
    """Build <stem>-<yyyyMMdd_HHmmss.ff><ext> beside the database file."""
    path = Path(database_path)
    # A bare file name such as "logs.db" has no directory component
    directory = path.parent if len(path.parts) > 1 else Path(DEFAULT_BACKUP_DIR)
    stamp = f"{now.strftime('%Y%m%d_%H%M%S')}.{now.microsecond // 10_000:02d}"
    return directory / f"{path.stem}-{stamp}{path.suffix}"


class RolloverController:
    """Moves the contents of a full database aside.

    Args:
        database_path: Path of the live database file
        clock: Returns the current local time, used for the backup name

    Invariants:
        - The backup is complete before anything on the live file is deleted
        - A failed backup leaves the live file untouched
    """

    def __init__(self, database_path: str | Path, clock: Callable[[], datetime] = datetime.now):
        self.database_path = Path(database_path)
        self._clock = clock

    def backup_path(self) -> Path:
        return backup_path_for(self.database_path, self._clock())

    def roll_over(self, storage: LogStorage) -> Path:
        """Back up the live database, then truncate and vacuum it.

        Must be called while the write gate is held.

        Args:
            storage: Open handle on the live database

        Returns:
            Path of the backup file

        Raises:
            RolloverError: If the backup could not be written
            sqlite3.Error: If truncating the live file failed
        """
        target = self.backup_path()
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            storage.backup_to(target)
        except (OSError, sqlite3.Error) as e:
            logger.error(f"Rollover aborted, backup to {target} failed: {e}")
            raise RolloverError(f"Failed to back up {self.database_path} to {target}: {e}") from e

        storage.truncate()
        logger.info(f"Rolling database to {target}")
        return target
