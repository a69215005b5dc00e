"""SQLite log store core package."""

from .buffered_store import BufferedLogStore
from .store import SQLiteLogStore

__all__ = ["SQLiteLogStore", "BufferedLogStore"]
