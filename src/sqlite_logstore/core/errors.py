"""Exception hierarchy for the SQLite log store.

Defines all custom exceptions used throughout the implementation.
"""

from __future__ import annotations


class LogStoreError(Exception):
    """Base exception for all log store errors."""
    pass


class ConfigurationError(LogStoreError):
    """Raised at construction when the store configuration is invalid."""
    pass


class StorageOpenError(LogStoreError):
    """Raised when the database file cannot be opened or created."""
    pass


class StorageFullError(LogStoreError):
    """Raised when SQLite reports the database has reached its size limit."""
    pass


class RolloverError(LogStoreError):
    """Raised when the backup copy taken before a rollover fails."""
    pass
