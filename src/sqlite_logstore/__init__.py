"""SQLite log store - durable, size-bounded log persistence in Python."""

from .core.buffered_store import BufferedLogStore
from .core.config import StoreConfig
from .core.errors import (
    LogStoreError,
    ConfigurationError,
    StorageOpenError,
    StorageFullError,
    RolloverError,
)
from .core.store import SQLiteLogStore
from .core.types import LogEvent, LogLevel, LogRecord
from .components.encoder import encode_event, render_template
from .components.gate import WriteGate
from .components.handler import SQLiteLogHandler

__all__ = [
    "StoreConfig",
    "LogStoreError",
    "ConfigurationError",
    "StorageOpenError",
    "StorageFullError",
    "RolloverError",
    "SQLiteLogStore",
    "BufferedLogStore",
    "SQLiteLogHandler",
    "WriteGate",
    "LogEvent",
    "LogLevel",
    "LogRecord",
    "encode_event",
    "render_template",
]
