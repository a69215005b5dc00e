"""Bridge from the standard logging module into a buffered log store."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from ..core.types import LogEvent, LogLevel

if TYPE_CHECKING:
    from ..interfaces.sink import EventSink

# Attributes every logging.LogRecord carries; anything else came from extra=
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime", "taskName"}

SOURCE_CONTEXT_PROPERTY = "SourceContext"

# The store's own diagnostics are never written back into the store
SELF_LOGGER_PREFIX = __name__.split(".")[0]


def record_properties(record: logging.LogRecord) -> dict[str, Any]:
    """Collect extra= fields, mapping-style args and the logger name."""
    properties: dict[str, Any] = {SOURCE_CONTEXT_PROPERTY: record.name}
    if isinstance(record.args, dict):
        properties.update(record.args)
    for key, value in vars(record).items():
        if key not in _RESERVED_ATTRS and not key.startswith("_"):
            properties[key] = value
    return properties


def event_from_record(record: logging.LogRecord, formatter: logging.Formatter) -> LogEvent:
    exception = None
    if record.exc_info:
        exception = formatter.formatException(record.exc_info)
    elif record.exc_text:
        exception = record.exc_text

    return LogEvent(
        message_template=str(record.msg),
        level=LogLevel.from_logging(record.levelno),
        properties=record_properties(record),
        timestamp=datetime.fromtimestamp(record.created).astimezone(),
        exception=exception,
        rendered_message=record.getMessage(),
    )


class SQLiteLogHandler(logging.Handler):
    """A logging handler that forwards records to a buffered log store.

    emit() only enqueues; the store's flush worker performs the writes,
    so logging calls never wait on the database.

    Args:
        sink: Buffered store (or any EventSink) receiving the events
        level: Minimum log level to capture
        close_sink: Whether closing the handler also closes the sink
    """

    def __init__(self, sink: EventSink, level: int = logging.NOTSET, close_sink: bool = True):
        super().__init__(level)
        self.sink = sink
        self.close_sink = close_sink
        self._exception_formatter = logging.Formatter()

    def emit(self, record: logging.LogRecord) -> None:
        if record.name == SELF_LOGGER_PREFIX or record.name.startswith(SELF_LOGGER_PREFIX + "."):
            return
        try:
            formatter = self.formatter or self._exception_formatter
            self.sink.emit(event_from_record(record, formatter))
        except Exception:
            self.handleError(record)

    def flush(self) -> None:
        self.sink.flush(timeout=10.0)

    def close(self) -> None:
        try:
            if self.close_sink:
                self.sink.close()
        finally:
            super().close()
