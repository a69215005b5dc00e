"""Common type definitions for the SQLite log store.

Defines the incoming log event and the encoded row written to the table.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class LogLevel(Enum):
    """Severity labels stored in the Level column."""

    VERBOSE = "Verbose"
    DEBUG = "Debug"
    INFORMATION = "Information"
    WARNING = "Warning"
    ERROR = "Error"
    FATAL = "Fatal"

    @classmethod
    def from_logging(cls, levelno: int) -> LogLevel:
        """Map a standard library logging level number to a LogLevel."""
        if levelno >= logging.CRITICAL:
            return cls.FATAL
        if levelno >= logging.ERROR:
            return cls.ERROR
        if levelno >= logging.WARNING:
            return cls.WARNING
        if levelno >= logging.INFO:
            return cls.INFORMATION
        if levelno >= logging.DEBUG:
            return cls.DEBUG
        return cls.VERBOSE


def _now() -> datetime:
    return datetime.now().astimezone()


@dataclass(frozen=True)
class LogEvent:
    """A structured log event as delivered by a producer.

    Attributes:
        timestamp: When the event occurred (naive values are local time)
        level: Severity of the event
        message_template: Unrendered message template, e.g. "Hello {Name}"
        properties: Structured values referenced by the template and extras
        exception: Exception object or preformatted exception text
        rendered_message: Message already rendered by the producer, if any
    """

    message_template: str
    level: LogLevel | str = LogLevel.INFORMATION
    properties: Mapping[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=_now)
    exception: BaseException | str | None = None
    rendered_message: str | None = None


@dataclass(frozen=True)
class LogRecord:
    """Encoded log row. Every field is text; absence is the empty string."""

    timestamp: str
    level: str
    exception: str
    message: str
    message_template: str
    properties: str
    log_event: str
    user_name: str
    client_ip: str
    client_agent: str

    def as_row(self) -> tuple[str, ...]:
        """Column values in COLUMNS order."""
        return (
            self.timestamp,
            self.level,
            self.exception,
            self.message,
            self.properties,
            self.message_template,
            self.log_event,
            self.user_name,
            self.client_ip,
            self.client_agent,
        )


# Insert column order, matching LogRecord.as_row()
COLUMNS = (
    "TimeStamp",
    "Level",
    "Exception",
    "Message",
    "Properties",
    "MessageTemplate",
    "LogEvent",
    "UserName",
    "ClientIP",
    "ClientAgent",
)
