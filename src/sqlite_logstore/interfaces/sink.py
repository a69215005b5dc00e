"""Protocol definition for event sinks."""

from __future__ import annotations

from typing import Protocol

from ..core.types import LogEvent


class EventSink(Protocol):
    """Consumer of single events, buffering them internally."""

    def emit(self, event: LogEvent) -> bool:
        """Accept an event; False if it was dropped."""
        ...

    def flush(self, timeout: float | None = None) -> bool:
        """Wait until buffered events are handled."""
        ...

    def close(self) -> None:
        """Flush and release resources."""
        ...
