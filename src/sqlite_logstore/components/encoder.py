"""Record encoder.

Turns a LogEvent into the fixed column set of the log table: rendered
message, JSON properties, full event JSON and the extracted user fields.
"""

from __future__ import annotations

import json
import re
import traceback
from collections.abc import Callable, Mapping
from datetime import date, datetime, timezone
from typing import Any, Optional

from ..core.config import TIMESTAMP_FORMAT
from ..core.types import LogEvent, LogLevel, LogRecord

FormatProvider = Callable[[Any, Optional[str]], str]

USER_NAME_PROPERTY = "UserName"
CLIENT_IP_PROPERTY = "ClientIP"
CLIENT_AGENT_PROPERTY = "ClientAgent"

# {{ and }} escapes, or a hole: {[@$]Name[,alignment][:format]}
_TOKEN_RE = re.compile(
    r"\{\{|\}\}"
    r"|\{(?P<op>[@$]?)(?P<name>[A-Za-z0-9_]+)"
    r"(?:,(?P<align>-?\d+))?"
    r"(?::(?P<fmt>[^{}]+))?\}"
)


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)


CIRCULAR_REFERENCE = "[Circular]"


def _sanitize(value: Any, path: frozenset[int] = frozenset()) -> Any:
    """Copy value with text keys and cycles cut, so json.dumps cannot fail."""
    if isinstance(value, (Mapping, list, tuple, set, frozenset)):
        if id(value) in path:
            return CIRCULAR_REFERENCE
        path = path | {id(value)}
        if isinstance(value, Mapping):
            return {
                key if isinstance(key, str) else str(key): _sanitize(item, path)
                for key, item in value.items()
            }
        return [_sanitize(item, path) for item in value]
    if value is None or isinstance(value, (str, int, float)):
        return value
    return _json_default(value)


def to_json(value: Any) -> str:
    """Serialize to JSON. Non-text keys are stringified and cycles replaced."""
    try:
        return json.dumps(value, default=_json_default, ensure_ascii=False)
    except (TypeError, ValueError):
        return json.dumps(_sanitize(value), default=_json_default, ensure_ascii=False)


def format_timestamp(timestamp: datetime, utc: bool = False) -> str:
    """Format as yyyy-MM-ddTHH:mm:ss.fff, optionally converted to UTC first."""
    if utc:
        timestamp = timestamp.astimezone(timezone.utc)
    return f"{timestamp.strftime(TIMESTAMP_FORMAT)}.{timestamp.microsecond // 1000:03d}"


def _render_value(
    value: Any, op: str, fmt: str | None, format_provider: FormatProvider | None
) -> str:
    if op == "@":
        return to_json(value)
    if op == "$":
        return str(value)
    if format_provider is not None:
        return format_provider(value, fmt)
    if value is None:
        return "null"
    if fmt:
        try:
            return format(value, fmt)
        except (TypeError, ValueError):
            return str(value)
    return str(value)


def render_template(
    template: str,
    properties: Mapping[str, Any],
    format_provider: FormatProvider | None = None,
) -> str:
    """Render a message template against its properties.

    Holes without a matching property are left verbatim.

    Args:
        template: Message template, e.g. "User {UserName} logged in"
        properties: Values for the template holes
        format_provider: Optional (value, format_spec) -> str override

    Returns:
        Rendered message text
    """

    def _replace(match: re.Match[str]) -> str:
        token = match.group(0)
        if token == "{{":
            return "{"
        if token == "}}":
            return "}"
        name = match.group("name")
        if name not in properties:
            return token
        text = _render_value(
            properties[name], match.group("op"), match.group("fmt"), format_provider
        )
        align = match.group("align")
        if align:
            width = int(align)
            text = text.rjust(width) if width > 0 else text.ljust(-width)
        return text

    return _TOKEN_RE.sub(_replace, template)


def level_label(level: LogLevel | str) -> str:
    return level.value if isinstance(level, LogLevel) else str(level)


def exception_text(exception: BaseException | str | None) -> str:
    if exception is None:
        return ""
    if isinstance(exception, BaseException):
        return "".join(
            traceback.format_exception(type(exception), exception, exception.__traceback__)
        )
    return str(exception)


def event_to_json(event: LogEvent) -> str:
    """Serialize the full event: Timestamp, Level, MessageTemplate, Exception, Properties."""
    payload: dict[str, Any] = {
        "Timestamp": event.timestamp.isoformat(),
        "Level": level_label(event.level),
        "MessageTemplate": event.message_template,
    }
    if event.exception is not None:
        payload["Exception"] = exception_text(event.exception)
    payload["Properties"] = dict(event.properties)
    return to_json(payload)


def _property_text(properties: Mapping[str, Any], key: str) -> str:
    value = properties.get(key)
    return "" if value is None else str(value)


def encode_event(
    event: LogEvent,
    store_timestamp_in_utc: bool = False,
    format_provider: FormatProvider | None = None,
) -> LogRecord:
    """Encode a log event into a LogRecord. Never raises for well-formed events."""
    properties = event.properties
    if event.rendered_message is not None:
        message = event.rendered_message
    else:
        message = render_template(event.message_template, properties, format_provider)

    return LogRecord(
        timestamp=format_timestamp(event.timestamp, store_timestamp_in_utc),
        level=level_label(event.level),
        exception=exception_text(event.exception),
        message=message,
        message_template=event.message_template,
        properties=to_json(dict(properties)) if properties else "",
        log_event=event_to_json(event),
        user_name=_property_text(properties, USER_NAME_PROPERTY),
        client_ip=_property_text(properties, CLIENT_IP_PROPERTY),
        client_agent=_property_text(properties, CLIENT_AGENT_PROPERTY),
    )
