"""
Logging setup for applications and the CLI.

Library modules only create loggers (`logging.getLogger(__name__)`) and pass
structured fields through `extra`. `configure_logging` renders those fields
as `key=value` pairs and redacts credentials before anything is written.
"""

from __future__ import annotations

import logging
import re
import sys
from dataclasses import dataclass
from typing import TextIO

_STANDARD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__.keys()
) | {"message", "asctime"}

_REDACTIONS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"(?i)(bearer\s+)[A-Za-z0-9\-._~+/]+=*"), r"\1[REDACTED]"),
    (re.compile(r"(?i)(access_token=)[^&\s]+"), r"\1[REDACTED]"),
    (re.compile(r"(?i)(client_secret=)[^&\s]+"), r"\1[REDACTED]"),
)


def redact(text: str) -> str:
    for pattern, replacement in _REDACTIONS:
        text = pattern.sub(replacement, text)
    return text


class RedactionFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact(record.msg)
        for key, value in list(record.__dict__.items()):
            if key not in _STANDARD_ATTRS and isinstance(value, str):
                setattr(record, key, redact(value))
        return True


class KeyValueFormatter(logging.Formatter):
    """`2024-01-01T00:00:00 INFO graphlink.http graph_response status=200 ...`."""

    def __init__(self) -> None:
        super().__init__(fmt="%(asctime)s %(levelname)s %(name)s %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        fields = [
            f"{key}={value}"
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS and value is not None
        ]
        return f"{base} {' '.join(fields)}" if fields else base


@dataclass(slots=True)
class LoggingState:
    level: int
    handlers: list[logging.Handler]


def configure_logging(level: str | int = "info", *, stream: TextIO | None = None) -> LoggingState:
    """Install a redacting key=value handler on the `graphlink` logger tree."""
    root = logging.getLogger("graphlink")
    previous = LoggingState(level=root.level, handlers=list(root.handlers))

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(KeyValueFormatter())
    handler.addFilter(RedactionFilter())

    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level.upper() if isinstance(level, str) else level)
    return previous


def restore_logging(state: LoggingState) -> None:
    root = logging.getLogger("graphlink")
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in state.handlers:
        root.addHandler(handler)
    root.setLevel(state.level)
