"""Log formatting for netclock.

Library modules log through ``logging.getLogger(__name__)`` and attach
synchronization context with ``extra=``:

- ``cycle`` — synchronization cycle number (controller)
- ``host`` — configured host name being resolved (pool)
- ``peer`` — peer address (pool, NTP associations)
- ``offset`` — offset in seconds, local minus reference

Handlers are left to the application.  The console script calls
:func:`configure_logging`, which renders those fields either as a
bracketed suffix (``text``) or as top-level keys of one JSON object
per record (``json``).
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from typing import Any

from netclock._settings import LoggingSettings

CONTEXT_FIELDS: tuple[str, ...] = ("cycle", "host", "peer", "offset")
"""Record attributes copied into formatted output when present."""

_MEGABYTE = 1024 * 1024

_TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def record_context(record: logging.LogRecord) -> dict[str, Any]:
    """Return the :data:`CONTEXT_FIELDS` set on *record*, in order."""
    context: dict[str, Any] = {}
    for name in CONTEXT_FIELDS:
        value = getattr(record, name, None)
        if value is not None:
            context[name] = value
    return context


class TextFormatter(logging.Formatter):
    """Human-readable lines with a ``[cycle=.. peer=..]`` suffix."""

    def __init__(self) -> None:
        super().__init__(_TEXT_FORMAT)

    def formatMessage(self, record: logging.LogRecord) -> str:  # noqa: N802
        line = super().formatMessage(record)
        context = record_context(record)
        if not context:
            return line
        pairs = " ".join(f"{key}={value}" for key, value in context.items())
        return f"{line} [{pairs}]"


class JsonFormatter(logging.Formatter):
    """One JSON object per record (NDJSON).

    Keys: ``timestamp`` (ISO 8601, UTC, taken from the local clock and
    not corrected by any network offset), ``level``, ``logger``,
    ``message``, ``service``, then ``version`` when configured, any
    :data:`CONTEXT_FIELDS` present on the record, and ``exception`` /
    ``stack_info`` when the record carries them.

    Args:
        service: Value of the ``service`` key.
        version: Value of the ``version`` key; omitted when empty.
    """

    def __init__(self, *, service: str = "", version: str = "") -> None:
        super().__init__()
        self._service = service
        self._version = version

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=UTC)
        entry: dict[str, Any] = {
            "timestamp": created.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self._service,
        }
        if self._version:
            entry["version"] = self._version
        entry.update(record_context(record))

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            entry["stack_info"] = self.formatStack(record.stack_info)

        # default=str keeps odd extras (paths, enums) from breaking a line
        return json.dumps(entry, default=str)


def configure_logging(
    settings: LoggingSettings,
    *,
    service: str = "netclock",
    version: str = "",
) -> None:
    """Install netclock's handlers on the root logger.

    Existing root handlers are removed.  Records go to ``stderr`` and,
    when ``settings.file`` is set, to a
    :class:`~logging.handlers.RotatingFileHandler` that rotates at
    ``settings.max_file_size_mb`` and keeps ``settings.backup_count``
    old files.

    Args:
        settings: Level, format and file options.
        service: ``service`` key of JSON records.
        version: ``version`` key of JSON records.
    """
    formatter: logging.Formatter
    if settings.format == "json":
        formatter = JsonFormatter(service=service, version=version)
    else:
        formatter = TextFormatter()

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if settings.file is not None:
        handlers.append(
            RotatingFileHandler(
                settings.file,
                maxBytes=settings.max_file_size_mb * _MEGABYTE,
                backupCount=settings.backup_count,
            )
        )

    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(settings.level)
