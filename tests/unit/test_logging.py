"""Unit tests for netclock._logging — JSON formatter and root logger setup.

Test Techniques Used:
    - Specification-based Testing: JsonFormatter schema, context fields,
      TextFormatter suffix
    - State Inspection: Root logger handler/level after configure
    - Fixture Isolation: Save/restore root logger state
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Iterator
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import pytest

from netclock._logging import JsonFormatter, TextFormatter, configure_logging
from netclock._settings import LoggingSettings


@pytest.fixture
def _restore_root_logger() -> Iterator[None]:
    """Save and restore root logger handlers and level."""
    root = logging.getLogger()
    original_handlers = root.handlers[:]
    original_level = root.level
    yield
    for h in root.handlers:
        if h not in original_handlers:
            h.close()
    root.handlers = original_handlers
    root.setLevel(original_level)


def _record(**record_attrs: Any) -> logging.LogRecord:
    record = logging.LogRecord(
        name="netclock._pool",
        level=logging.WARNING,
        pathname="_pool.py",
        lineno=1,
        msg="Skipping %s",
        args=("bad.example",),
        exc_info=None,
    )
    for name, value in record_attrs.items():
        setattr(record, name, value)
    return record


def _format(formatter: JsonFormatter, **record_attrs: Any) -> dict[str, Any]:
    return json.loads(formatter.format(_record(**record_attrs)))


class TestJsonFormatter:
    """Tests for JsonFormatter output schema.

    Technique: Specification-based Testing — verifying the
    JSON structure emitted by the formatter.
    """

    def test_core_fields(self) -> None:
        entry = _format(JsonFormatter(service="netclock"))

        assert entry["level"] == "WARNING"
        assert entry["logger"] == "netclock._pool"
        assert entry["message"] == "Skipping bad.example"
        assert entry["service"] == "netclock"

    def test_timestamp_is_utc_iso8601(self) -> None:
        entry = _format(JsonFormatter(service="netclock"), created=1_700_000_000.0)

        parsed = datetime.fromisoformat(entry["timestamp"])
        assert parsed.tzinfo == UTC
        assert parsed == datetime(2023, 11, 14, 22, 13, 20, tzinfo=UTC)

    @pytest.mark.parametrize(("version", "present"), [("1.2.3", True), ("", False)])
    def test_version_only_when_set(self, version: str, present: bool) -> None:
        entry = _format(JsonFormatter(service="netclock", version=version))

        assert ("version" in entry) is present

    def test_exception_included_when_present(self) -> None:
        try:
            raise ValueError("boom")
        except ValueError:
            exc_info = sys.exc_info()

        entry = _format(JsonFormatter(), exc_info=exc_info)

        assert "ValueError: boom" in entry["exception"]

    def test_stack_info_included_when_present(self) -> None:
        entry = _format(JsonFormatter(), stack_info="Stack trace here")

        assert "Stack trace" in entry["stack_info"]

    def test_context_fields_copied_from_extra(self) -> None:
        entry = _format(JsonFormatter(), cycle=3, peer="192.0.2.1", offset=0.25)

        assert entry["cycle"] == 3
        assert entry["peer"] == "192.0.2.1"
        assert entry["offset"] == 0.25
        assert "host" not in entry

    def test_context_from_logger_extra(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        caplog.set_level(logging.WARNING, logger="netclock.test")

        logging.getLogger("netclock.test").warning(
            "Skipping %s", "bad.example", extra={"host": "bad.example"}
        )

        entry = json.loads(JsonFormatter().format(caplog.records[-1]))
        assert entry["host"] == "bad.example"
        assert entry["message"] == "Skipping bad.example"


class TestTextFormatter:
    """Technique: Specification-based Testing on rendered lines."""

    def test_plain_line_without_context(self) -> None:
        line = TextFormatter().format(_record())

        assert line.endswith("[WARNING] netclock._pool: Skipping bad.example")

    def test_context_suffix_in_field_order(self) -> None:
        line = TextFormatter().format(_record(peer="192.0.2.1", cycle=2))

        assert line.endswith("Skipping bad.example [cycle=2 peer=192.0.2.1]")


class TestConfigureLogging:
    """Tests for configure_logging() root logger setup.

    Technique: State Inspection — examining root logger
    state after configuration.
    """

    @pytest.mark.usefixtures("_restore_root_logger")
    def test_json_mode_sets_json_formatter(self) -> None:
        """JSON format installs JsonFormatter on handler."""
        settings = LoggingSettings(format="json")
        configure_logging(settings, service="test")

        root = logging.getLogger()
        assert len(root.handlers) >= 1
        handler = root.handlers[0]
        assert isinstance(handler.formatter, JsonFormatter)

    @pytest.mark.usefixtures("_restore_root_logger")
    def test_text_mode_sets_standard_formatter(
        self,
    ) -> None:
        """Text format installs standard Formatter."""
        settings = LoggingSettings(format="text")
        configure_logging(settings, service="test")

        root = logging.getLogger()
        assert len(root.handlers) >= 1
        handler = root.handlers[0]
        assert isinstance(handler.formatter, TextFormatter)
        assert not isinstance(handler.formatter, JsonFormatter)

    @pytest.mark.usefixtures("_restore_root_logger")
    def test_sets_root_logger_level(self) -> None:
        """Root logger level matches settings.level."""
        settings = LoggingSettings(level="WARNING")
        configure_logging(settings, service="test")

        root = logging.getLogger()
        assert root.level == logging.WARNING

    @pytest.mark.usefixtures("_restore_root_logger")
    def test_clears_existing_handlers(self) -> None:
        """Existing handlers are removed before adding."""
        root = logging.getLogger()
        dummy = logging.StreamHandler()
        root.addHandler(dummy)
        initial_count = len(root.handlers)
        assert initial_count >= 1

        settings = LoggingSettings()
        configure_logging(settings, service="test")

        # Only the fresh handler(s) should remain
        for h in root.handlers:
            assert h is not dummy

    @pytest.mark.usefixtures("_restore_root_logger")
    def test_file_handler_added_when_file_set(self, tmp_path: Path) -> None:
        """RotatingFileHandler is added when file is set."""
        settings = LoggingSettings(file=str(tmp_path / "test.log"))
        configure_logging(settings, service="test")

        root = logging.getLogger()
        rotating = [h for h in root.handlers if isinstance(h, RotatingFileHandler)]
        assert len(rotating) == 1
        assert rotating[0].maxBytes == 10 * 1024 * 1024
        assert rotating[0].backupCount == 3

    @pytest.mark.usefixtures("_restore_root_logger")
    def test_file_size_follows_settings(self, tmp_path: Path) -> None:
        """max_file_size_mb and backup_count reach the rotating handler."""
        settings = LoggingSettings(
            file=str(tmp_path / "netclock.log"),
            max_file_size_mb=2,
            backup_count=0,
        )
        configure_logging(settings)

        root = logging.getLogger()
        rotating = [h for h in root.handlers if isinstance(h, RotatingFileHandler)]
        assert rotating[0].maxBytes == 2 * 1024 * 1024
        assert rotating[0].backupCount == 0

    @pytest.mark.usefixtures("_restore_root_logger")
    def test_default_service_name_in_json_lines(self, tmp_path: Path) -> None:
        """Records written to the log file carry the netclock service name."""
        log_file = tmp_path / "netclock.log"
        settings = LoggingSettings(format="json", file=str(log_file))
        configure_logging(settings, version="9.9.9")

        logging.getLogger("netclock.test").warning("offset %+.3f", 0.25)
        for handler in logging.getLogger().handlers:
            handler.flush()

        entry = json.loads(log_file.read_text().splitlines()[-1])
        assert entry["service"] == "netclock"
        assert entry["version"] == "9.9.9"
        assert entry["message"] == "offset +0.250"
        assert entry["logger"] == "netclock.test"
