# SPDX-License-Identifier: Apache-2.0
"""Tests for kvsim.logging_config module."""

import json
import logging

import pytest

from kvsim.logging_config import (
    TRACE,
    JsonFormatter,
    SessionContextFilter,
    SessionLogContext,
    configure_file_logging,
    configure_logging,
    get_session_id,
    parse_log_level,
    set_session_id,
)


@pytest.fixture
def restore_root_logger():
    """Restore root logger handlers and levels changed by configure_*."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    kvsim_level = logging.getLogger("kvsim").level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.getLogger("kvsim").setLevel(kvsim_level)


def _record(msg="hello", **extra):
    record = logging.LogRecord("kvsim.test", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestParseLogLevel:
    """Tests for parse_log_level."""

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("trace", TRACE),
            ("DEBUG", logging.DEBUG),
            ("warning", logging.WARNING),
            ("nonsense", logging.INFO),
        ],
    )
    def test_levels(self, name, expected):
        assert parse_log_level(name) == expected

    def test_trace_level_name(self):
        assert logging.getLevelName(TRACE) == "TRACE"


class TestSessionContext:
    """Tests for session id tracking."""

    def test_context_manager_restores_previous(self):
        set_session_id(None)
        with SessionLogContext("sim-outer"):
            assert get_session_id() == "sim-outer"
            with SessionLogContext("sim-inner"):
                assert get_session_id() == "sim-inner"
            assert get_session_id() == "sim-outer"
        assert get_session_id() is None

    def test_filter_adds_session_id(self):
        record = _record()
        with SessionLogContext("sim-1"):
            assert SessionContextFilter().filter(record)
        assert record.session_id == "sim-1"

    def test_filter_default(self):
        set_session_id(None)
        record = _record()
        SessionContextFilter().filter(record)
        assert record.session_id == "-"


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def test_basic_fields(self):
        data = json.loads(JsonFormatter().format(_record("evicted")))
        assert data["level"] == "INFO"
        assert data["logger"] == "kvsim.test"
        assert data["message"] == "evicted"
        assert "session_id" not in data

    def test_extra_fields(self):
        record = _record(session_id="sim-2", tick=4, policy="recent-n", victim=1)
        data = json.loads(JsonFormatter().format(record))
        assert data["session_id"] == "sim-2"
        assert data["tick"] == 4
        assert data["policy"] == "recent-n"
        assert data["victim"] == 1


class TestConfigureLogging:
    """Tests for configure_logging and configure_file_logging."""

    def test_sets_levels(self, restore_root_logger):
        configure_logging(level="DEBUG", colored=False)
        assert restore_root_logger.level == logging.DEBUG
        assert logging.getLogger("kvsim").level == logging.DEBUG
        assert len(restore_root_logger.handlers) == 1

    def test_json_format(self, restore_root_logger):
        configure_logging(level="INFO", format_style="json")
        handler = restore_root_logger.handlers[0]
        assert isinstance(handler.formatter, JsonFormatter)

    def test_file_logging(self, restore_root_logger, tmp_path):
        configure_logging(level="INFO", colored=False)
        log_file = configure_file_logging(tmp_path / "logs", level="INFO")

        logging.getLogger("kvsim.test").info("written to file")
        for handler in restore_root_logger.handlers:
            handler.flush()

        assert log_file == tmp_path / "logs" / "kvsim.log"
        assert "written to file" in log_file.read_text()
