# SPDX-License-Identifier: Apache-2.0
"""
Logging configuration for kvsim.

This module provides centralized logging configuration with support for:
- Standard logging with configurable levels
- Structured JSON logging (optional)
- Simulation session context tracking
- File logging with daily rotation
"""

import json
import logging
import sys
from contextvars import ContextVar
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Optional

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

# Context variable for session ID tracking
_session_id: ContextVar[Optional[str]] = ContextVar("session_id", default=None)


class SessionContextFilter(logging.Filter):
    """
    Add session_id to log records.

    This filter adds the current simulation session ID (if set) to all log
    records, so every line emitted while handling one session can be grepped
    together.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.session_id = _session_id.get() or "-"
        return True


class ColoredFormatter(logging.Formatter):
    """
    Colored log formatter for terminal output.

    Uses ANSI color codes to highlight different log levels.
    """

    COLORS = {
        TRACE: "\033[90m",             # Gray
        logging.DEBUG: "\033[36m",     # Cyan
        logging.INFO: "\033[32m",      # Green
        logging.WARNING: "\033[33m",   # Yellow
        logging.ERROR: "\033[31m",     # Red
        logging.CRITICAL: "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelno, "")
        record.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(record)


class JsonFormatter(logging.Formatter):
    """
    JSON log formatter for structured logging.

    Outputs one JSON object per line.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        session_id = getattr(record, "session_id", None)
        if session_id and session_id != "-":
            log_data["session_id"] = session_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key in ["tick", "policy", "victim"]:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        return json.dumps(log_data)


def get_session_id() -> Optional[str]:
    """Get the current session ID from context."""
    return _session_id.get()


def set_session_id(session_id: Optional[str]) -> None:
    """Set the current session ID in context."""
    _session_id.set(session_id)


def parse_log_level(level: str) -> int:
    """Map a level name (including TRACE) to its numeric value, INFO if unknown."""
    level_name = level.upper()
    if level_name == "TRACE":
        return TRACE
    return getattr(logging, level_name, logging.INFO)


def _format_string(include_session_id: bool) -> str:
    if include_session_id:
        return "%(asctime)s - %(name)s - %(levelname)s - [%(session_id)s] - %(message)s"
    return "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(
    level: str = "INFO",
    format_style: str = "standard",
    include_session_id: bool = True,
    colored: bool = True,
) -> None:
    """
    Configure application logging.

    Args:
        level: Log level (TRACE, DEBUG, INFO, WARNING, ERROR, CRITICAL).
        format_style: "standard" for plain text, "json" for structured JSON.
        include_session_id: Whether to include session_id in log format.
        colored: Whether to use colored output (only for standard format).
    """
    log_level = parse_log_level(level)
    format_str = _format_string(include_session_id)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(log_level)

    if format_style == "json":
        formatter = JsonFormatter(format_str)
    elif colored and sys.stderr.isatty():
        formatter = ColoredFormatter(format_str)
    else:
        formatter = logging.Formatter(format_str)

    handler.setFormatter(formatter)

    if include_session_id:
        handler.addFilter(SessionContextFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove existing handlers to avoid duplicates
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    logging.getLogger("kvsim").setLevel(log_level)
    logging.getLogger("uvicorn").setLevel(log_level)

    # Suppress noisy third-party loggers unless trace level
    third_party_level = log_level if log_level <= TRACE else logging.INFO
    logging.getLogger("httpx").setLevel(third_party_level)
    logging.getLogger("httpcore").setLevel(third_party_level)


class SessionLogContext:
    """
    Context manager for session-scoped logging.

    Usage:
        with SessionLogContext(session_id="abc123"):
            logger.info("Stepping simulation")
    """

    def __init__(self, session_id: str):
        self.session_id = session_id
        self.previous_id: Optional[str] = None

    def __enter__(self) -> "SessionLogContext":
        self.previous_id = _session_id.get()
        _session_id.set(self.session_id)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        _session_id.set(self.previous_id)


def configure_file_logging(
    log_dir: Path,
    level: str = "INFO",
    include_session_id: bool = True,
    retention_days: int = 7,
) -> Path:
    """
    Configure file logging with daily rotation.

    Adds a file handler to the root logger that writes to {log_dir}/kvsim.log,
    rotated at midnight. Old log files are deleted after retention_days.

    Returns:
        Path of the active log file.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    log_level = parse_log_level(level)

    # Rotated files: kvsim.log.YYYY-MM-DD
    log_file = log_dir / "kvsim.log"

    file_handler = TimedRotatingFileHandler(
        filename=log_file,
        when="midnight",
        interval=1,
        backupCount=retention_days,
        encoding="utf-8",
    )
    file_handler.suffix = "%Y-%m-%d"
    file_handler.setLevel(log_level)
    file_handler.setFormatter(logging.Formatter(_format_string(include_session_id)))

    if include_session_id:
        file_handler.addFilter(SessionContextFilter())

    logging.getLogger().addHandler(file_handler)
    return log_file
