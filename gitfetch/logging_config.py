"""
Logging Configuration — Structured logging setup.

Fetches run on worker threads, so every line says which thread wrote it:
"main" for the command itself, "w0".."wN" for dispatcher workers.

- text: one short line per record for interactive runs
- json: one object per line for cron jobs and log shippers

## Environment Variables

- GITFETCH_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
- GITFETCH_LOG_FORMAT: json, text (default: text)

## Usage

    from gitfetch.logging_config import setup_logging

    setup_logging()  # Call once at startup
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO

# LogRecord extras copied into JSON output when present
EXTRA_FIELDS = ("repository", "branch", "remote", "host")

WORKER_THREAD_PREFIX = "gitfetch-worker-"


def thread_label(record: logging.LogRecord) -> str:
    """Short name of the thread that logged record."""
    name = record.threadName or ""
    if name.startswith(WORKER_THREAD_PREFIX):
        return "w" + name[len(WORKER_THREAD_PREFIX):]
    if name == "MainThread":
        return "main"
    return name[:8]


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter for structured logging.

    Output format:
    {"ts": "...", "level": "...", "logger": "...", "thread": "w2",
     "message": "...", "repository": "...", "branch": "..."}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": thread_label(record),
            "message": record.getMessage(),
        }

        for name in EXTRA_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_entry[name] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry)


class HumanFormatter(logging.Formatter):
    """
    Human-readable log formatter.

    Output format:
    12:34:56 WARNING w2   [trust] example.com: host key fingerprint mismatch
    """

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, color: bool = False):
        super().__init__()
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        time_str = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        level = f"{record.levelname:7}"
        if self.color:
            level = f"{self.COLORS.get(record.levelname, '')}{level}{self.RESET}"

        line = f"{time_str} {level} {thread_label(record):4} {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def setup_logging(
    level: Optional[str] = None,
    format_type: Optional[str] = None,
    stream: Optional[TextIO] = None,
) -> None:
    """
    Configure the root logger with one handler on stream (default stderr).

    Args:
        level: Log level. Defaults to GITFETCH_LOG_LEVEL or INFO.
        format_type: json or text. Defaults to GITFETCH_LOG_FORMAT or text.
        stream: Where log lines go. Colors are used only on a TTY.
    """
    log_level = (level or os.environ.get("GITFETCH_LOG_LEVEL", "INFO")).upper()
    log_format = (format_type or os.environ.get("GITFETCH_LOG_FORMAT", "text")).lower()
    numeric_level = getattr(logging, log_level, logging.INFO)
    stream = stream or sys.stderr

    formatter: logging.Formatter
    if log_format == "json":
        formatter = JSONFormatter()
    else:
        formatter = HumanFormatter(color=stream.isatty())

    handler = logging.StreamHandler(stream)
    handler.setFormatter(formatter)
    handler.setLevel(numeric_level)

    root = logging.getLogger()
    root.setLevel(numeric_level)
    root.handlers.clear()
    root.addHandler(handler)

    logging.getLogger(__name__).debug(
        f"Logging configured: level={log_level}, format={log_format}"
    )
