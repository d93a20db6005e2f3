"""
Logging configuration for the Mumbai Transit System.

Two output formats are supported:
  - **human** - single-line, readable console output
  - **json**  - newline-delimited JSON for log aggregators
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional


class _JSONFormatter(logging.Formatter):
    """Emit each log record as a single JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            log_obj["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_obj, default=str)


class _HumanFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{ts} [{record.levelname:<7}] {record.name}: {record.getMessage()}"
        if record.exc_info and record.exc_info[1]:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def setup_logging(level: str = "INFO", fmt: str = "human", log_file: Optional[str] = None) -> None:
    """
    Configure the root logger for the whole application.

    ``fmt`` is ``"human"`` or ``"json"``. When ``log_file`` is given, records
    are also written there in JSON.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Replace handlers so repeated calls (reload, tests) don't duplicate output
    for handler in list(root.handlers):
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(_JSONFormatter() if fmt == "json" else _HumanFormatter())
    root.addHandler(console)

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(_JSONFormatter())
        root.addHandler(file_handler)

    # Quieten noisy third-party loggers
    for name in ("sqlalchemy.engine", "PIL", "multipart"):
        logging.getLogger(name).setLevel(logging.WARNING)
