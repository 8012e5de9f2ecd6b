"""
Logging configuration for the time-travel analyser.

Every module logs under the ``timetravel.<area>`` hierarchy
(``timetravel.solver``, ``timetravel.ledger``, ...).  Two output formats:

  - **human** – coloured, single-line, readable
  - **json**  – newline-delimited JSON, for collecting analysis runs

Usage:
    from timetravel_core.logging_config import setup_logging
    setup_logging(level="DEBUG", fmt="json", log_file="runs/timetravel.log")
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

ROOT_LOGGER = "timetravel"

# third-party loggers that are only interesting when debugging
_NOISY_LOGGERS = ("aiohttp.access", "aiohttp.client", "asyncio")


class _JSONFormatter(logging.Formatter):
    """Emit each log record as a single JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "target": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            log_obj["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_obj, default=str)


class _HumanFormatter(logging.Formatter):
    """Coloured single-line format; the ``timetravel.`` prefix is dropped."""

    COLOURS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[1;31m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        colour = self.COLOURS.get(record.levelname, "")
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        name = record.name
        if name.startswith(ROOT_LOGGER + "."):
            name = name[len(ROOT_LOGGER) + 1:]
        line = (
            f"{colour}{ts} [{record.levelname:<7}]{self.RESET} "
            f"{name}: {record.getMessage()}"
        )
        if record.exc_info and record.exc_info[1]:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def setup_logging(
    level: str = "INFO",
    fmt: str = "human",
    log_file: Optional[str] = None,
) -> None:
    """
    Configure the root logger for an analysis run.

    Parameters
    ----------
    level : str
        One of DEBUG, INFO, WARNING, ERROR, CRITICAL.
    fmt : str
        ``"human"`` for coloured single-line output, ``"json"`` for
        newline-delimited JSON.
    log_file : str, optional
        If provided, logs are *also* written to this file, always as JSON.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(numeric_level)
    root.handlers.clear()

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(_JSONFormatter() if fmt == "json" else _HumanFormatter())
    root.addHandler(console)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(path))
        fh.setFormatter(_JSONFormatter())
        root.addHandler(fh)

    if numeric_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
