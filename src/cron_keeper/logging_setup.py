# src/cron_keeper/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FILE_NAME = "cron_keeper.log"

_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"


class _ConsoleNoiseFilter(logging.Filter):
    """
    Console gets every cron_keeper record. APScheduler announces each job run
    at INFO, so it is held to WARNING+; anything else needs ERROR+.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name == "cron_keeper" or name.startswith("cron_keeper."):
            return True
        if name.startswith("apscheduler"):
            return record.levelno >= logging.WARNING
        return record.levelno >= logging.ERROR


def _console_handler(level: int, fmt: logging.Formatter) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(fmt)
    handler.addFilter(_ConsoleNoiseFilter())
    return handler


def _file_handler(log_dir: Path, level: int, fmt: logging.Formatter) -> logging.Handler:
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(str(log_dir / LOG_FILE_NAME), encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(fmt)
    return handler


def setup_logging(
    *,
    log_dir: str | Path | None = ".local/cron_keeper",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path | None:
    """
    Install the console handler and, unless log_dir is None, a DEBUG file
    handler writing to <log_dir>/cron_keeper.log. Previously installed root
    handlers are dropped, so calling this twice does not duplicate output.

    Returns the log file path, or None when file logging is off.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT)
    root.addHandler(_console_handler(console_level, fmt))

    log_file: Path | None = None
    if log_dir is not None:
        log_file = Path(log_dir) / LOG_FILE_NAME
        root.addHandler(_file_handler(Path(log_dir), file_level, fmt))

    # warnings.warn(...) arrives as 'py.warnings' and stays off the console below ERROR.
    logging.captureWarnings(True)
    return log_file
