"""
Logging setup for the studio.

One call to setup_logging() at import of the app wires the root logger:
stdout at the configured level, plus a DEBUG-level file per day under
logs/ (skipped in the test environment so test runs leave no files).

Services get `self.logger` from LoggerMixin; routers and helpers call
get_logger(__name__).
"""
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

DEFAULT_LOG_DIR = Path(__file__).resolve().parents[2] / "logs"

# HTTP clients and the ORM are chatty at DEBUG
QUIET_LOGGERS = ("httpx", "httpcore", "urllib3", "sqlalchemy.engine", "multipart")

_configured = False


def _daily_file_handler(log_dir: Path, formatter: logging.Formatter) -> logging.Handler:
    log_dir.mkdir(parents=True, exist_ok=True)
    path = log_dir / f"app_{datetime.now():%Y%m%d}.log"
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(formatter)
    handler.setLevel(logging.DEBUG)
    return handler


def setup_logging(
    log_level: str = "INFO",
    log_dir: Optional[Path] = None,
    to_file: bool = True
) -> logging.Logger:
    """
    Configure the root logger once; later calls return it unchanged.

    Args:
        log_level: Console level name (DEBUG, INFO, WARNING, ERROR)
        log_dir: Where daily files go, default `<project>/logs`
        to_file: Whether to add the daily file handler

    Example:
        >>> setup_logging("WARNING", to_file=False).level
        10
    """
    global _configured

    root = logging.getLogger()
    if _configured:
        return root

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    console.setLevel(logging.getLevelName(log_level.upper()))
    root.addHandler(console)

    if to_file:
        root.addHandler(_daily_file_handler(log_dir or DEFAULT_LOG_DIR, formatter))

    root.setLevel(logging.DEBUG)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True
    root.debug(f"Logging ready: console={log_level.upper()} file={'on' if to_file else 'off'}")
    return root


def get_logger(name: str) -> logging.Logger:
    """
    Module logger, e.g. `get_logger(__name__)`.

    Example:
        >>> get_logger("studio.services.event_service").info("Joined Appathon 2.0")
        2025-01-15 10:30:45 | INFO     | studio.services.event_service:42 | Joined Appathon 2.0
    """
    return logging.getLogger(name)


class LoggerMixin:
    """Gives services a `self.logger` named after the class."""

    @property
    def logger(self) -> logging.Logger:
        return get_logger(type(self).__name__)
