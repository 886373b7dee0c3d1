"""Process-wide logging for the reminder service.

The dispatch job runs every TICK_SECONDS, so APScheduler's per-run "Running
job" lines and httpx's per-request lines for every webhook POST would drown
the log. Both are capped at WARNING; the dispatcher's one
"Reminder tick complete" line is the per-tick record, and delivery lines
carry event_id, offset_kind and recipient_id as key=value pairs for grepping.

LOG_LEVEL (unknown names fall back to INFO) and LOG_FILE, a rotating file
kept next to stderr output, are read from the environment.
"""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

_DEFAULT_LEVEL = "INFO"
_MAX_BYTES = 5 * 1024 * 1024
_BACKUP_COUNT = 3
_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_QUIET_LOGGERS = ("httpx", "httpcore", "apscheduler", "apscheduler.scheduler", "apscheduler.executors.default")


def _get_level() -> int:
    raw = os.environ.get("LOG_LEVEL", _DEFAULT_LEVEL).strip().upper()
    level = logging.getLevelName(raw)
    return level if isinstance(level, int) else logging.INFO


def _get_log_file() -> str | None:
    path = os.environ.get("LOG_FILE", "").strip()
    return path or None


def configure_logging(*, level: int | None = None, log_file: str | None = None) -> None:
    """Configure process-wide logging; call once at startup.

    Args:
        level: Log level. If None, taken from LOG_LEVEL.
        log_file: Path for a rotating log file. If None, taken from LOG_FILE.
    """
    if level is None:
        level = _get_level()
    if log_file is None:
        log_file = _get_log_file()

    formatter = logging.Formatter(_FORMAT, datefmt=_DATE_FORMAT)
    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_file:
        try:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_file,
                maxBytes=_MAX_BYTES,
                backupCount=_BACKUP_COUNT,
                encoding="utf-8",
            )
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)
        except OSError as e:
            root.warning("Could not open log file %s: %s; logging to stderr only", log_file, e)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
