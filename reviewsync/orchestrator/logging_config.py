"""
Logging setup for reviewsync.

Two output styles share the same handlers:
    - JSON lines, one object per record, for log shippers (LOG_JSON=true)
    - a plain aligned text line for terminals

Refresh code tags its records through `extra=`:

    logger.info("fetched", extra={"source": "yelp", "duration": 0.41})

and the JSON formatter lifts the tags listed in EXTRA_FIELDS to top-level
keys. The text formatter ignores them.

Usage:
    from reviewsync.orchestrator.logging_config import setup_logging

    setup_logging(level="DEBUG", json_output=True, log_file="logs/reviewsync.log")
"""

import json
import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from typing import List, Optional


# source: provider name; cycle: refresh cycle id; duration: seconds;
# status: FetchStatus / CycleStatus value
EXTRA_FIELDS = ("source", "cycle", "duration", "status")

TEXT_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)-30s | %(message)s"

# Third-party loggers held at WARNING
QUIET_LOGGERS = ("urllib3", "apscheduler")


class JSONFormatter(logging.Formatter):
    """One JSON object per record: ts, level, logger, msg, then any tagged extras."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        entry.update(
            (key, getattr(record, key))
            for key in EXTRA_FIELDS
            if getattr(record, key, None) is not None
        )
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _handlers(log_file: Optional[str], max_bytes: int, backup_count: int) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count)
        )
    return handlers


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[str] = None,
    fmt: Optional[str] = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
):
    """
    Replace the root logger's handlers with stdout (and optionally a rotating file).

    Args:
        level: DEBUG, INFO, WARNING or ERROR; unknown names mean INFO
        json_output: emit JSON lines instead of text
        log_file: also write to this file, rotated at max_bytes
        fmt: text format string (ignored for JSON output)
        max_bytes: rotation size of log_file
        backup_count: rotated files kept
    """
    if json_output:
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(fmt or TEXT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()
    for handler in _handlers(log_file, max_bytes, backup_count):
        handler.setFormatter(formatter)
        root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root.info("Logging configured: level=%s json=%s file=%s", level, json_output, log_file or "none")


def setup_logging_from_settings(settings=None, verbose: bool = False):
    """Configure logging from LoggingConfig (LOG_LEVEL, LOG_JSON, LOG_FILE)."""
    if settings is None:
        from ..data.config import get_settings
        settings = get_settings()
    cfg = settings.logging
    setup_logging(
        level="DEBUG" if verbose else cfg.level,
        json_output=cfg.json_logs,
        log_file=cfg.log_file,
        fmt=cfg.format,
    )
