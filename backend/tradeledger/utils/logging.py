# backend/tradeledger/utils/logging.py
"""
Logging configuration for Trade Ledger.

One stdout handler on the root logger, stamped with the request's
correlation ID, in either a human-readable text format or JSON lines.

Usage:
    from tradeledger.utils.logging import setup_logging

    setup_logging()                       # LOG_LEVEL / LOG_FORMAT from settings
    setup_logging(level="DEBUG")          # cache hits and misses included

Log Levels:
    DEBUG   - Cache hits/misses, dropped positions
    INFO    - Outbound price calls, completed snapshots, cache clears
    WARNING - Unavailable prices, null investment PnL, mixed currencies,
              discarded stale valuation passes, circuit opening
    ERROR   - Price service failures
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from tradeledger.config import settings
from tradeledger.utils.context import get_correlation_id

TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(correlation_id)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

NO_CORRELATION_ID = "-"

NOISY_LOGGERS = [
    "httpx",
    "httpcore",
    "asyncio",
    "sqlalchemy.engine",
]

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# Attributes every LogRecord has; anything else came in through `extra=`
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "correlation_id",
    "message",
    "asctime",
}


class CorrelationIdFilter(logging.Filter):
    """Adds `correlation_id` to every record passing through the handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or NO_CORRELATION_ID
        return True


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line:

        {"timestamp": "...", "level": "INFO", "logger": "tradeledger...",
         "correlation_id": "...", "message": "...", "extra": {...}}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "correlation_id": getattr(record, "correlation_id", NO_CORRELATION_ID),
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        extra = {k: v for k, v in vars(record).items() if k not in _RECORD_ATTRS}
        if extra:
            entry["extra"] = extra

        # default=str covers Decimal and datetime values passed as extra
        return json.dumps(entry, default=str)


def parse_level(level: str) -> int:
    """
    Raises:
        ValueError: Unknown level name
    """
    try:
        return _LEVELS[level.strip().upper()]
    except KeyError:
        raise ValueError(
            f"Invalid log level: '{level}'. Valid levels are: {', '.join(_LEVELS)}"
        ) from None


def setup_logging(
        level: str | None = None,
        log_format: str | None = None,
        quiet_third_party: bool = True,
) -> None:
    """
    Configure the root logger. Safe to call more than once; the previous
    handlers are replaced.

    Args:
        level: Overrides settings.log_level
        log_format: "text" or "json", overrides settings.log_format
        quiet_third_party: Lower NOISY_LOGGERS to WARNING
    """
    level_name = level or settings.log_level
    format_name = (log_format or settings.log_format).lower()

    handler = logging.StreamHandler(sys.stdout)
    if format_name == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(fmt=TEXT_FORMAT, datefmt=DATE_FORMAT))
    handler.addFilter(CorrelationIdFilter())

    root = logging.getLogger()
    root.setLevel(parse_level(level_name))
    root.handlers.clear()
    root.addHandler(handler)

    if quiet_third_party:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(f"Logging configured: level={level_name}, format={format_name}")
