"""
Logging setup.

Library modules log through `logging.getLogger(__name__)`; scripts call
setup_logging() once. Console reports themselves are printed.

With LOG_FORMAT=json every record is one JSON object per line, carrying the
collection unit (client, platform, period_id) when the caller passed it via
`extra=`, so scheduled runs can be filtered per hotel.
"""

import json
import logging
import sys
from datetime import datetime, timezone

LOG_FORMATS = ("text", "json")

# extra= keys promoted to top-level JSON fields
UNIT_FIELDS = ("client", "platform", "period_id")


def unit_context(client_name: str, platform: str, period_id: str) -> dict:
    """extra= mapping for records about one collection unit."""
    return {"client": client_name, "platform": platform, "period_id": period_id}


class StructuredFormatter(logging.Formatter):
    """JSON lines with the collection unit fields when present."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in UNIT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = str(value)
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


class ReadableFormatter(logging.Formatter):
    """Human-readable console format."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )


def setup_logging(level: str = "INFO", log_format: str = "text", stream=None) -> logging.Logger:
    """Configure the package logger; safe to call more than once."""
    logger = logging.getLogger("hotel_ads_funnel")
    logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter() if log_format == "json" else ReadableFormatter())
    logger.addHandler(handler)
    logger.propagate = False
    return logger
