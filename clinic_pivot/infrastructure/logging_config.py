"""Logging setup for Clinic-Pivot.

Two output styles: a plain line format for terminals and a one-object-per-line
JSON format for log collectors. Services attach pivot context (row counts,
dropped facts) with ``extra={"extra_fields": {...}}``; the JSON format emits it
as top-level keys and the plain format ignores it.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO

PLAIN_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
PLAIN_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Third-party loggers that are too chatty below WARNING
QUIET_LOGGERS = ("asyncio",)


class StructuredFormatter(logging.Formatter):
    """Format each record as a single JSON object.

    Context passed through ``extra_fields`` is merged into the object; it never
    overrides the base keys (timestamp, level, logger, message).
    """

    BASE_KEYS = ("timestamp", "level", "logger", "message")

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        context = getattr(record, "extra_fields", None)
        if isinstance(context, dict):
            payload.update({key: value for key, value in context.items() if key not in self.BASE_KEYS})

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


def setup_logging(
    use_json: bool = False,
    log_level: str = "INFO",
    stream: Optional[TextIO] = None,
) -> logging.Handler:
    """Install a single root handler.

    Parameters:
        use_json: Emit JSON objects instead of plain lines
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL (unknown names mean INFO)
        stream: Output stream; stderr by default so stdout only carries tables

    Returns:
        logging.Handler: The installed handler
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(
        StructuredFormatter() if use_json else logging.Formatter(PLAIN_FORMAT, datefmt=PLAIN_DATE_FORMAT)
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level)
    root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return handler
