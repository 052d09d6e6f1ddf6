"""
Logging configuration.

Plain text by default; with LOG_JSON enabled every record is emitted as a
single JSON line carrying timestamp, level, logger, message and, inside a
request, the method and path.
"""

import json
import logging
from datetime import datetime, timezone

from flask import has_request_context, request

TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class JSONFormatter(logging.Formatter):
    """Emit each log record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if has_request_context():
            log_entry["method"] = request.method
            log_entry["path"] = request.path

        # Structured extras passed through `extra={...}`
        for key in ("store_pk", "user_id", "from_status", "to_status", "resource", "action"):
            if hasattr(record, key):
                log_entry[key] = getattr(record, key)

        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def configure_logging(log_level: str = "INFO", json_output: bool = False) -> None:
    """Install a single stream handler on the `elora` logger hierarchy."""
    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    logger = logging.getLogger("elora")
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, str(log_level).upper(), logging.INFO))
    logger.propagate = False
