"""
JSON logging for the dashboard API.

Every module logs through one of four channels: http (requests), db (user,
attendance and note stores), relations (assignment changes) and authz
(denied access). Each line carries the current request id.
"""

import logging
import json
import uuid
from datetime import datetime, timezone
from contextvars import ContextVar

from app.config import LOG_LEVEL

# Set per request by the request-id middleware in app.main
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

CHANNELS = ["http", "db", "relations", "authz"]


class StructuredJsonFormatter(logging.Formatter):
    """One JSON object per record: timestamp, level, message, channel, context, extra."""

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created, timezone.utc)
        context = {"request_id": request_id_var.get("")}
        context.update(getattr(record, "context", None) or {})
        entry = {
            "timestamp": stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "channel": getattr(record, "channel", None) or record.name.rpartition(".")[2] or "app",
            "context": context,
            "extra": getattr(record, "extra_data", None) or {},
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging():
    """
    Send every record to stdout as JSON. Channel loggers get the configured
    level and propagate to the single root handler.
    """
    level = logging.getLevelName(LOG_LEVEL)
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredJsonFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]
    for channel in CHANNELS:
        get_logger(channel).setLevel(level)
    return root_logger


def get_logger(channel: str) -> logging.Logger:
    """Get the logger for one of the CHANNELS."""
    return logging.getLogger("app." + channel)


def log_with_context(logger: logging.Logger, level: str, message: str,
                     context: dict = None, extra_data: dict = None):
    """
    Log message on the channel logger. context holds the ids the entry is
    about (coach_id, student_id, ...); extra_data holds measurements and
    error details.
    """
    logger.log(
        logging.getLevelName(level.upper()),
        message,
        extra={
            "context": context or {},
            "extra_data": extra_data or {},
            "channel": logger.name.rpartition(".")[2],
        },
    )


def generate_request_id() -> str:
    """A fresh X-Request-ID value."""
    return uuid.uuid4().hex
