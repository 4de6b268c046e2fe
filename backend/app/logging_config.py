"""
Structured JSON logging.

Every log line written to stdout is one JSON object so container log
aggregation can filter by channel, request and staff member. Channels:

- http: request lifecycle and route handlers
- db: registry and history writes
- assessment: session draws and completions
- compliance: status evaluation runs and skipped history records
- notify: mail outbox queueing
- certificate: certificate rendering
"""

import logging
import json
import os
import uuid
from datetime import datetime, timezone
from contextvars import ContextVar

# Set per HTTP request by the middleware in main.py
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

SERVICE_NAME = "compliance-portal"
CHANNELS = ["http", "db", "assessment", "compliance", "notify", "certificate"]


def _level(name: str) -> int:
    return getattr(logging, (name or "").upper(), logging.INFO)


class StructuredJsonFormatter(logging.Formatter):
    """
    Render a LogRecord as a JSON object.

    Keys: timestamp (UTC, millisecond precision), level, service, channel,
    message, context (always carries request_id), extra, and exception
    when the record has exc_info attached.
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        log_entry = {
            "timestamp": timestamp.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "service": SERVICE_NAME,
            "channel": getattr(record, "channel", None) or record.name.rsplit(".", 1)[-1],
            "message": record.getMessage(),
            "context": {
                "request_id": request_id_var.get(""),
                **(getattr(record, "context", None) or {}),
            },
            "extra": getattr(record, "extra_data", None) or {},
        }
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def setup_logging(level: str = None) -> logging.Logger:
    """
    Install the JSON handler on the root logger.

    Args:
        level: Level name overriding LOG_LEVEL from the environment
    """
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredJsonFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(_level(level or LOG_LEVEL))
    root_logger.handlers = [handler]

    for channel in CHANNELS:
        get_logger(channel).setLevel(_level(level or LOG_LEVEL))

    return root_logger


def get_logger(channel: str) -> logging.Logger:
    """Logger for one of CHANNELS."""
    return logging.getLogger(f"app.{channel}")


def log_with_context(logger: logging.Logger, level: str, message: str,
                     context: dict = None, extra_data: dict = None,
                     exc_info=None):
    """
    Emit a structured log entry.

    Args:
        logger: Channel logger from get_logger
        level: Level name (DEBUG, INFO, WARNING, ERROR)
        message: Human-readable message
        context: Identifiers of the business objects involved
            (staff_id, session_id, result_id)
        extra_data: Measurements and counts (score, duration_ms, queued)
        exc_info: Exception to attach, rendered under "exception"
    """
    logger.log(
        _level(level),
        message,
        exc_info=exc_info,
        extra={
            "context": context or {},
            "extra_data": extra_data or {},
            "channel": logger.name.rsplit(".", 1)[-1],
        },
    )


def generate_request_id() -> str:
    """New UUID4 string for X-Request-ID."""
    return str(uuid.uuid4())
