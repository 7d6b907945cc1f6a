"""
Structured logging configuration.

Every log line is a single JSON object on stdout:

{
    "timestamp": "2024-01-15T10:30:00.123Z",
    "level": "INFO",
    "logger": "services.record_service",
    "message": "Record saved",
    "request_id": "abc-123",
    "extra": { ... }
}

The request id is held in a ContextVar so it follows the request through
async handlers without being passed around. Extra fields named in
REDACTED_FIELDS (passwords, backup blobs, attachment bytes, OCR text,
questions) are masked. Set LOG_FORMAT=text for human-readable output during
local development.

Usage:
    from core.logging_config import setup_logging

    setup_logging()
    logger.info("Record saved", extra={"record_id": 3})
"""

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# LogRecord attributes that are not user-supplied "extra" fields
_STANDARD_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "taskName", "message",
})

_APP_LOGGERS = ("medlog_svc", "core", "api", "services", "repositories")

# Extra fields that may carry secrets or medical content; never written out
REDACTED_FIELDS = frozenset({
    "password", "api_key", "blob", "data", "ocr_text", "question", "diagnosis", "medical_advice",
})
REDACTED = "***"


def redact(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Replace the values of sensitive keys, leaving the rest untouched."""
    return {key: REDACTED if key in REDACTED_FIELDS else value for key, value in fields.items()}


def get_request_id() -> Optional[str]:
    """Get the current request ID from context."""
    return request_id_var.get()


def set_request_id(request_id: str) -> None:
    """Set the request ID for the current request/coroutine."""
    request_id_var.set(request_id)


def clear_request_id() -> None:
    """Clear the request ID (call at end of request)."""
    request_id_var.set(None)


class JSONFormatter(logging.Formatter):
    """Single-line JSON log formatter with UTC timestamps."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = get_request_id()
        if request_id:
            log_entry["request_id"] = request_id

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS and not key.startswith("_")
        }
        if extra:
            log_entry["extra"] = redact(extra)

        # ensure_ascii=False keeps hospital and diagnosis names readable
        return json.dumps(log_entry, default=str, ensure_ascii=False)


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    include_uvicorn: bool = True
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: If True, use JSON format; if False, use human-readable format
        include_uvicorn: If True, route uvicorn loggers through the root handler

    Environment Variables:
        LOG_LEVEL: Override the log level
        LOG_FORMAT: Override format ("json" or "text")
    """
    level = os.environ.get("LOG_LEVEL", level).upper()
    json_format = os.environ.get("LOG_FORMAT", "json" if json_format else "text").lower() == "json"

    handler = logging.StreamHandler(sys.stdout)
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    for logger_name in _APP_LOGGERS:
        logger = logging.getLogger(logger_name)
        logger.setLevel(level)
        logger.handlers = []
        logger.propagate = True

    if include_uvicorn:
        for logger_name in ["uvicorn", "uvicorn.error", "uvicorn.access"]:
            logger = logging.getLogger(logger_name)
            logger.handlers = []
            logger.propagate = True

    logging.getLogger(__name__).info(
        "Logging configured",
        extra={"level": level, "format": "json" if json_format else "text"}
    )
