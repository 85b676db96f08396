"""
Structured JSON logging for the agent runner.

Each log entry is a single JSON object with:
- timestamp: ISO 8601 timestamp
- level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
- service: Always "agent-runner"
- conversation_id: Conversation the runner is serving
- request_id: Request ID propagated from the caller
- message: Log message
- context: Additional context fields

Logs go to stderr; stdout carries the rendered conversation items.
"""

import json
import logging
import os
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO

# LogRecord attributes that are not user context
RESERVED_ATTRS = {
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs',
    'message', 'pathname', 'process', 'processName', 'relativeCreated',
    'thread', 'threadName', 'exc_info', 'exc_text', 'stack_info',
    'conversation_id', 'request_id', 'taskName',
}


class StructuredFormatter(logging.Formatter):
    """
    Formatter that outputs one JSON object per log record.

    ``conversation_id`` and ``request_id`` come from the record (set via
    ``extra={}``) and fall back to the CONVERSATION_ID and REQUEST_ID
    environment variables.
    """

    def __init__(self, service: str = "agent-runner"):
        super().__init__()
        self.service = service
        self.conversation_id = os.environ.get("CONVERSATION_ID")
        self.request_id = os.environ.get("REQUEST_ID")

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as JSON."""
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "service": self.service,
            "logger": record.name,
            "message": record.getMessage(),
        }

        conversation_id = getattr(record, "conversation_id", self.conversation_id)
        request_id = getattr(record, "request_id", self.request_id)
        if conversation_id:
            log_entry["conversation_id"] = conversation_id
        if request_id:
            log_entry["request_id"] = request_id

        context = {
            key: value
            for key, value in record.__dict__.items()
            if key not in RESERVED_ATTRS and value is not None
        }
        if context:
            log_entry["context"] = context

        if record.exc_info:
            log_entry["error"] = str(record.exc_info[1])
            log_entry["stack"] = record.exc_text or "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(log_entry, default=str)


def configure_logging(
    level: str = "INFO",
    conversation_id: Optional[str] = None,
    request_id: Optional[str] = None,
    stream: Optional[TextIO] = None,
) -> None:
    """
    Configure the root logger to use structured JSON output.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        conversation_id: Conversation identifier (defaults to CONVERSATION_ID env var)
        request_id: Request identifier (defaults to REQUEST_ID env var)
        stream: Output stream (defaults to stderr)
    """
    if conversation_id:
        os.environ["CONVERSATION_ID"] = conversation_id
    if request_id:
        os.environ["REQUEST_ID"] = request_id

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
