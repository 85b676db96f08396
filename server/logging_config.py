"""Logging setup for the relay server.

Every record carries the id of the HTTP request that produced it (``-``
outside a request), so one prompt's create/poll/respond traffic can be
followed across interleaved clients.
"""

import logging
import os
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Generator, Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(request_id)s | %(name)s | %(message)s"
DEBUG_LOG_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(request_id)s | %(name)s:%(funcName)s:%(lineno)d | %(message)s"
)

LOG_LEVEL_ENV = "LOG_LEVEL"
DEFAULT_LOG_LEVEL = "INFO"

# Set by RequestLoggingMiddleware for the duration of a request
request_id_var: ContextVar[str] = ContextVar("request_id", default="-")


class RequestIdFilter(logging.Filter):
    """Attach the current request id to each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = request_id_var.get()
        return True


def setup_logging(level: Optional[str] = None) -> None:
    """Configure the root logger for the relay process.

    Args:
        level: Log level override. If not provided, uses LOG_LEVEL env var or INFO.
    """
    level_name = (level or os.environ.get(LOG_LEVEL_ENV, DEFAULT_LOG_LEVEL)).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestIdFilter())
    handler.setFormatter(
        logging.Formatter(
            DEBUG_LOG_FORMAT if log_level == logging.DEBUG else LOG_FORMAT,
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    # Access lines duplicate RequestLoggingMiddleware
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sse_starlette").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


@contextmanager
def log_timing(
    logger: logging.Logger, operation: str, level: int = logging.DEBUG
) -> Generator[None, None, None]:
    """Log how long the wrapped block took.

    Example:
        with log_timing(logger, "Expiry sweep"):
            await store.expire_overdue()
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        logger.log(level, "%s took %.1fms", operation, (time.perf_counter() - start) * 1000)
