"""Translation of core exceptions into HTTP errors."""

import logging

from fastapi import HTTPException

from core.exceptions import (
    CoreError,
    InvalidOperationError,
    NotFoundError,
    PromptNotPendingError,
    StoreUnavailableError,
)

logger = logging.getLogger(__name__)


def http_error(error: CoreError) -> HTTPException:
    """Map a core exception to the HTTPException a route should raise."""
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, PromptNotPendingError):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, InvalidOperationError):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, StoreUnavailableError):
        logger.error("Store unavailable: %s", error)
        return HTTPException(status_code=503, detail=str(error))
    logger.error("Unhandled core error: %s", error)
    return HTTPException(status_code=500, detail=str(error))
