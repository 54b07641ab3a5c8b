"""
Translation of domain exceptions into HTTP errors.
"""

import logging

from fastapi import HTTPException, status

from core.exceptions import ScheduleConflictError, ScheduleValidationError, StoreError

logger = logging.getLogger(__name__)


def to_http_exception(error: Exception) -> HTTPException:
    """
    Map a domain exception to the HTTPException returned to the caller.

    Conflicts keep their structured payload so the client can offer the
    suggested start.
    """
    if isinstance(error, ScheduleConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=error.to_dict())
    if isinstance(error, (ScheduleValidationError, ValueError)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    if isinstance(error, LookupError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, StoreError):
        return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))
    logger.exception(f"Unexpected error: {error}")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")
