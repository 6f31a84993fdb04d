"""Domain exception -> HTTP error translation shared by the v1 routers"""

import logging

from fastapi import HTTPException

from fintrack_engine.domain.exceptions import (
    AggregatorRequestFailed,
    ConcurrentModification,
    DomainException,
    NotFoundError,
    PersistenceWriteFailed,
    UnsupportedMethod,
    ValidationError,
)

# Checked in order: subclasses before their bases
_STATUS_BY_EXCEPTION = [
    (ValidationError, 422),
    (UnsupportedMethod, 409),
    (NotFoundError, 404),
    (ConcurrentModification, 409),
    (AggregatorRequestFailed, 502),
    (PersistenceWriteFailed, 500),
]


def http_error(error: DomainException, request_id: str) -> HTTPException:
    """Build the HTTPException for a domain failure and log it"""
    for exc_type, status_code in _STATUS_BY_EXCEPTION:
        if isinstance(error, exc_type):
            break
    else:
        status_code = 500

    if status_code >= 500:
        logging.error(f"{type(error).__name__}: {error}", extra={"request_id": request_id})
    else:
        logging.warning(f"{type(error).__name__}: {error}", extra={"request_id": request_id})

    # Storage details stay in the logs
    detail = "Internal server error" if status_code == 500 else str(error)
    return HTTPException(status_code=status_code, detail=detail)
