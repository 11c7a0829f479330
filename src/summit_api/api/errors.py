"""Translate pass engine failures into HTTP errors."""

from fastapi import HTTPException, status

from summit_api.services.passes.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    InvalidUpgradeError,
    NotFoundError,
    PassEngineError,
    TransientStoreError,
    ValidationError,
)
from summit_api.services.ticketing.client import TicketingProviderError

_STATUS_BY_ERROR: tuple[tuple[type[Exception], int], ...] = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (InvalidUpgradeError, status.HTTP_400_BAD_REQUEST),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (InvalidStateError, status.HTTP_409_CONFLICT),
    (TransientStoreError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (TicketingProviderError, status.HTTP_502_BAD_GATEWAY),
)


def translate_domain_error(error: PassEngineError | TicketingProviderError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=str(error))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))
