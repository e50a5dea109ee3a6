from typing import NoReturn

from fastapi import HTTPException

from app.services.errors import (
    BookingError,
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotAuthenticatedError,
    NotFoundError,
    StoreUnavailableError,
)


def raise_booking_http_error(exc: BookingError) -> NoReturn:
    if isinstance(exc, NotAuthenticatedError):
        raise HTTPException(status_code=401, detail=str(exc))
    if isinstance(exc, ForbiddenError):
        raise HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, (ConflictError, InvalidStateError)):
        raise HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, StoreUnavailableError):
        raise HTTPException(status_code=503, detail=str(exc))
    raise HTTPException(status_code=422, detail=str(exc))
