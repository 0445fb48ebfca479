from fastapi import HTTPException, status

from ..domain.errors import (
    AvailabilityError,
    NotFoundError,
    ReservationError,
    TransientStorageError,
    ValidationError,
)
from ..schemas import ErrorBody


def to_http_error(exc: ReservationError) -> HTTPException:
    """Map a domain error to the HTTP status and error body callers branch on."""
    if isinstance(exc, ValidationError):
        body = ErrorBody(kind="validation", message=str(exc), code=exc.code, errors=exc.errors)
        return HTTPException(status_code=422, detail=body.model_dump())
    if isinstance(exc, AvailabilityError):
        body = ErrorBody(
            kind="availability",
            message="No availability for the selected date, time and party size",
            code="no_capacity",
            errors={"availability": str(exc)},
        )
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=body.model_dump())
    if isinstance(exc, NotFoundError):
        body = ErrorBody(kind="not_found", message=str(exc) or "reservation not found")
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=body.model_dump())
    if isinstance(exc, TransientStorageError):
        body = ErrorBody(kind="storage", message="storage temporarily unavailable, try again")
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=body.model_dump(),
            headers={"Retry-After": "5"},
        )
    body = ErrorBody(kind="error", message=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=body.model_dump())
