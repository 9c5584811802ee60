"""
Domain exception -> HTTPException mapping shared by the routers.
"""

from typing import Union

from fastapi import HTTPException, status

from docfiling.errors import (
    BatchStateError,
    FilingError,
    InvalidTransitionError,
    NotFoundError,
)
from docfiling.services.base import ServiceError


def to_http_exception(error: Union[FilingError, ServiceError]) -> HTTPException:
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=error.message)
    if isinstance(error, (InvalidTransitionError, BatchStateError)):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error_code": error.error_code, "message": error.message},
        )
    if isinstance(error, FilingError):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"error_code": error.error_code, "message": error.message},
        )
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail={"service": error.service_name, "error_code": error.error_code, "message": error.message},
    )
