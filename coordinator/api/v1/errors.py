"""Translation of application errors into HTTP responses."""

from fastapi import HTTPException, status

from coordinator.core.exceptions import (
    AppError,
    ConfigurationError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from coordinator.utils.logging import get_logger

LOGGER = get_logger(__name__)


def to_http_exception(error: AppError) -> HTTPException:
    """Map an AppError onto a status code with a structured detail body."""
    if isinstance(error, NotFoundError):
        status_code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, PreconditionError):
        status_code = status.HTTP_409_CONFLICT
    elif isinstance(error, (ValidationError, ConfigurationError)):
        status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        LOGGER.error(f"Unhandled application error: {error}", exc_info=error)

    return HTTPException(
        status_code=status_code,
        detail={
            "error": type(error).__name__,
            "message": str(error),
            "detail": str(error.original_error) if error.original_error else None,
        },
    )
