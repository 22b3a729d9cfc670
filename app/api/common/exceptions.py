import logging
from typing import Any

from fastapi import HTTPException, status

from app.services.exceptions import ServiceError, StorageUnavailableError

logger = logging.getLogger(__name__)


class APIException(HTTPException):
    """Base class for API specific exceptions."""

    def __init__(
        self, status_code: int, detail: Any = None, headers: dict | None = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class NotFoundError(APIException):
    def __init__(self, detail: str = "Resource not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class ConflictError(APIException):
    def __init__(self, detail: str = "Conflict"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class ServiceUnavailableError(APIException):
    def __init__(self, detail: str = "Service temporarily unavailable"):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=detail,
            headers={"Retry-After": "1"},
        )


def handle_service_error(e: ServiceError):
    """
    Maps a ServiceError to an HTTP error response.

    Called by the @handle_route_errors decorator; always raises. The error's
    own ``status_code`` decides the response status, storage outages carry a
    Retry-After hint since they are transient.
    """
    message = getattr(e, "message", str(e))
    logger.warning(f"Handling service error: {e.__class__.__name__} - {message}")

    if isinstance(e, StorageUnavailableError):
        raise ServiceUnavailableError(detail=message)
    if e.status_code == status.HTTP_404_NOT_FOUND:
        raise NotFoundError(detail=message)
    if e.status_code == status.HTTP_409_CONFLICT:
        raise ConflictError(detail=message)
    if e.status_code < 400:
        # Non-error outcomes should never escape the service layer.
        logger.error(f"Service signal {e.__class__.__name__} reached the API layer")
        raise APIException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="A service error occurred.",
        )
    raise APIException(status_code=e.status_code, detail=message)
