"""Service-level errors translated to HTTP responses at the API boundary."""

from fastapi import status


class ServiceError(Exception):
    """Base class for errors raised by service classes.

    Attributes:
        message: Human readable message returned as the response detail.
        status_code: HTTP status code the error maps to.
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Unauthenticated(ServiceError):
    """No caller identity is available."""

    status_code = status.HTTP_401_UNAUTHORIZED


class Forbidden(ServiceError):
    """Caller is known but lacks the required relationship."""

    status_code = status.HTTP_403_FORBIDDEN


class NotFound(ServiceError):
    """Referenced resource, grant or token does not exist or is not actionable."""

    status_code = status.HTTP_404_NOT_FOUND


class InvalidArgument(ServiceError, ValueError):
    """Malformed or missing input."""

    status_code = status.HTTP_400_BAD_REQUEST


class Conflict(ServiceError):
    """Request conflicts with existing state."""

    status_code = status.HTTP_409_CONFLICT
